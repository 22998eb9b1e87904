"""Uniform interface for tabular data, object storage and auth."""

import base64
from dataclasses import dataclass, field
from typing import Protocol

from meal_planner.domain.models import UserRecord

NOT_FOUND_CODE = "PGRST116"
_MISSING_TABLE_CODES = frozenset({"42P01", "PGRST205"})


@dataclass(frozen=True)
class GatewayError:
    """A failed gateway call."""

    message: str
    code: str | None = None

    @property
    def is_not_found(self) -> bool:
        """Single-row select matched nothing."""
        return self.code == NOT_FOUND_CODE

    @property
    def is_missing_table(self) -> bool:
        """The remote schema lacks the table."""
        if self.code in _MISSING_TABLE_CODES:
            return True
        return "Could not find the table" in self.message or (
            "relation" in self.message and "does not exist" in self.message
        )

    @property
    def is_transient(self) -> bool:
        """Network trouble or a server-side 5xx."""
        if self.code in {"timeout", "network"}:
            return True
        return bool(self.code and self.code.isdigit() and self.code.startswith("5"))

    @property
    def is_missing_bucket(self) -> bool:
        """The storage bucket is not provisioned."""
        return "Bucket not found" in self.message


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of a gateway call: either data or error."""

    data: object = None
    error: GatewayError | None = None

    def __post_init__(self) -> None:
        if self.error is not None and self.data is not None:
            raise ValueError("GatewayResult cannot carry both data and error")
        if self.error is None and self.data is None:
            raise ValueError("GatewayResult needs data or an error")

    @classmethod
    def ok(cls, data: object) -> "GatewayResult":
        return cls(data=data)

    @classmethod
    def fail(cls, message: str, code: str | None = None) -> "GatewayResult":
        return cls(error=GatewayError(message=message, code=code))

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def rows(self) -> list[dict[str, object]]:
        """Return data as a list of rows; empty on error."""
        if self.error is not None:
            return []
        if isinstance(self.data, list):
            return [row for row in self.data if isinstance(row, dict)]
        if isinstance(self.data, dict):
            return [self.data]
        return []

    def row(self) -> dict[str, object] | None:
        """Return the first row, if any."""
        rows = self.rows()
        return rows[0] if rows else None


@dataclass(frozen=True)
class AuthSession:
    """Auth call payload; user is None when signed out."""

    user: UserRecord | None = None


@dataclass(frozen=True)
class TableQuery:
    """Select parameters: projection, equality filters, order, limit."""

    columns: str = "*"
    filters: tuple[tuple[str, object], ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    single: bool = False

    @classmethod
    def where(cls, **filters: object) -> "TableQuery":
        """Build a query with equality filters."""
        return cls(filters=tuple(filters.items()))


@dataclass(frozen=True)
class Filters:
    """Conjunctive equality filters for update and delete."""

    conditions: tuple[tuple[str, object], ...] = field(default_factory=tuple)

    @classmethod
    def eq(cls, **conditions: object) -> "Filters":
        return cls(conditions=tuple(conditions.items()))


class DataGateway(Protocol):
    """Tabular CRUD and object storage."""

    @property
    def is_mock(self) -> bool:
        """Whether the local fallback store answers."""

    async def select(self, table: str, query: TableQuery) -> GatewayResult:
        """Read rows."""

    async def insert(
        self, table: str, rows: list[dict[str, object]]
    ) -> GatewayResult:
        """Insert a batch of rows and return them."""

    async def upsert(
        self, table: str, row: dict[str, object], on_conflict: str
    ) -> GatewayResult:
        """Insert or merge a row keyed by a conflict column."""

    async def update(
        self, table: str, values: dict[str, object], filters: Filters
    ) -> GatewayResult:
        """Merge values into every matching row."""

    async def delete(self, table: str, filters: Filters) -> GatewayResult:
        """Delete every matching row."""

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> GatewayResult:
        """Store a binary object and return a URL for it."""

    async def public_url(self, bucket: str, path: str) -> GatewayResult:
        """Return the public URL for a stored object."""


class AuthGateway(Protocol):
    """Email/password authentication."""

    async def sign_in(self, email: str, password: str) -> GatewayResult:
        """Sign in; data is an AuthSession."""

    async def sign_up(self, email: str, password: str) -> GatewayResult:
        """Register; data is an AuthSession."""

    async def sign_out(self) -> GatewayResult:
        """End the session."""

    async def get_user(self) -> GatewayResult:
        """Return the current AuthSession; its user is None when signed out."""


class Gateway(DataGateway, AuthGateway, Protocol):
    """Combined interface implemented by both adapters."""


def data_url(content: bytes, content_type: str) -> str:
    """Encode bytes as an inline data URL."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def user_from_result(result: GatewayResult) -> UserRecord | None:
    """Extract the user from an auth result."""
    if isinstance(result.data, AuthSession):
        return result.data.user
    return None
