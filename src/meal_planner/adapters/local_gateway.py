"""Gateway answered entirely by local storage."""

import logging
from dataclasses import dataclass, field
from uuid import NAMESPACE_URL, uuid5

from meal_planner.adapters.gateway import (
    NOT_FOUND_CODE,
    AuthSession,
    Filters,
    Gateway,
    GatewayResult,
    TableQuery,
    data_url,
)
from meal_planner.adapters.kv_storage import KeyValueStorage, read_json, write_json
from meal_planner.adapters.local_store import LocalTableStore
from meal_planner.domain.models import UserRecord

AUTH_TOKEN_KEY = "sb-auth-token"

_logger = logging.getLogger(__name__)


def local_user_id(email: str) -> str:
    """Derive a stable local user id from an email address."""
    return f"local-{uuid5(NAMESPACE_URL, email.strip().lower())}"


@dataclass
class LocalAuth:
    """Auth emulation: every sign-in succeeds and persists a session token."""

    storage: KeyValueStorage

    def sign_in(self, email: str) -> UserRecord:
        user = UserRecord(id=local_user_id(email), email=email)
        write_json(self.storage, AUTH_TOKEN_KEY, {"user": user.to_row()})
        return user

    def sign_out(self) -> None:
        self.storage.remove_item(AUTH_TOKEN_KEY)

    def current_user(self) -> UserRecord | None:
        token = read_json(self.storage, AUTH_TOKEN_KEY)
        if not isinstance(token, dict):
            return None
        user = token.get("user")
        if not isinstance(user, dict) or not user.get("id"):
            return None
        return UserRecord.from_row(user)


@dataclass
class LocalGateway(Gateway):
    """Fallback adapter used when no remote backend is configured."""

    storage: KeyValueStorage
    store: LocalTableStore = field(init=False)
    auth: LocalAuth = field(init=False)

    def __post_init__(self) -> None:
        self.store = LocalTableStore(self.storage)
        self.auth = LocalAuth(self.storage)

    @property
    def is_mock(self) -> bool:
        return True

    async def select(self, table: str, query: TableQuery) -> GatewayResult:
        rows = self.store.select(table, query)
        if query.single:
            if not rows:
                return GatewayResult.fail(
                    "JSON object requested, multiple (or no) rows returned",
                    code=NOT_FOUND_CODE,
                )
            return GatewayResult.ok(rows[0])
        return GatewayResult.ok(rows)

    async def insert(
        self, table: str, rows: list[dict[str, object]]
    ) -> GatewayResult:
        return GatewayResult.ok(self.store.insert(table, rows))

    async def upsert(
        self, table: str, row: dict[str, object], on_conflict: str
    ) -> GatewayResult:
        return GatewayResult.ok([self.store.upsert(table, row, on_conflict)])

    async def update(
        self, table: str, values: dict[str, object], filters: Filters
    ) -> GatewayResult:
        return GatewayResult.ok(self.store.update(table, values, filters))

    async def delete(self, table: str, filters: Filters) -> GatewayResult:
        return GatewayResult.ok(self.store.delete(table, filters))

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> GatewayResult:
        _logger.info("Local mode: embedding %s as inline data URL", path)
        return GatewayResult.ok(data_url(content, content_type))

    async def public_url(self, bucket: str, path: str) -> GatewayResult:
        return GatewayResult.ok(f"/{bucket}/{path}")

    async def sign_in(self, email: str, password: str) -> GatewayResult:
        return GatewayResult.ok(AuthSession(user=self.auth.sign_in(email)))

    async def sign_up(self, email: str, password: str) -> GatewayResult:
        return GatewayResult.ok(AuthSession(user=self.auth.sign_in(email)))

    async def sign_out(self) -> GatewayResult:
        self.auth.sign_out()
        return GatewayResult.ok(AuthSession(user=None))

    async def get_user(self) -> GatewayResult:
        return GatewayResult.ok(AuthSession(user=self.auth.current_user()))
