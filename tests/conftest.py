"""Shared test fixtures."""

from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace

import pytest

from meal_planner.adapters.gateway import (
    Filters,
    GatewayError,
    GatewayResult,
    TableQuery,
)
from meal_planner.adapters.kv_storage import MemoryStorage
from meal_planner.adapters.local_gateway import LocalGateway
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.config import Settings
from meal_planner.containers import AppContainer, build_container
from meal_planner.domain.dishes import Dish, DishSource, is_meat_category
from meal_planner.services.background import BackgroundSync

SEED_CSV = Path(__file__).resolve().parent.parent / "data" / "recipes.csv"
USER_ID = "user-1"


def make_dish(  # noqa: PLR0913
    dish_id: str,
    name: str | None = None,
    category: str = "素菜",
    ingredients: str = "",
    calories: int | None = 100,
    protein: float | None = 10.0,
    carbs: float | None = 20.0,
    fat: float | None = 5.0,
    source: DishSource = DishSource.REMOTE,
) -> Dish:
    """Build a catalog dish for tests."""
    return Dish(
        id=dish_id,
        name=name or dish_id,
        category=category,
        ingredients=ingredients,
        calories=calories,
        protein=protein,
        carbs=carbs,
        fat=fat,
        is_meat=is_meat_category(category),
        source=source,
    )


@dataclass
class FakeResponse:
    data: object


class FakeApiError(Exception):
    """Mimics the PostgREST error raised by the Supabase client."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


@dataclass
class FakeTable:
    """Chainable query builder that records calls and replays queued results."""

    name: str
    response_queue: dict[str, list[object]] = field(
        default_factory=lambda: {
            "select": [],
            "insert": [],
            "upsert": [],
            "update": [],
            "delete": [],
        }
    )
    calls: list[str] = field(default_factory=list)
    last_payload: object | None = None
    last_filters: list[tuple[str, object]] = field(default_factory=list)
    last_on_conflict: str | None = None
    last_order: tuple[str, bool] | None = None
    single_requested: bool = False

    def queue(self, action: str, data: object) -> None:
        """Queue data, or an exception instance to raise, for an action."""
        self.response_queue[action].append(data)

    def select(self, *_args) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._start("select")
        return self

    def insert(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._start("insert")
        self.last_payload = payload
        return self

    def upsert(self, payload, on_conflict: str = "") -> "FakeTable":  # type: ignore[no-untyped-def]
        self._start("upsert")
        self.last_payload = payload
        self.last_on_conflict = on_conflict
        return self

    def update(self, payload) -> "FakeTable":  # type: ignore[no-untyped-def]
        self._start("update")
        self.last_payload = payload
        return self

    def delete(self) -> "FakeTable":
        self._start("delete")
        return self

    def eq(self, column: str, value) -> "FakeTable":  # type: ignore[no-untyped-def]
        self.last_filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeTable":
        self.last_order = (column, desc)
        return self

    def limit(self, _count: int) -> "FakeTable":
        return self

    def single(self) -> "FakeTable":
        self.single_requested = True
        return self

    def execute(self) -> FakeResponse:
        action = getattr(self, "_action", "select")
        self.calls.append(action)
        queue = self.response_queue.get(action, [])
        data = queue.pop(0) if queue else []
        if isinstance(data, Exception):
            raise data
        return FakeResponse(data=data)

    def _start(self, action: str) -> None:
        self._action = action
        self.last_filters = []
        self.single_requested = False


@dataclass
class FakeBucket:
    name: str
    uploads: list[tuple[str, bytes, dict[str, str]]] = field(default_factory=list)
    upload_errors: list[Exception] = field(default_factory=list)

    def upload(self, path: str, content: bytes, options: dict[str, str]) -> object:
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        self.uploads.append((path, content, options))
        return SimpleNamespace(path=path)

    def get_public_url(self, path: str) -> str:
        return f"https://cdn.example.test/{self.name}/{path}"


@dataclass
class FakeStorage:
    buckets: dict[str, FakeBucket] = field(default_factory=dict)

    def from_(self, name: str) -> FakeBucket:
        if name not in self.buckets:
            self.buckets[name] = FakeBucket(name=name)
        return self.buckets[name]


@dataclass
class FakeAuth:
    """Auth client double; one registered account per email."""

    accounts: dict[str, str] = field(default_factory=dict)
    current: object | None = None

    def sign_up(self, credentials: dict[str, str]) -> object:
        email = credentials["email"]
        if email in self.accounts:
            raise FakeApiError("User already registered", code="422")
        self.accounts[email] = credentials["password"]
        return self._session(email)

    def sign_in_with_password(self, credentials: dict[str, str]) -> object:
        email = credentials["email"]
        if self.accounts.get(email) != credentials["password"]:
            raise FakeApiError("Invalid login credentials", code="400")
        return self._session(email)

    def sign_out(self) -> None:
        self.current = None

    def get_user(self) -> object | None:
        if self.current is None:
            return None
        return SimpleNamespace(user=self.current)

    def _session(self, email: str) -> object:
        self.current = SimpleNamespace(id=f"uid-{email}", email=email)
        return SimpleNamespace(user=self.current)


@dataclass
class FakeSupabaseClient:
    tables: dict[str, FakeTable] = field(default_factory=dict)
    storage: FakeStorage = field(default_factory=FakeStorage)
    auth: FakeAuth = field(default_factory=FakeAuth)

    def table(self, name: str) -> FakeTable:
        if name not in self.tables:
            self.tables[name] = FakeTable(name=name)
        return self.tables[name]


@dataclass
class ScriptedGateway(LocalGateway):
    """Local gateway whose calls can be made to fail per ``action:table``."""

    failures: dict[str, GatewayError] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def fail(self, key: str, message: str, code: str | None = None) -> None:
        self.failures[key] = GatewayError(message=message, code=code)

    def _scripted(self, key: str) -> GatewayResult | None:
        self.calls.append(key)
        error = self.failures.get(key)
        return GatewayResult(error=error) if error else None

    async def select(self, table: str, query: TableQuery) -> GatewayResult:
        return self._scripted(f"select:{table}") or await super().select(table, query)

    async def insert(
        self, table: str, rows: list[dict[str, object]]
    ) -> GatewayResult:
        return self._scripted(f"insert:{table}") or await super().insert(table, rows)

    async def upsert(
        self, table: str, row: dict[str, object], on_conflict: str
    ) -> GatewayResult:
        return self._scripted(f"upsert:{table}") or await super().upsert(
            table, row, on_conflict
        )

    async def update(
        self, table: str, values: dict[str, object], filters: Filters
    ) -> GatewayResult:
        return self._scripted(f"update:{table}") or await super().update(
            table, values, filters
        )

    async def delete(self, table: str, filters: Filters) -> GatewayResult:
        return self._scripted(f"delete:{table}") or await super().delete(
            table, filters
        )

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> GatewayResult:
        return self._scripted(f"upload:{bucket}") or await super().upload(
            bucket, path, content, content_type
        )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url=None,
        supabase_anon_key=None,
        storage_path=str(tmp_path / "storage.json"),
        seed_csv_path=str(SEED_CSV),
        write_retry_delay_seconds=0.0,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def gateway(storage: MemoryStorage) -> ScriptedGateway:
    return ScriptedGateway(storage)


@pytest.fixture
def mirror(storage: MemoryStorage) -> LocalMirror:
    return LocalMirror(storage)


@pytest.fixture
def background() -> BackgroundSync:
    return BackgroundSync()


@pytest.fixture
def container(
    settings: Settings, storage: MemoryStorage, gateway: ScriptedGateway
) -> AppContainer:
    return build_container(settings, storage=storage, gateway=gateway)
