"""Tabular CRUD emulation over key-value storage."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cmp_to_key
from uuid import uuid4

from meal_planner.adapters.gateway import Filters, TableQuery
from meal_planner.adapters.kv_storage import KeyValueStorage, read_json, write_json

DB_STORAGE_KEY = "mock-supabase-db"

Row = dict[str, object]


@dataclass(frozen=True)
class TableSpec:
    """Per-table storage rules.

    ``upsert_key`` is the column used to find an existing row when an
    upserted row carries no explicit ``id``.
    """

    name: str
    upsert_key: str | None = None


TABLE_SPECS: dict[str, TableSpec] = {
    spec.name: spec
    for spec in (
        TableSpec("dishes"),
        TableSpec("user_dishes"),
        TableSpec("meal_history"),
        TableSpec("user_selections", upsert_key="user_id"),
        TableSpec("shopping_cart", upsert_key="user_id"),
    )
}


def table_spec(table: str) -> TableSpec:
    """Return the spec for a table; unknown tables key upserts by id only."""
    return TABLE_SPECS.get(table) or TableSpec(table)


@dataclass
class LocalTableStore:
    """Mapping of table name to insertion-ordered rows, persisted on every write."""

    storage: KeyValueStorage
    _tables: dict[str, list[Row]] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self._tables = self._read()

    def rows(self, table: str) -> list[Row]:
        """Return a copy of every row in a table."""
        return [dict(row) for row in self._tables.get(table, [])]

    def select(self, table: str, query: TableQuery) -> list[Row]:
        """Filter, order and limit rows, then project columns."""
        rows = [
            row
            for row in self._tables.get(table, [])
            if _matches(row, query.filters)
        ]
        if query.order_by:
            rows = _sorted(rows, query.order_by, query.descending)
        if query.limit is not None:
            rows = rows[: query.limit]
        return [_project(row, query.columns) for row in rows]

    def insert(self, table: str, rows: list[Row]) -> list[Row]:
        """Append rows, assigning ids and creation timestamps when absent."""
        inserted = []
        for row in rows:
            stored = dict(row)
            if not stored.get("id"):
                stored["id"] = _generate_id(table)
            if not stored.get("created_at"):
                stored["created_at"] = _now_iso()
            inserted.append(stored)
        self._tables.setdefault(table, []).extend(inserted)
        self._persist()
        return [dict(row) for row in inserted]

    def upsert(self, table: str, row: Row, on_conflict: str | None = None) -> Row:
        """Merge into the row sharing the key, else append one."""
        key_column = _resolve_key_column(table, row, on_conflict)
        rows = self._tables.setdefault(table, [])
        key_value = row.get(key_column) if key_column else None
        if key_value is not None:
            for index, existing in enumerate(rows):
                if existing.get(key_column) == key_value:
                    merged = {**existing, **row}
                    rows[index] = merged
                    self._persist()
                    return dict(merged)
        stored = {"id": row.get("id") or _generate_id(table), **row}
        stored.setdefault("created_at", _now_iso())
        rows.append(stored)
        self._persist()
        return dict(stored)

    def update(self, table: str, values: Row, filters: Filters) -> list[Row]:
        """Merge values into every row matching all filters."""
        rows = self._tables.get(table)
        if not rows:
            return []
        updated = []
        for index, row in enumerate(rows):
            if _matches(row, filters.conditions):
                rows[index] = {**row, **values}
                updated.append(dict(rows[index]))
        if updated:
            self._persist()
        return updated

    def delete(self, table: str, filters: Filters) -> list[Row]:
        """Remove every row matching all filters."""
        rows = self._tables.get(table)
        if not rows:
            return []
        kept = [row for row in rows if not _matches(row, filters.conditions)]
        removed = [row for row in rows if _matches(row, filters.conditions)]
        self._tables[table] = kept
        if removed:
            self._persist()
        return removed

    def _read(self) -> dict[str, list[Row]]:
        payload = read_json(self.storage, DB_STORAGE_KEY)
        if not isinstance(payload, dict):
            return {}
        tables: dict[str, list[Row]] = {}
        for name, rows in payload.items():
            if isinstance(rows, list):
                tables[str(name)] = [row for row in rows if isinstance(row, dict)]
        return tables

    def _persist(self) -> None:
        write_json(self.storage, DB_STORAGE_KEY, self._tables)


def _resolve_key_column(table: str, row: Row, on_conflict: str | None) -> str | None:
    if row.get("id") is not None:
        return "id"
    if on_conflict:
        return on_conflict
    return table_spec(table).upsert_key


def _matches(row: Row, conditions: tuple[tuple[str, object], ...]) -> bool:
    return all(row.get(column) == value for column, value in conditions)


def _sorted(rows: list[Row], column: str, descending: bool) -> list[Row]:
    def compare(left: Row, right: Row) -> int:
        a = left.get(column)
        b = right.get(column)
        if a == b:
            return 0
        try:
            greater = a > b  # type: ignore[operator]
        except TypeError:
            greater = str(a) > str(b)
        return 1 if greater else -1

    return sorted(rows, key=cmp_to_key(compare), reverse=descending)


def _project(row: Row, columns: str) -> Row:
    if not columns or columns.strip() == "*":
        return dict(row)
    names = [name.strip() for name in columns.split(",") if name.strip()]
    return {name: row.get(name) for name in names}


def _generate_id(table: str) -> str:
    return f"{table}-{uuid4().hex}"


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()
