"""Meal history: append-only records with a local queue for outages."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from uuid import uuid4

from meal_planner.adapters.gateway import DataGateway, Filters, TableQuery
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.domain.dishes import Dish
from meal_planner.domain.history import (
    DishSummary,
    MealHistoryRecord,
    snapshot_totals,
)
from meal_planner.domain.sync import SyncSource, SyncStatus
from meal_planner.errors import SyncError, ValidationError

HISTORY_TABLE = "meal_history"

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryState:
    """Snapshot of the loaded history, newest meal date first."""

    user_id: str | None = None
    records: tuple[MealHistoryRecord, ...] = ()
    status: SyncStatus = SyncStatus()


@dataclass
class MealHistoryService:
    """Loads, appends, deletes and flushes meal history records."""

    gateway: DataGateway
    mirror: LocalMirror
    state: HistoryState = field(default_factory=HistoryState)

    @property
    def records(self) -> list[MealHistoryRecord]:
        return list(self.state.records)

    async def load(self, user_id: str) -> list[MealHistoryRecord]:
        """Read remote history plus any locally queued records."""
        result = await self.gateway.select(
            HISTORY_TABLE,
            TableQuery(
                filters=(("user_id", user_id),),
                order_by="meal_date",
                descending=True,
            ),
        )
        queued = self.mirror.read_history_queue(user_id)
        if result.error is not None:
            _logger.warning("Loading meal history failed: %s", result.error.message)
            remote: list[MealHistoryRecord] = []
            source = SyncSource.LOCAL
        else:
            remote = [MealHistoryRecord.from_row(row) for row in result.rows()]
            queued = self._drop_committed(
                user_id, queued, {_stamp(record.created_at) for record in remote}
            )
            source = SyncSource.LOCAL if queued else SyncSource.REMOTE
        self.state = HistoryState(
            user_id=user_id,
            records=_newest_first([*remote, *queued]),
            status=SyncStatus(source=source),
        )
        return self.records

    async def save_meal(
        self,
        user_id: str,
        dishes: Sequence[Dish],
        meal_date: date | None = None,
    ) -> MealHistoryRecord:
        """Snapshot the dishes and append a history record.

        A missing remote table or an exhausted transient failure queues the
        record locally instead.
        """
        if not dishes:
            raise ValidationError("dish_ids", "Select at least one dish")
        record = build_record(user_id, dishes, meal_date or date.today())
        result = await self.gateway.insert(
            HISTORY_TABLE, [record.to_row(include_id=False)]
        )
        if result.error is None:
            row = result.row()
            saved = MealHistoryRecord.from_row(row) if row else record
            if not saved.id:
                saved = record
            self._prepend(user_id, saved, SyncSource.REMOTE)
            return saved
        if not (result.error.is_missing_table or result.error.is_transient):
            raise SyncError(f"Saving the meal failed: {result.error.message}")
        _logger.info("Queueing meal locally: %s", result.error.message)
        queue = self.mirror.read_history_queue(user_id)
        self.mirror.write_history_queue(user_id, [record, *queue])
        self._prepend(user_id, record, SyncSource.LOCAL)
        return record

    async def delete(self, record_id: str) -> None:
        """Delete one record; other records are untouched."""
        user_id = self.state.user_id
        queue = self.mirror.read_history_queue(user_id) if user_id else []
        if any(record.id == record_id for record in queue):
            self.mirror.write_history_queue(
                user_id, [record for record in queue if record.id != record_id]
            )
        else:
            result = await self.gateway.delete(
                HISTORY_TABLE, Filters.eq(id=record_id)
            )
            if result.error is not None:
                raise SyncError(f"Deleting the meal failed: {result.error.message}")
        self.state = replace(
            self.state,
            records=tuple(
                record for record in self.state.records if record.id != record_id
            ),
        )

    async def flush_local(self, user_id: str) -> int:
        """Insert locally queued records remotely in one batch.

        Returns the number of records flushed; on failure the queue is kept
        for the next flush.
        """
        queue = self.mirror.read_history_queue(user_id)
        if not queue:
            return 0
        remote = await self._read_remote_records(user_id)
        if remote is None:
            return 0
        by_stamp = {_stamp(record.created_at): record for record in remote}
        pending = self._drop_committed(user_id, queue, set(by_stamp))
        pending_ids = {record.id for record in pending}
        already = [
            by_stamp[_stamp(record.created_at)]
            for record in queue
            if record.id not in pending_ids
        ]
        inserted: list[MealHistoryRecord] = []
        if pending:
            result = await self.gateway.insert(
                HISTORY_TABLE, [record.to_row(include_id=False) for record in pending]
            )
            if result.error is not None:
                _logger.warning(
                    "Flushing %s queued meals failed: %s",
                    len(pending),
                    result.error.message,
                )
                return 0
            inserted = [MealHistoryRecord.from_row(row) for row in result.rows()]
            if len(inserted) != len(pending) or not all(item.id for item in inserted):
                inserted = pending
        self.mirror.write_history_queue(user_id, [])
        inserted = [*inserted, *already]
        if self.state.user_id == user_id:
            queued_ids = {record.id for record in queue}
            kept = [r for r in self.state.records if r.id not in queued_ids]
            self.state = HistoryState(
                user_id=user_id,
                records=_newest_first([*inserted, *kept]),
                status=SyncStatus(source=SyncSource.REMOTE),
            )
        _logger.info("Flushed %s queued meals", len(queue))
        return len(queue)

    def reset(self) -> None:
        self.state = HistoryState()

    async def _read_remote_records(
        self, user_id: str
    ) -> list[MealHistoryRecord] | None:
        result = await self.gateway.select(
            HISTORY_TABLE, TableQuery(filters=(("user_id", user_id),))
        )
        if result.error is not None:
            _logger.warning(
                "Reading meal history before flush failed: %s", result.error.message
            )
            return None
        return [MealHistoryRecord.from_row(row) for row in result.rows()]

    def _drop_committed(
        self,
        user_id: str,
        queue: list[MealHistoryRecord],
        committed: set[datetime | None],
    ) -> list[MealHistoryRecord]:
        """Remove queued records whose insert reached the remote table.

        A timed-out insert may still have been committed; such a record is
        recognised by its creation time.
        """
        pending = [
            record for record in queue if not _is_committed(record, committed)
        ]
        if len(pending) != len(queue):
            _logger.info(
                "Dropping %s queued meals already stored remotely",
                len(queue) - len(pending),
            )
            self.mirror.write_history_queue(user_id, pending)
        return pending

    def _prepend(
        self, user_id: str, record: MealHistoryRecord, source: SyncSource
    ) -> None:
        records = self.state.records if self.state.user_id == user_id else ()
        self.state = HistoryState(
            user_id=user_id,
            records=_newest_first([record, *records]),
            status=SyncStatus(source=source),
        )


def build_record(
    user_id: str, dishes: Sequence[Dish], meal_date: date
) -> MealHistoryRecord:
    """Snapshot dishes and compute totals once, at save time."""
    summaries = tuple(DishSummary.from_dish(dish) for dish in dishes)
    totals = snapshot_totals(summaries)
    return MealHistoryRecord(
        id=f"local-{uuid4().hex}",
        user_id=user_id,
        meal_date=meal_date.isoformat(),
        dish_ids=tuple(dish.id for dish in dishes),
        dishes=summaries,
        total_calories=totals.calories,
        total_protein=totals.protein,
        total_carbs=totals.carbs,
        total_fat=totals.fat,
        created_at=datetime.now(tz=UTC).isoformat(),
    )


def _newest_first(records: list[MealHistoryRecord]) -> tuple[MealHistoryRecord, ...]:
    return tuple(sorted(records, key=lambda record: record.meal_date, reverse=True))


def _stamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _is_committed(
    record: MealHistoryRecord, committed: set[datetime | None]
) -> bool:
    stamp = _stamp(record.created_at)
    return stamp is not None and stamp in committed
