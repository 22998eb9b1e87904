"""Selected-dish state with local mirror and remote sync."""

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from meal_planner.adapters.gateway import DataGateway, GatewayResult, TableQuery
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.domain.sync import SyncSource, SyncStatus
from meal_planner.services.background import BackgroundSync
from meal_planner.services.reconciliation import (
    RecordChannel,
    RemoteRead,
    reconcile_record,
)

SELECTIONS_TABLE = "user_selections"

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionState:
    """Snapshot of the current selection."""

    user_id: str | None = None
    selected: tuple[str, ...] = ()
    status: SyncStatus = SyncStatus()


@dataclass
class SelectionService:
    """Owns the selection; every mutation replaces the state snapshot."""

    gateway: DataGateway
    mirror: LocalMirror
    background: BackgroundSync
    state: SelectionState = field(default_factory=SelectionState)

    @property
    def selected(self) -> list[str]:
        return list(self.state.selected)

    async def restore(self, user_id: str) -> SelectionState:
        """Reconcile the stored selection for a newly established session."""
        self.state = replace(
            self.state, user_id=user_id, status=replace(self.state.status, syncing=True)
        )
        outcome = await reconcile_record(self._channel(user_id), self.background)
        if self.state.user_id != user_id:
            return self.state
        self.state = SelectionState(
            user_id=user_id,
            selected=tuple(outcome.value),
            status=SyncStatus(source=outcome.source),
        )
        return self.state

    async def initialize_remote(self, user_id: str) -> GatewayResult:
        """Create an empty remote row for a new account."""
        return await self._write_remote(user_id, [])

    def toggle(self, dish_id: str) -> list[str]:
        """Add or remove a dish id, preserving insertion order."""
        if dish_id in self.state.selected:
            selected = tuple(item for item in self.state.selected if item != dish_id)
        else:
            selected = (*self.state.selected, dish_id)
        self._commit(selected)
        return self.selected

    def replace_all(self, dish_ids: list[str]) -> list[str]:
        """Replace the selection, dropping duplicates."""
        self._commit(tuple(dict.fromkeys(dish_ids)))
        return self.selected

    def clear(self) -> None:
        self._commit(())

    def reset(self) -> None:
        """Forget the in-memory selection on sign-out."""
        self.state = SelectionState()

    def _commit(self, selected: tuple[str, ...]) -> None:
        self.state = replace(self.state, selected=selected)
        user_id = self.state.user_id
        if user_id is None:
            return
        self.mirror.write_selection(user_id, list(selected))
        self.state = replace(
            self.state, status=replace(self.state.status, syncing=True)
        )
        self.background.schedule(
            lambda: self._write_remote(user_id, list(selected)),
            lambda result: self._on_remote_write(user_id, result),
            label="selection-sync",
            key=_sync_key(user_id),
        )

    def _on_remote_write(self, user_id: str, result: GatewayResult) -> None:
        if self.state.user_id != user_id:
            return
        if result.is_ok:
            status = SyncStatus(source=SyncSource.REMOTE)
        else:
            message = result.error.message if result.error else None
            _logger.warning("Selection kept locally only: %s", message)
            status = SyncStatus(source=SyncSource.LOCAL, last_error=message)
        self.state = replace(self.state, status=status)

    def _channel(self, user_id: str) -> RecordChannel[list[str]]:
        return RecordChannel(
            label="selection",
            read_remote=lambda: self._read_remote(user_id),
            write_remote=lambda value: self._write_remote(user_id, value),
            read_local=lambda: self.mirror.read_selection(user_id),
            write_local=lambda value: self.mirror.write_selection(user_id, value),
            is_empty=lambda value: not value,
            empty=list,
            sync_key=_sync_key(user_id),
        )

    async def _read_remote(self, user_id: str) -> RemoteRead[list[str]]:
        result = await self.gateway.select(
            SELECTIONS_TABLE,
            TableQuery(
                columns="dish_ids", filters=(("user_id", user_id),), single=True
            ),
        )
        if result.error is not None:
            if result.error.is_not_found:
                return RemoteRead(reachable=True)
            return RemoteRead(reachable=False)
        row = result.row() or {}
        dish_ids = row.get("dish_ids")
        if not isinstance(dish_ids, list):
            return RemoteRead(reachable=True)
        return RemoteRead(reachable=True, value=[str(item) for item in dish_ids])

    async def _write_remote(self, user_id: str, dish_ids: list[str]) -> GatewayResult:
        return await self.gateway.upsert(
            SELECTIONS_TABLE,
            {
                "user_id": user_id,
                "dish_ids": list(dish_ids),
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id",
        )


def _sync_key(user_id: str) -> str:
    return f"{SELECTIONS_TABLE}:{user_id}"
