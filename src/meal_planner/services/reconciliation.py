"""Choose the authoritative copy of a per-user record.

Remote wins whenever it is reachable and non-empty. An empty remote is
filled from a non-empty local mirror. An unreachable remote leaves the
local mirror in charge; with no mirror at all an empty record is created
locally and, best effort, remotely.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from meal_planner.adapters.gateway import GatewayResult
from meal_planner.domain.sync import SyncSource
from meal_planner.services.background import BackgroundSync

T = TypeVar("T")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteRead(Generic[T]):
    """Result of reading a record remotely; value is None when absent."""

    reachable: bool
    value: T | None = None


@dataclass(frozen=True)
class ReconcileOutcome(Generic[T]):
    """The authoritative value and where it came from."""

    value: T
    source: SyncSource
    pushed: bool = False


@dataclass
class RecordChannel(Generic[T]):
    """Local and remote accessors for one record kind of one user."""

    label: str
    read_remote: Callable[[], Awaitable[RemoteRead[T]]]
    write_remote: Callable[[T], Awaitable[GatewayResult]]
    read_local: Callable[[], T | None]
    write_local: Callable[[T], None]
    is_empty: Callable[[T], bool]
    empty: Callable[[], T]
    sync_key: str | None = None


async def reconcile_record(
    channel: RecordChannel[T], background: BackgroundSync
) -> ReconcileOutcome[T]:
    """Run first-contact reconciliation for one record."""
    remote = await channel.read_remote()
    local = channel.read_local()

    if remote.reachable and remote.value is not None and not channel.is_empty(
        remote.value
    ):
        channel.write_local(remote.value)
        return ReconcileOutcome(value=remote.value, source=SyncSource.REMOTE)

    if remote.reachable:
        if local is not None and not channel.is_empty(local):
            pushed = await channel.write_remote(local)
            if pushed.is_ok:
                _logger.info("Pushed local %s to remote", channel.label)
                return ReconcileOutcome(
                    value=local, source=SyncSource.REMOTE, pushed=True
                )
            _logger.warning(
                "Pushing local %s failed: %s", channel.label, _message(pushed)
            )
            return ReconcileOutcome(value=local, source=SyncSource.LOCAL)
        value = remote.value if remote.value is not None else channel.empty()
        channel.write_local(value)
        return ReconcileOutcome(value=value, source=SyncSource.REMOTE)

    if local is not None:
        return ReconcileOutcome(value=local, source=SyncSource.LOCAL)

    value = channel.empty()
    channel.write_local(value)
    background.schedule(
        lambda: channel.write_remote(value),
        lambda result: _log_seed(channel.label, result),
        label=f"seed-{channel.label}",
        key=channel.sync_key,
    )
    return ReconcileOutcome(value=value, source=SyncSource.LOCAL)


def _log_seed(label: str, result: GatewayResult) -> None:
    if not result.is_ok:
        _logger.info("Initial remote %s not created: %s", label, _message(result))


def _message(result: GatewayResult) -> str:
    return result.error.message if result.error else ""
