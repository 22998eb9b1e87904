"""Domain types describing synchronization state."""

from dataclasses import dataclass
from enum import StrEnum


class SyncSource(StrEnum):
    """Whether displayed data came from the remote backend or the local mirror."""

    REMOTE = "remote"
    LOCAL = "local"


@dataclass(frozen=True)
class SyncStatus:
    """Visible sync indicator for one record kind."""

    source: SyncSource | None = None
    syncing: bool = False
    last_error: str | None = None
