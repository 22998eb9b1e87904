"""Background tasks for non-blocking remote writes."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from meal_planner.adapters.gateway import GatewayResult

_logger = logging.getLogger(__name__)


@dataclass
class BackgroundSync:
    """Runs remote writes as tasks and reports each outcome to a callback.

    Writes sharing a key run one at a time in scheduling order. A write
    that has been superseded by a newer one for the same key is skipped
    if it has not started, and its outcome is not reported if it has.
    Tasks are not retried; the next mutation or session restore writes
    again.
    """

    _tasks: set[asyncio.Task[None]] = field(default_factory=set)
    _generations: dict[str, int] = field(default_factory=dict)
    _in_flight: dict[str, int] = field(default_factory=dict)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict)

    def schedule(
        self,
        operation: Callable[[], Awaitable[GatewayResult]],
        on_done: Callable[[GatewayResult], None],
        *,
        label: str,
        key: str | None = None,
    ) -> asyncio.Task[None]:
        """Start a remote write; must be called from a running event loop."""
        if key is None:
            coro = self._run_once(operation, on_done, label)
        else:
            generation = self._claim(key)
            coro = self._run_latest(key, generation, operation, on_done, label)
        task = asyncio.get_running_loop().create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_now(
        self,
        operation: Callable[[], Awaitable[GatewayResult]],
        *,
        label: str,
        key: str,
    ) -> GatewayResult:
        """Run a write in order after earlier writes for the key and await it.

        Writes for the key that are still queued are superseded.
        """
        self._claim(key)
        try:
            async with self._locks.setdefault(key, asyncio.Lock()):
                return await _guarded(operation, label)
        finally:
            self._release(key)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_once(
        self,
        operation: Callable[[], Awaitable[GatewayResult]],
        on_done: Callable[[GatewayResult], None],
        label: str,
    ) -> None:
        on_done(await _guarded(operation, label))

    async def _run_latest(
        self,
        key: str,
        generation: int,
        operation: Callable[[], Awaitable[GatewayResult]],
        on_done: Callable[[GatewayResult], None],
        label: str,
    ) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                if self._generations[key] != generation:
                    _logger.debug("Skipping superseded %s", label)
                    return
                result = await _guarded(operation, label)
            if self._generations[key] == generation:
                on_done(result)
        finally:
            self._release(key)

    def _claim(self, key: str) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        return generation

    def _release(self, key: str) -> None:
        self._in_flight[key] -= 1
        if not self._in_flight[key]:
            del self._in_flight[key]
            del self._generations[key]
            self._locks.pop(key, None)


async def _guarded(
    operation: Callable[[], Awaitable[GatewayResult]], label: str
) -> GatewayResult:
    try:
        return await operation()
    except Exception as exc:
        _logger.exception("Background %s crashed", label)
        return GatewayResult.fail(str(exc) or type(exc).__name__)
