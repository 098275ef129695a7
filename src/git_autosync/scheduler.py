import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from .constants import APP_NAME
from .repository import Repository

logger = logging.getLogger(APP_NAME)


class TriggerScheduler:
    """Debounces change notifications into one commit per quiet period.

    Each repository (keyed by its root path) has at most one pending timer.
    A new notification cancels the pending timer and starts a fresh one, so
    a burst collapses into a single call made `delay` after the last event.
    Fixed-interval timers for background push/pull run alongside.

    Spawned work is not serialized: a debounced commit, an interval push and
    a manual command may all be in flight together.
    """

    def __init__(
        self,
        action: Callable[[Repository], Awaitable[object]],
        delay_ms: Callable[[], int],
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initializes the scheduler.

        Args:
            action: Coroutine function run once per debounced burst.
            delay_ms: Returns the current debounce delay in milliseconds.
            loop: Event loop owning the timers; the running loop when None.
        """
        self.action = action
        self.delay_ms = delay_ms
        self._loop = loop
        self._pending: dict[Path, asyncio.TimerHandle] = {}
        self._intervals: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self.closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def has_pending(self, repository: Repository) -> bool:
        return repository.root in self._pending

    def on_repository_changed(self, repository: Repository) -> None:
        """(Re)starts the debounce timer for a repository.

        Must be called on the loop thread. Ignored once disposed.
        """
        if self.closed:
            return
        key = repository.root
        if handle := self._pending.pop(key, None):
            handle.cancel()
        delay = max(self.delay_ms(), 0) / 1000
        self._pending[key] = self.loop.call_later(delay, self._fire, repository)

    def notify_threadsafe(self, repository: Repository) -> None:
        """Schedules `on_repository_changed` from a foreign thread."""
        self.loop.call_soon_threadsafe(self.on_repository_changed, repository)

    def _fire(self, repository: Repository) -> None:
        self._pending.pop(repository.root, None)
        self.spawn(self.action(repository), f"commit {repository.root.name}")

    def spawn(self, coro: Awaitable[object], label: str) -> asyncio.Task:
        """Runs a coroutine as an independent task, logging its failure."""

        async def _guarded() -> None:
            try:
                await coro
            except Exception:
                logger.exception(f"TASK ERROR ({label})")

        task = self.loop.create_task(_guarded())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def start_interval(
        self, name: str, delay_ms: int, action: Callable[[], Awaitable[object]]
    ) -> None:
        """Starts a timer that spawns `action()` every `delay_ms` milliseconds.

        Ticks do not wait for the previous run to finish. Starting a timer
        under an existing name replaces it.
        """
        self.stop_interval(name)

        async def _tick() -> None:
            while True:
                await asyncio.sleep(delay_ms / 1000)
                self.spawn(action(), name)

        self._intervals[name] = self.loop.create_task(_tick())

    def stop_interval(self, name: str) -> None:
        if task := self._intervals.pop(name, None):
            task.cancel()

    def dispose(self) -> None:
        """Cancels pending debounce timers and interval timers.

        Work that already started is left to finish.
        """
        self.closed = True
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        for name in list(self._intervals):
            self.stop_interval(name)

    async def drain(self) -> None:
        """Waits for spawned work that is still running."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
