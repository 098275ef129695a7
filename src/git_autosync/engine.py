"""The auto-sync engine: one watch session over one repository."""

import logging
from collections.abc import Callable
from datetime import datetime

from .commit import CommitCoordinator, utc_now
from .config import AutoPull, AutoPush, Config
from .constants import APP_NAME
from .diagnostics import DiagnosticsProvider, StaticDiagnostics
from .models import CommandModelSelector, ModelSelector
from .repository import Repository
from .scheduler import TriggerScheduler
from .sync import ConfirmForcePush, SyncCoordinator, SyncState

logger = logging.getLogger(APP_NAME)


class AutoSyncEngine:
    """Commits on save and keeps the branch in sync with its remote.

    `start()` subscribes to the repository's change notifications and arms
    the background push/pull timers; `stop()` cancels everything that has
    not started yet. Manual `commit`, `push` and `pull` bypass the debounce.

    Attributes:
        repository (Repository): The managed repository.
        state (SyncState): Push/pull flags for status displays.
    """

    def __init__(
        self,
        repository: Repository,
        *,
        diagnostics: DiagnosticsProvider | None = None,
        models: ModelSelector | None = None,
        confirm_force_push: ConfirmForcePush | None = None,
        config_loader: Callable[[], Config] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.config_loader = config_loader or (lambda: Config.load(repository.root))
        self.state = SyncState()
        self.sync = SyncCoordinator(self.state, self.config_loader, confirm_force_push)
        self.committer = CommitCoordinator(
            self.sync,
            diagnostics or StaticDiagnostics(),
            models or CommandModelSelector(self.config_loader().ai.command),
            self.config_loader,
            clock,
        )
        self.scheduler = self._new_scheduler()
        self._unsubscribe: Callable[[], None] | None = None

    def _new_scheduler(self) -> TriggerScheduler:
        return TriggerScheduler(
            self.committer.commit,
            lambda: self.config_loader().commit.auto_commit_delay,
        )

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> None:
        """Starts watching. Calling it again while running does nothing."""
        if self.running:
            return

        config = self.config_loader()
        name = self.repository.root.name

        if self.scheduler.closed:
            self.scheduler = self._new_scheduler()
        # Bind the scheduler to this loop before the watcher thread can call in.
        _ = self.scheduler.loop
        self._unsubscribe = self.repository.on_did_change(
            lambda: self.scheduler.notify_threadsafe(self.repository)
        )

        if config.sync.auto_push == AutoPush.AFTER_DELAY:
            self._start_interval("push", config.sync.auto_push_delay, self.push)
        if config.sync.auto_pull == AutoPull.AFTER_DELAY:
            self._start_interval("pull", config.sync.auto_pull_delay, self.pull)

        if config.sync.pull_on_open:
            self.scheduler.spawn(self.pull(), f"pull {name}")

        logger.info(
            f"WATCHING {name}: pattern '{config.commit.file_pattern}', "
            f"delay {config.commit.auto_commit_delay}ms."
        )

    def _start_interval(
        self, name: str, delay_ms: int, action: Callable[[], object]
    ) -> None:
        if delay_ms <= 0:
            logger.warning(f"Ignoring auto {name}: delay must be positive.")
            return
        self.scheduler.start_interval(name, delay_ms, action)

    async def stop(self) -> None:
        """Stops watching. In-flight operations are not cancelled."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.scheduler.dispose()
        self.state.clear_listeners()
        logger.info(f"STOPPED {self.repository.root.name}.")

    async def commit(self, message: str | None = None) -> bool:
        return await self.committer.commit(self.repository, message)

    async def push(self, force: bool = False) -> None:
        await self.sync.push(self.repository, force=force)

    async def pull(self) -> None:
        await self.sync.pull(self.repository)
