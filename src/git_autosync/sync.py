"""Push and pull against the configured remote."""

import logging
from collections.abc import Awaitable, Callable

from .config import AutoPull, Config, PushMode
from .constants import APP_NAME, CONFLICT_MESSAGE
from .repository import ForcePushMode, RefType, Repository

logger = logging.getLogger(APP_NAME)

ConfirmForcePush = Callable[[str], Awaitable[bool]]
StateListener = Callable[["SyncState"], None]


class SyncState:
    """In-progress flags for push and pull, observable by status displays.

    Push and pull are not serialized against each other, so observers may
    see both flags set at once.
    """

    def __init__(self) -> None:
        self._is_pushing = False
        self._is_pulling = False
        self._listeners: list[StateListener] = []

    @property
    def is_pushing(self) -> bool:
        return self._is_pushing

    @is_pushing.setter
    def is_pushing(self, value: bool) -> None:
        if value != self._is_pushing:
            self._is_pushing = value
            self._notify()

    @property
    def is_pulling(self) -> bool:
        return self._is_pulling

    @is_pulling.setter
    def is_pulling(self, value: bool) -> None:
        if value != self._is_pulling:
            self._is_pulling = value
            self._notify()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Registers a listener called after every flag change.

        Returns:
            Callable[[], None]: Removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Sync state listener failed")


async def has_remotes(repository: Repository) -> bool:
    """Returns True if the repository knows at least one remote branch."""
    refs = await repository.get_refs()
    return any(ref.type == RefType.REMOTE_HEAD for ref in refs)


async def _decline(_message: str) -> bool:
    return False


class SyncCoordinator:
    """Runs pushes and pulls, keeping `SyncState` current.

    A rejected push is offered one forced retry through `confirm_force_push`;
    no other failure is retried.
    """

    def __init__(
        self,
        state: SyncState,
        config_loader: Callable[[], Config],
        confirm_force_push: ConfirmForcePush | None = None,
    ):
        self.state = state
        self.config_loader = config_loader
        self.confirm_force_push = confirm_force_push or _decline

    async def pull(self, repository: Repository) -> None:
        """Pulls from the upstream; a no-op when the repository has no remotes."""
        if not await has_remotes(repository):
            return

        self.state.is_pulling = True
        try:
            await repository.pull()
            logger.info(f"PULL {repository.root.name}: Done.")
        finally:
            self.state.is_pulling = False

    async def push(self, repository: Repository, force: bool = False) -> None:
        """Pushes the current branch; a no-op when the repository has no remotes.

        Args:
            repository (Repository): The repository to push.
            force (bool): Skip straight to a forced push.

        Raises:
            RuntimeError: If a forced push fails.
        """
        if not await has_remotes(repository):
            return

        config = self.config_loader()
        try:
            await self._attempt(repository, config, force)
            return
        except Exception as e:
            if force:
                raise
            logger.warning(f"PUSH ERROR {repository.root.name}: {e}")

        if not await self.confirm_force_push(CONFLICT_MESSAGE):
            logger.info(f"PUSH {repository.root.name}: Force push declined.")
            return

        await self._attempt(repository, config, force=True)

    async def _attempt(self, repository: Repository, config: Config, force: bool) -> None:
        self.state.is_pushing = True
        try:
            if config.sync.auto_pull == AutoPull.ON_PUSH:
                await self.pull(repository)

            branch = await repository.current_branch()
            await repository.push(
                config.sync.remote_name,
                branch,
                use_tags=False,
                mode=_push_mode(config, force),
            )
            logger.info(f"SUCCESS {repository.root.name}: Pushed.")
        finally:
            self.state.is_pushing = False


def _push_mode(config: Config, force: bool) -> ForcePushMode | None:
    if force:
        return ForcePushMode.FORCE
    if config.sync.push_mode == PushMode.FORCE_PUSH:
        return ForcePushMode.FORCE
    if config.sync.push_mode == PushMode.FORCE_PUSH_WITH_LEASE:
        return ForcePushMode.FORCE_WITH_LEASE
    return None
