import logging
import os
from collections.abc import Callable
from datetime import datetime, timezone

from . import gate
from .config import AutoPull, AutoPush, Config
from .constants import APP_NAME
from .diagnostics import DiagnosticsProvider
from .message import resolve_message
from .models import ModelSelector
from .repository import Repository
from .sync import SyncCoordinator

logger = logging.getLogger(APP_NAME)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def commit_timestamp_env(now: datetime) -> dict[str, str]:
    """Builds an environment that pins the commit dates.

    Both author and committer dates are set to `now` in UTC so that stored
    timestamps do not depend on the local zone. The process environment is
    left untouched; the returned copy is passed to the commit call only.

    Args:
        now (datetime): The commit instant (timezone-aware).

    Returns:
        dict[str, str]: A copy of os.environ with GIT_AUTHOR_DATE and
        GIT_COMMITTER_DATE set.
    """
    stamp = now.astimezone(timezone.utc).isoformat()
    env = os.environ.copy()
    env["GIT_AUTHOR_DATE"] = stamp
    env["GIT_COMMITTER_DATE"] = stamp
    return env


class CommitCoordinator:
    """Gates, messages, and commits a repository's pending changes.

    Attributes:
        sync (SyncCoordinator): Used for on-commit push and pull.
        diagnostics (DiagnosticsProvider): Consulted by the eligibility gate.
        models (ModelSelector): Source of text models for generated messages.
        config_loader (Callable[[], Config]): Returns a fresh config snapshot.
        clock (Callable[[], datetime]): Returns the current aware time.
    """

    def __init__(
        self,
        sync: SyncCoordinator,
        diagnostics: DiagnosticsProvider,
        models: ModelSelector,
        config_loader: Callable[[], Config],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sync = sync
        self.diagnostics = diagnostics
        self.models = models
        self.config_loader = config_loader
        self.clock = clock

    async def commit(self, repository: Repository, message: str | None = None) -> bool:
        """Commits all pending changes if they pass the eligibility gate.

        Steps:
        1. Checks the gate (pattern match and diagnostics).
        2. Resolves the message (explicit, generated, or template).
        3. Commits with every change staged and pinned UTC dates.
        4. Pushes and/or pulls when configured to do so on commit.

        Args:
            repository (Repository): The repository to commit.
            message (str | None): An explicit message, skipping generation.

        Returns:
            bool: True if a commit was made, False if the changes were ineligible.
        """
        config = self.config_loader()
        name = repository.root.name

        verdict = await gate.is_eligible(repository, self.diagnostics, config)
        if not verdict.eligible:
            logger.debug(f"SKIPPED {name}: {verdict.reason}")
            return False

        now = self.clock()
        commit_message = await resolve_message(
            repository, verdict.paths, config, self.models, now, explicit=message
        )

        await repository.commit(
            commit_message,
            all=True,
            no_verify=config.commit.no_verify,
            env=commit_timestamp_env(now),
        )
        logger.info(f"COMMIT {name}: {commit_message}")

        if config.sync.auto_push == AutoPush.ON_COMMIT:
            await self.sync.push(repository)

        if config.sync.auto_pull == AutoPull.ON_COMMIT:
            await self.sync.pull(repository)

        return True
