"""git-autosync: commit on save and keep a git branch in sync with its remote.

This package provides the sync engine (debounced commit scheduling, commit
eligibility gating, commit message resolution, push/pull with force-push
recovery), the git-backed repository capability, and the command-line
interface.
"""

from . import (
    cli,
    commit,
    config,
    constants,
    diagnostics,
    engine,
    gate,
    git_wrapper,
    message,
    models,
    repository,
    scheduler,
    sync,
    watcher,
)

__all__ = [
    "cli",
    "commit",
    "config",
    "constants",
    "diagnostics",
    "engine",
    "gate",
    "git_wrapper",
    "message",
    "models",
    "repository",
    "scheduler",
    "sync",
    "watcher",
]
