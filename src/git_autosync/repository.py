"""Repository capability: the data model and the git-backed implementation.

The sync engine never talks to git directly. It operates on an object
implementing the `Repository` protocol, which `GitRepository` provides on
top of the blocking `GitRepo` wrapper by running each call in a worker
thread.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from .git_wrapper import GitRepo
from .watcher import ChangeWatcher


class ChangeKind(Enum):
    WORKING_TREE = "working-tree"
    INDEX = "index"
    MERGE = "merge"


class RefType(Enum):
    HEAD = "head"
    REMOTE_HEAD = "remote-head"
    TAG = "tag"


class ForcePushMode(Enum):
    FORCE = "--force"
    FORCE_WITH_LEASE = "--force-with-lease"


@dataclass(frozen=True)
class Change:
    """A changed file.

    Attributes:
        path (Path): Absolute path of the file.
        kind (ChangeKind): Which change list reported it.
    """

    path: Path
    kind: ChangeKind

    @property
    def uri(self) -> str:
        return self.path.as_uri()


@dataclass(frozen=True)
class Ref:
    name: str
    type: RefType


@dataclass
class RepositoryChanges:
    """The three change lists of a repository status."""

    working_tree: list[Change] = field(default_factory=list)
    index: list[Change] = field(default_factory=list)
    merge: list[Change] = field(default_factory=list)


class Repository(Protocol):
    """What the sync engine needs from a version-controlled working tree."""

    @property
    def root(self) -> Path: ...

    async def get_refs(self) -> list[Ref]: ...

    async def get_changes(self) -> RepositoryChanges: ...

    async def current_branch(self) -> str | None: ...

    async def diff_with_head(self, path: str) -> str: ...

    async def commit(
        self,
        message: str,
        *,
        all: bool = False,
        no_verify: bool = False,
        env: dict[str, str] | None = None,
    ) -> None: ...

    async def push(
        self,
        remote: str,
        branch: str | None,
        use_tags: bool = False,
        mode: ForcePushMode | None = None,
    ) -> None: ...

    async def pull(self) -> None: ...

    def on_did_change(self, callback: Callable[[], None]) -> Callable[[], None]: ...


def classify_ref(name: str) -> RefType | None:
    """Maps a full reference name to its type, or None for other namespaces."""
    if name.startswith("refs/heads/"):
        return RefType.HEAD
    if name.startswith("refs/remotes/"):
        # refs/remotes/<remote>/HEAD is a symbolic pointer, not a branch.
        return None if name.endswith("/HEAD") else RefType.REMOTE_HEAD
    if name.startswith("refs/tags/"):
        return RefType.TAG
    return None


class GitRepository:
    """`Repository` implementation backed by the git executable.

    Attributes:
        git (GitRepo): The blocking command wrapper.
    """

    def __init__(self, path: Path, watcher: ChangeWatcher | None = None):
        self.git = GitRepo(path)
        self._watcher = watcher or ChangeWatcher(path)

    @property
    def root(self) -> Path:
        return self.git.path

    async def get_refs(self) -> list[Ref]:
        names = await asyncio.to_thread(self.git.list_refs)
        refs = []
        for name in names:
            ref_type = classify_ref(name)
            if ref_type is not None:
                refs.append(Ref(name=name, type=ref_type))
        return refs

    async def get_changes(self) -> RepositoryChanges:
        entries = await asyncio.to_thread(self.git.status_entries)
        changes = RepositoryChanges()
        for entry in entries:
            path = self.root / entry.path
            if entry.is_merge:
                changes.merge.append(Change(path, ChangeKind.MERGE))
                continue
            if entry.is_untracked:
                changes.working_tree.append(Change(path, ChangeKind.WORKING_TREE))
                continue
            if entry.index not in " ?!":
                changes.index.append(Change(path, ChangeKind.INDEX))
            if entry.worktree not in " ?!":
                changes.working_tree.append(Change(path, ChangeKind.WORKING_TREE))
        return changes

    async def current_branch(self) -> str | None:
        return await asyncio.to_thread(self.git.current_branch)

    async def diff_with_head(self, path: str) -> str:
        return await asyncio.to_thread(self.git.diff_head, path)

    async def commit(
        self,
        message: str,
        *,
        all: bool = False,
        no_verify: bool = False,
        env: dict[str, str] | None = None,
    ) -> None:
        def _commit() -> None:
            if all:
                self.git.add_all()
            self.git.commit(message, no_verify=no_verify, env=env)

        await asyncio.to_thread(_commit)

    async def push(
        self,
        remote: str,
        branch: str | None,
        use_tags: bool = False,
        mode: ForcePushMode | None = None,
    ) -> None:
        await asyncio.to_thread(
            self.git.push,
            remote,
            branch,
            use_tags,
            mode.value if mode else None,
        )

    async def pull(self) -> None:
        await asyncio.to_thread(self.git.pull)

    def on_did_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._watcher.subscribe(callback)
