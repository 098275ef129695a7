"""Shared fakes for the sync engine tests."""

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from git_autosync.config import AutoPull, AutoPush, Config, ValidationLevel
from git_autosync.models import ChatMessage
from git_autosync.repository import Change, ChangeKind, Ref, RefType, RepositoryChanges


class FakeRepository:
    """In-memory `Repository` that records every call."""

    def __init__(self, root: Path, remotes: bool = True, branch: str | None = "main"):
        self._root = root
        self.changes = RepositoryChanges()
        self.refs = [Ref("refs/heads/main", RefType.HEAD)]
        if remotes:
            self.refs.append(Ref("refs/remotes/origin/main", RefType.REMOTE_HEAD))
        self.branch = branch
        self.diffs: dict[str, str] = {}
        self.diff_calls: list[str] = []
        self.commits: list[dict[str, Any]] = []
        self.pushes: list[dict[str, Any]] = []
        self.pulls = 0
        self.push_errors: list[Exception | None] = []
        self.pull_error: Exception | None = None
        self.commit_error: Exception | None = None
        self.callbacks: list[Callable[[], None]] = []

    @property
    def root(self) -> Path:
        return self._root

    def add(self, name: str, kind: ChangeKind = ChangeKind.WORKING_TREE) -> Path:
        path = self._root / name
        target = {
            ChangeKind.WORKING_TREE: self.changes.working_tree,
            ChangeKind.INDEX: self.changes.index,
            ChangeKind.MERGE: self.changes.merge,
        }[kind]
        target.append(Change(path, kind))
        return path

    async def get_refs(self) -> list[Ref]:
        return list(self.refs)

    async def get_changes(self) -> RepositoryChanges:
        return self.changes

    async def current_branch(self) -> str | None:
        return self.branch

    async def diff_with_head(self, path: str) -> str:
        self.diff_calls.append(path)
        return self.diffs.get(path, f"+changed {path}")

    async def commit(
        self,
        message: str,
        *,
        all: bool = False,
        no_verify: bool = False,
        env: dict[str, str] | None = None,
    ) -> None:
        if self.commit_error:
            raise self.commit_error
        self.commits.append(
            {"message": message, "all": all, "no_verify": no_verify, "env": env}
        )

    async def push(
        self, remote: str, branch: str | None, use_tags: bool = False, mode: Any = None
    ) -> None:
        self.pushes.append(
            {"remote": remote, "branch": branch, "use_tags": use_tags, "mode": mode}
        )
        if self.push_errors:
            error = self.push_errors.pop(0)
            if error:
                raise error

    async def pull(self) -> None:
        self.pulls += 1
        if self.pull_error:
            raise self.pull_error

    def on_did_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        self.callbacks.append(callback)
        return lambda: self.callbacks.remove(callback)

    def fire(self) -> None:
        for callback in list(self.callbacks):
            callback()


class FakeModel:
    def __init__(self, chunks: Sequence[str]):
        self.chunks = list(chunks)
        self.requests: list[list[ChatMessage]] = []

    async def send_request(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        self.requests.append(list(messages))
        for chunk in self.chunks:
            yield chunk


class FakeSelector:
    def __init__(self, model: FakeModel | None = None):
        self.model = model
        self.families: list[str] = []

    async def select_model(self, family: str) -> FakeModel | None:
        self.families.append(family)
        return self.model


class VirtualHandle:
    def __init__(self, when: float, callback: Callable, args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualLoop:
    """Just enough of an event loop to drive timers on a virtual clock.

    Tasks are handed to the running asyncio loop when there is one, and
    otherwise recorded and closed.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.handles: list[VirtualHandle] = []
        self.tasks: list[Any] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable, *args: Any) -> VirtualHandle:
        handle = VirtualHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def call_soon_threadsafe(self, callback: Callable, *args: Any) -> None:
        callback(*args)

    def create_task(self, coro: Any) -> Any:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.tasks.append(coro)
            coro.close()
            return _DoneTask()
        task = loop.create_task(coro)
        self.tasks.append(task)
        return task

    def advance_to(self, when: float) -> None:
        while True:
            due = sorted(
                (h for h in self.handles if not h.cancelled and h.when <= when + 1e-9),
                key=lambda h: h.when,
            )
            if not due:
                break
            handle = due[0]
            self.handles.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = when

    def pending(self) -> list[VirtualHandle]:
        return [h for h in self.handles if not h.cancelled]


class _DoneTask:
    def add_done_callback(self, callback: Callable) -> None:
        pass


class Done:
    """An awaitable that completes immediately."""

    def __await__(self):
        return iter(())


@pytest.fixture(autouse=True)
def clear_config_cache() -> Any:
    """Ensures every test starts with a clean config cache."""
    Config._global_cache = None
    yield
    Config._global_cache = None


@pytest.fixture
def repo(tmp_path: Path) -> FakeRepository:
    return FakeRepository(tmp_path)


@pytest.fixture
def config() -> Config:
    """A default Config with background sync switched off."""
    conf = Config()
    conf.sync.auto_push = AutoPush.OFF
    conf.sync.auto_pull = AutoPull.OFF
    conf.sync.pull_on_open = False
    conf.commit.validation_level = ValidationLevel.NONE
    return conf
