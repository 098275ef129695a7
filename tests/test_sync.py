"""Tests for push, pull, and the forced-retry protocol."""

import pytest
from conftest import FakeRepository

from git_autosync.config import AutoPull, Config, PushMode
from git_autosync.constants import CONFLICT_MESSAGE
from git_autosync.repository import ForcePushMode
from git_autosync.sync import SyncCoordinator, SyncState, has_remotes


class Recorder:
    """Confirm callback that records prompts and answers a fixed value."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.prompts: list[str] = []

    async def __call__(self, message: str) -> bool:
        self.prompts.append(message)
        return self.answer


def _flags(state: SyncState) -> list[tuple[bool, bool]]:
    seen: list[tuple[bool, bool]] = []
    state.subscribe(lambda s: seen.append((s.is_pushing, s.is_pulling)))
    return seen


@pytest.mark.asyncio
async def test_has_remotes(tmp_path) -> None:
    """Only remote-tracking refs count as remotes."""
    assert await has_remotes(FakeRepository(tmp_path)) is True
    assert await has_remotes(FakeRepository(tmp_path, remotes=False)) is False


@pytest.mark.asyncio
async def test_no_remotes_is_a_silent_noop(tmp_path, config: Config) -> None:
    """Without remotes nothing runs and no flag is ever raised."""
    repo = FakeRepository(tmp_path, remotes=False)
    state = SyncState()
    seen = _flags(state)
    sync = SyncCoordinator(state, lambda: config)

    await sync.push(repo)
    await sync.pull(repo)

    assert repo.pushes == []
    assert repo.pulls == 0
    assert seen == []


@pytest.mark.asyncio
async def test_pull_toggles_flag(repo: FakeRepository, config: Config) -> None:
    """The pulling flag is raised for the duration of the pull."""
    state = SyncState()
    seen = _flags(state)

    await SyncCoordinator(state, lambda: config).pull(repo)

    assert repo.pulls == 1
    assert seen == [(False, True), (False, False)]


@pytest.mark.asyncio
async def test_pull_failure_resets_flag(repo: FakeRepository, config: Config) -> None:
    """A failing pull propagates and leaves the flag cleared."""
    state = SyncState()
    repo.pull_error = RuntimeError("Git error: not possible to fast-forward")

    with pytest.raises(RuntimeError, match="fast-forward"):
        await SyncCoordinator(state, lambda: config).pull(repo)

    assert state.is_pulling is False


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        (PushMode.PUSH, None),
        (PushMode.FORCE_PUSH, ForcePushMode.FORCE),
        (PushMode.FORCE_PUSH_WITH_LEASE, ForcePushMode.FORCE_WITH_LEASE),
    ],
)
@pytest.mark.asyncio
async def test_push_mode_mapping(
    repo: FakeRepository, config: Config, mode: PushMode, expected
) -> None:
    """The configured push mode maps onto the push force flag."""
    config.sync.push_mode = mode
    config.sync.remote_name = "upstream"

    await SyncCoordinator(SyncState(), lambda: config).push(repo)

    assert repo.pushes == [
        {"remote": "upstream", "branch": "main", "use_tags": False, "mode": expected}
    ]


@pytest.mark.asyncio
async def test_successful_push_toggles_flag(
    repo: FakeRepository, config: Config
) -> None:
    """A clean push raises and clears the pushing flag once."""
    state = SyncState()
    seen = _flags(state)
    confirm = Recorder(True)

    await SyncCoordinator(state, lambda: config, confirm).push(repo)

    assert seen == [(True, False), (False, False)]
    assert confirm.prompts == []


@pytest.mark.asyncio
async def test_declined_force_push(repo: FakeRepository, config: Config) -> None:
    """Declining the retry leaves one push attempt and a cleared flag."""
    state = SyncState()
    confirm = Recorder(False)
    repo.push_errors = [RuntimeError("Git error: rejected (non-fast-forward)")]

    await SyncCoordinator(state, lambda: config, confirm).push(repo)

    assert len(repo.pushes) == 1
    assert confirm.prompts == [CONFLICT_MESSAGE]
    assert state.is_pushing is False


@pytest.mark.asyncio
async def test_accepted_force_push_forces_regardless_of_mode(
    repo: FakeRepository, config: Config
) -> None:
    """Accepting the retry pushes exactly once more, with force."""
    config.sync.push_mode = PushMode.PUSH
    state = SyncState()
    seen = _flags(state)
    repo.push_errors = [RuntimeError("Git error: rejected"), None]

    await SyncCoordinator(state, lambda: config, Recorder(True)).push(repo)

    assert [p["mode"] for p in repo.pushes] == [None, ForcePushMode.FORCE]
    assert seen == [(True, False), (False, False), (True, False), (False, False)]


@pytest.mark.asyncio
async def test_failed_force_push_propagates(
    repo: FakeRepository, config: Config
) -> None:
    """The forced retry is attempted once; its failure reaches the caller."""
    state = SyncState()
    confirm = Recorder(True)
    repo.push_errors = [RuntimeError("Git error: rejected"), RuntimeError("denied")]

    with pytest.raises(RuntimeError, match="denied"):
        await SyncCoordinator(state, lambda: config, confirm).push(repo)

    assert len(repo.pushes) == 2
    assert len(confirm.prompts) == 1
    assert state.is_pushing is False


@pytest.mark.asyncio
async def test_explicit_force_push_skips_prompt(
    repo: FakeRepository, config: Config
) -> None:
    """A forced push never prompts, even when it fails."""
    confirm = Recorder(True)
    repo.push_errors = [RuntimeError("denied")]

    with pytest.raises(RuntimeError):
        await SyncCoordinator(SyncState(), lambda: config, confirm).push(
            repo, force=True
        )

    assert confirm.prompts == []
    assert repo.pushes[0]["mode"] == ForcePushMode.FORCE


@pytest.mark.asyncio
async def test_default_confirmation_declines(
    repo: FakeRepository, config: Config
) -> None:
    """Without a confirmation callback the retry is declined."""
    repo.push_errors = [RuntimeError("rejected")]

    await SyncCoordinator(SyncState(), lambda: config).push(repo)

    assert len(repo.pushes) == 1


@pytest.mark.asyncio
async def test_on_push_pulls_before_pushing(
    repo: FakeRepository, config: Config
) -> None:
    """With pull-on-push, both flags are up while the pull runs."""
    config.sync.auto_pull = AutoPull.ON_PUSH
    state = SyncState()
    seen = _flags(state)

    await SyncCoordinator(state, lambda: config).push(repo)

    assert repo.pulls == 1
    assert len(repo.pushes) == 1
    assert seen == [(True, False), (True, True), (True, False), (False, False)]


def test_listener_errors_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    """A failing listener does not stop the flag change."""
    state = SyncState()

    def broken(_: SyncState) -> None:
        raise ValueError("render failed")

    state.subscribe(broken)
    state.is_pushing = True

    assert state.is_pushing is True
    assert "Sync state listener failed" in caplog.text


def test_unsubscribe_and_unchanged_values() -> None:
    """Listeners fire only on change and stop after unsubscribing."""
    state = SyncState()
    calls: list[bool] = []
    unsubscribe = state.subscribe(lambda s: calls.append(s.is_pulling))

    state.is_pulling = False
    state.is_pulling = True
    unsubscribe()
    state.is_pulling = False

    assert calls == [True]
