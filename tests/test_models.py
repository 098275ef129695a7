"""Tests for the command-backed text model."""

import asyncio
from unittest.mock import MagicMock

import pytest

from git_autosync.models import (
    ChatMessage,
    CommandModel,
    CommandModelSelector,
    render_messages,
)


async def _collect(model: CommandModel, messages: list[ChatMessage]) -> str:
    return "".join([part async for part in model.send_request(messages)])


def test_render_messages() -> None:
    """A single message is passed through; conversations are labelled."""
    one = [ChatMessage("user", "Summarize this")]
    two = [ChatMessage("system", "Be brief"), ChatMessage("user", "Summarize")]

    assert render_messages(one) == "Summarize this"
    assert render_messages(two) == "[system]\nBe brief\n\n[user]\nSummarize"


@pytest.mark.asyncio
async def test_selector_without_command_has_no_model() -> None:
    assert await CommandModelSelector([]).select_model("gpt-4o") is None


@pytest.mark.asyncio
async def test_selector_substitutes_family() -> None:
    """The {model} token is replaced with the requested family."""
    model = await CommandModelSelector(["llm", "-m", "{model}"]).select_model("mini")

    assert isinstance(model, CommandModel)
    assert model.argv == ["llm", "-m", "mini"]


@pytest.mark.asyncio
async def test_command_model_streams_stdout() -> None:
    """The prompt goes to stdin and stdout comes back in chunks."""
    model = CommandModel(["cat"], chunk_size=4)

    result = await _collect(model, [ChatMessage("user", "Fix the parser ✨")])

    assert result == "Fix the parser ✨"


@pytest.mark.asyncio
async def test_command_model_failure_raises() -> None:
    """A non-zero exit status raises with the command's stderr."""
    model = CommandModel(["sh", "-c", "cat >/dev/null; echo quota >&2; exit 3"])

    with pytest.raises(RuntimeError, match=r"failed \(3\): quota"):
        await _collect(model, [ChatMessage("user", "hello")])


@pytest.mark.asyncio
async def test_command_model_killed_when_reader_stops(mocker: MagicMock) -> None:
    """Closing the stream early kills and reaps a command that never ends."""
    started = []
    create = asyncio.create_subprocess_exec

    async def create_and_record(*args, **kwargs):
        proc = await create(*args, **kwargs)
        started.append(proc)
        return proc

    mocker.patch(
        "git_autosync.models.asyncio.create_subprocess_exec",
        side_effect=create_and_record,
    )
    model = CommandModel(
        ["sh", "-c", "cat >/dev/null; while :; do echo chunk; done"], chunk_size=8
    )
    stream = model.send_request([ChatMessage("user", "hello")])

    assert "chunk" in await stream.__anext__()
    await stream.aclose()

    (proc,) = started
    assert proc.returncode is not None
