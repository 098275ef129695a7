"""Generative text capability used to summarize diffs into commit messages."""

import asyncio
import codecs
import contextlib
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str
    name: str | None = None


class TextModel(Protocol):
    def send_request(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]: ...


class ModelSelector(Protocol):
    async def select_model(self, family: str) -> TextModel | None: ...


def render_messages(messages: Sequence[ChatMessage]) -> str:
    """Flattens a conversation into the plain text fed to a command's stdin."""
    if len(messages) == 1:
        return messages[0].content
    return "\n\n".join(f"[{m.role}]\n{m.content}" for m in messages)


class CommandModel:
    """Runs an external command per request and streams its stdout.

    Attributes:
        argv (list[str]): The command line, with the model family substituted.
    """

    def __init__(self, argv: list[str], chunk_size: int = 1024):
        self.argv = argv
        self.chunk_size = chunk_size

    async def send_request(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Yields decoded stdout chunks of the command.

        The process is killed if the caller stops iterating early or writing
        the prompt fails.

        Raises:
            RuntimeError: If the command exits with a non-zero status.
        """
        proc = await asyncio.create_subprocess_exec(
            *self.argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            proc.stdin.write(render_messages(messages).encode())
            await proc.stdin.drain()
            proc.stdin.close()

            # Chunks may split a multi-byte character.
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            while chunk := await proc.stdout.read(self.chunk_size):
                if text := decoder.decode(chunk):
                    yield text
            if tail := decoder.decode(b"", final=True):
                yield tail

            stderr = await stderr_task
            returncode = await proc.wait()
            if returncode != 0:
                raise RuntimeError(
                    f"Model command {self.argv[0]} failed ({returncode}): "
                    f"{stderr.decode(errors='replace').strip()}"
                )
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()


class CommandModelSelector:
    """Selects a `CommandModel` built from a configured command line.

    Every ``{model}`` token in the command is replaced with the requested
    family, e.g. ``["llm", "-m", "{model}"]``.
    """

    def __init__(self, command: Sequence[str]):
        self.command = list(command)

    async def select_model(self, family: str) -> TextModel | None:
        if not self.command:
            return None
        argv = [part.replace("{model}", family) for part in self.command]
        logger.debug(f"AI: using command model {argv[0]} for '{family}'.")
        return CommandModel(argv)
