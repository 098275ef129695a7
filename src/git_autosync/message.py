"""Commit message resolution: explicit, template, or generated from the diff."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from .config import Config
from .constants import APP_NAME
from .models import ChatMessage, ModelSelector
from .repository import Repository

logger = logging.getLogger(APP_NAME)

BASE_INSTRUCTIONS = """\
* Summarize the following source code diffs into a single concise sentence that describes the essence of the changes that were made, and can be used as a commit message.
* Always start the commit message with a present tense verb such as "Update", "Fix", "Modify", "Add", "Improve", "Organize", "Arrange", etc.
* Respond in plain text, with no markdown formatting, and without any extra content. Simply respond with the commit message, and without a trailing period.
* Don't reference the file paths that were changed, but make sure summarize all significant changes.
"""

EMOJI_INSTRUCTION = (
    "* Prepend an emoji to the message that best expresses the nature of the "
    "changes, and is as specific to the subject and action of the changes as "
    "possible.\n"
)


def template_message(now: datetime, fmt: str, time_zone: str | None = None) -> str:
    """Formats the commit time with a strftime template.

    Args:
        now (datetime): The commit instant (timezone-aware).
        fmt (str): The strftime template.
        time_zone (str | None): IANA zone for display; the local zone when None.

    Returns:
        str: The formatted message.
    """
    local = now.astimezone(ZoneInfo(time_zone)) if time_zone else now.astimezone()
    return local.strftime(fmt)


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def build_prompt(
    diffs: list[tuple[str, str]], use_emojis: bool = False, custom_instructions: str = ""
) -> str:
    """Builds the summarization prompt.

    Args:
        diffs (list[tuple[str, str]]): (relative path, diff text) pairs.
        use_emojis (bool): Whether to ask for a leading emoji.
        custom_instructions (str): User-provided instructions, if any.

    Returns:
        str: The prompt text.
    """
    blocks = "\n\n".join(f"## {path}\n---\n{diff}" for path, diff in diffs)
    sections = [
        "# Base Instructions\n\n"
        + BASE_INSTRUCTIONS
        + (EMOJI_INSTRUCTION if use_emojis else ""),
        f"# Code change diffs\n\n{blocks}\n",
    ]
    if custom_instructions:
        sections.append(
            f"# User-Provided Instructions (Important!)\n\n{custom_instructions}\n"
        )
    sections.append("# Commit message\n\n")
    return "\n".join(sections)


async def generate_commit_message(
    repository: Repository, paths: list[Path], config: Config, models: ModelSelector
) -> str | None:
    """Asks a text model to summarize the diffs of the changed paths.

    Returns:
        str | None: The stripped summary, or None when no model is available
                    or it produced no text.
    """
    rel_paths = [_relative(p, repository.root) for p in paths]
    diff_texts = await asyncio.gather(
        *(repository.diff_with_head(p) for p in rel_paths)
    )

    model = await models.select_model(config.ai.model)
    if model is None:
        logger.info(f"AI: no model available for '{config.ai.model}'.")
        return None

    prompt = build_prompt(
        list(zip(rel_paths, diff_texts)),
        use_emojis=config.ai.use_emojis,
        custom_instructions=config.ai.custom_instructions,
    )
    summary = ""
    async for part in model.send_request(
        [ChatMessage(role="user", name="User", content=prompt)]
    ):
        summary += part

    return summary.strip() or None


async def resolve_message(
    repository: Repository,
    paths: list[Path],
    config: Config,
    models: ModelSelector,
    now: datetime,
    explicit: str | None = None,
) -> str:
    """Produces the message for the next commit.

    An explicit message wins and skips generation. Otherwise a generated
    summary is used when enabled and available, with the time template as
    the fallback.
    """
    if explicit:
        return explicit

    message = template_message(
        now, config.commit.message_format, config.commit.time_zone
    )
    if not config.ai.enabled:
        return message

    try:
        generated = await generate_commit_message(repository, paths, config, models)
    except Exception as e:
        logger.warning(
            f"AI ERROR {repository.root.name}: {e}. Using template message."
        )
        return message

    return generated or message
