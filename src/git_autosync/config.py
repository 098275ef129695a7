import copy
import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
    REMOTE_NAME,
)

logger = logging.getLogger(APP_NAME)


class ValidationLevel(StrEnum):
    """Diagnostic severity that blocks an automatic commit."""

    NONE = "none"
    ERROR = "error"
    WARNING = "warning"


class AutoPush(StrEnum):
    """When the working branch is pushed."""

    OFF = "off"
    ON_COMMIT = "onCommit"
    AFTER_DELAY = "afterDelay"


class AutoPull(StrEnum):
    """When the working branch is pulled."""

    OFF = "off"
    ON_COMMIT = "onCommit"
    ON_PUSH = "onPush"
    AFTER_DELAY = "afterDelay"


class PushMode(StrEnum):
    """How a regular (non-retry) push treats the remote branch."""

    PUSH = "push"
    FORCE_PUSH = "forcePush"
    FORCE_PUSH_WITH_LEASE = "forcePushWithLease"


def parse_duration_ms(value: int | str) -> int:
    """Converts human-readable durations (e.g., '500ms', '30s', '2m') to milliseconds."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration format '{value}'")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Invalid duration format '{value}'")
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid duration format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 1,
        "s": 1000,
        "sec": 1000,
        "m": 60_000,
        "min": 60_000,
        "h": 3_600_000,
        "hr": 3_600_000,
    }
    return int(num * multiplier[unit])


def parse_time_zone(value: str | None) -> str | None:
    """Validates an IANA time zone name, returning it unchanged."""
    if value is None or value == "":
        return None
    try:
        ZoneInfo(str(value))
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone '{value}'") from e
    return str(value)


@dataclass
class CommitConfig:
    """Automatic commit settings.

    Attributes:
        file_pattern (str): Glob that changed files must match to be committed.
        validation_level (ValidationLevel): Diagnostic severity that blocks commits.
        auto_commit_delay (int): Milliseconds of quiet time before committing.
        message_format (str): strftime template for the commit message.
        time_zone (str | None): Zone used to display the time in the message.
        no_verify (bool): Whether to bypass pre-commit hooks.
    """

    file_pattern: str = "**/*"
    validation_level: ValidationLevel = ValidationLevel.ERROR
    auto_commit_delay: int = 30_000
    message_format: str = "%b %d, %Y, %I:%M %p"
    time_zone: str | None = None
    no_verify: bool = False


@dataclass
class AIConfig:
    """Generated commit message settings.

    Attributes:
        enabled (bool): Whether to ask a text model for the commit message.
        model (str): Model family requested from the model selector.
        use_emojis (bool): Whether the message should start with an emoji.
        custom_instructions (str): Extra instructions appended to the prompt.
        command (list[str]): External command that answers prompts on stdout.
    """

    enabled: bool = False
    model: str = "gpt-4o"
    use_emojis: bool = False
    custom_instructions: str = ""
    command: list[str] = field(default_factory=list)


@dataclass
class SyncConfig:
    """Remote synchronization settings.

    Attributes:
        remote_name (str): The remote to push to and pull from.
        auto_push (AutoPush): When to push.
        auto_pull (AutoPull): When to pull.
        auto_push_delay (int): Milliseconds between pushes in 'afterDelay' mode.
        auto_pull_delay (int): Milliseconds between pulls in 'afterDelay' mode.
        push_mode (PushMode): Force semantics of regular pushes.
        pull_on_open (bool): Whether to pull once when watching starts.
    """

    remote_name: str = REMOTE_NAME
    auto_push: AutoPush = AutoPush.ON_COMMIT
    auto_pull: AutoPull = AutoPull.ON_PUSH
    auto_push_delay: int = 30_000
    auto_pull_delay: int = 30_000
    push_mode: PushMode = PushMode.FORCE_PUSH
    pull_on_open: bool = True


# Keys routed through a parser before being stored.
_PARSERS = {
    "auto_commit_delay": parse_duration_ms,
    "auto_push_delay": parse_duration_ms,
    "auto_pull_delay": parse_duration_ms,
    "validation_level": ValidationLevel,
    "auto_push": AutoPush,
    "auto_pull": AutoPull,
    "push_mode": PushMode,
    "time_zone": parse_time_zone,
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        commit (CommitConfig): Commit gate and message settings.
        ai (AIConfig): Generated message settings.
        sync (SyncConfig): Push and pull settings.
    """

    commit: CommitConfig = field(default_factory=CommitConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Every call returns an independent snapshot, so callers may hold on to
        it for the duration of an operation without seeing later edits.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        instance = copy.deepcopy(cls._global_cache)

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.autosync').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "commit" in data:
                self.commit = self._update_dataclass(
                    "commit", self.commit, data["commit"]
                )
            if "ai" in data:
                self.ai = self._update_dataclass("ai", self.ai, data["ai"])
            if "sync" in data:
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                parser = _PARSERS.get(k)
                filtered_updates[k] = parser(v) if parser else v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
