"""Commit eligibility: pattern filtering and diagnostics validation."""

import logging
import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from urllib.parse import unquote, urlsplit, urlunsplit

from .config import Config, ValidationLevel
from .constants import APP_NAME
from .diagnostics import DiagnosticsProvider, Severity
from .repository import Change, Repository

logger = logging.getLogger(APP_NAME)


@dataclass
class GateResult:
    """Outcome of an eligibility check.

    Attributes:
        eligible (bool): Whether an automatic commit may proceed.
        paths (list[Path]): The changed paths that matched the file pattern.
        reason (str | None): Why the commit was refused, if it was.
    """

    eligible: bool
    paths: list[Path] = field(default_factory=list)
    reason: str | None = None


@lru_cache(maxsize=64)
def _compile(pattern: str) -> re.Pattern[str]:
    """Translates a glob into a regex over '/'-separated relative paths.

    `**/` matches zero or more directories, `**` anything, `*` and `?` stay
    within one segment. Wildcards also match names starting with a dot.
    """
    i, n = 0, len(pattern)
    res = []
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                if pattern.startswith("/", i + 2):
                    res.append("(?:.*/)?")
                    i += 3
                else:
                    res.append(".*")
                    i += 2
                continue
            res.append("[^/]*")
        elif c == "?":
            res.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 2)
            if j == -1:
                res.append(re.escape(c))
            else:
                body = pattern[i + 1 : j].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                res.append(f"[{body}]")
                i = j + 1
                continue
        else:
            res.append(re.escape(c))
        i += 1
    return re.compile("(?s:" + "".join(res) + r")\Z")


def matches(path: str | Path, pattern: str, root: Path | None = None) -> bool:
    """Checks a path against a glob pattern.

    Args:
        path (str | Path): The path to test; made relative to `root` when given.
        pattern (str): The glob pattern (e.g., '**/*.py').
        root (Path | None): The repository root.

    Returns:
        bool: True if the pattern matches the whole path.
    """
    candidate = Path(path)
    if root is not None:
        try:
            candidate = candidate.relative_to(root)
        except ValueError:
            pass
    return bool(_compile(pattern.lstrip("/")).match(candidate.as_posix()))


def normalize_uri(value: str | Path) -> str:
    """Normalizes a path or URI so equal files compare equal as strings.

    Query and fragment components are dropped, percent-escapes decoded and
    re-encoded, relative paths made absolute, and the result casefolded.
    Non-file URIs (e.g. 'untitled:') are kept, minus query and fragment.
    """
    if isinstance(value, Path):
        path = value
    else:
        parts = urlsplit(str(value))
        if parts.scheme == "file":
            raw = unquote(parts.path)
            if parts.netloc and parts.netloc != "localhost":
                raw = f"//{parts.netloc}{raw}"
            path = Path(raw)
        elif len(parts.scheme) > 1:
            return urlunsplit(
                (parts.scheme, parts.netloc, unquote(parts.path), "", "")
            ).casefold()
        else:
            path = Path(str(value))
    return Path(os.path.abspath(path)).as_uri().casefold()


async def collect_changes(repository: Repository) -> list[Change]:
    """Returns the union of working tree, merge and index changes."""
    state = await repository.get_changes()
    return [*state.working_tree, *state.merge, *state.index]


def blocking_paths(
    paths: list[Path], diagnostics: DiagnosticsProvider, level: ValidationLevel
) -> list[str]:
    """Returns the normalized URIs of paths with blocking diagnostics."""
    if level == ValidationLevel.NONE:
        return []
    blocking = {Severity.ERROR}
    if level == ValidationLevel.WARNING:
        blocking.add(Severity.WARNING)

    changed = {normalize_uri(p) for p in paths}
    blocked = []
    for uri, items in diagnostics.get_all_diagnostics():
        key = normalize_uri(uri)
        if key in changed and any(d.severity in blocking for d in items):
            blocked.append(key)
    return blocked


async def is_eligible(
    repository: Repository, diagnostics: DiagnosticsProvider, config: Config
) -> GateResult:
    """Decides whether the repository's current changes may be auto-committed.

    Args:
        repository (Repository): The repository to inspect.
        diagnostics (DiagnosticsProvider): Source of editor diagnostics.
        config (Config): The configuration snapshot for this operation.

    Returns:
        GateResult: The verdict and the changed paths that matched the pattern.
    """
    changes = await collect_changes(repository)
    if not changes:
        return GateResult(False, reason="no changes")

    pattern = config.commit.file_pattern
    paths = list(
        dict.fromkeys(
            c.path for c in changes if matches(c.path, pattern, repository.root)
        )
    )
    if not paths:
        return GateResult(False, reason=f"no changes match '{pattern}'")

    blocked = blocking_paths(paths, diagnostics, config.commit.validation_level)
    if blocked:
        return GateResult(
            False, paths, reason=f"{len(blocked)} file(s) have blocking diagnostics"
        )

    return GateResult(True, paths)
