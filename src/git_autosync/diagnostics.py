"""Diagnostics capability: editor-reported problems per file."""

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Protocol

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class Severity(IntEnum):
    ERROR = 0
    WARNING = 1
    INFORMATION = 2
    HINT = 3

    @classmethod
    def parse(cls, value: str | int) -> "Severity":
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown diagnostic severity '{value}'") from None


@dataclass(frozen=True)
class Diagnostic:
    severity: Severity
    message: str = ""


DiagnosticEntry = tuple[str | Path, list[Diagnostic]]


class DiagnosticsProvider(Protocol):
    def get_all_diagnostics(self) -> list[DiagnosticEntry]: ...


class StaticDiagnostics:
    """In-memory diagnostics, keyed by file path or URI."""

    def __init__(self, entries: dict[str | Path, list[Diagnostic]] | None = None):
        self._entries: dict[str | Path, list[Diagnostic]] = dict(entries or {})

    def set(self, uri: str | Path, diagnostics: list[Diagnostic]) -> None:
        self._entries[uri] = list(diagnostics)

    def clear(self) -> None:
        self._entries.clear()

    def get_all_diagnostics(self) -> list[DiagnosticEntry]:
        return [(uri, list(diags)) for uri, diags in self._entries.items()]


def parse_diagnostics(data: object, base: Path) -> StaticDiagnostics:
    """Builds a provider from a decoded diagnostics document.

    The document is a JSON object mapping file paths (or file URIs) to lists
    of diagnostics, each either a severity name or an object with
    ``severity`` and optional ``message`` keys::

        {"src/app.py": ["error", {"severity": "warning", "message": "unused"}]}

    Relative paths are resolved against `base`.

    Raises:
        ValueError: If the document is malformed or names an unknown severity.
    """
    if not isinstance(data, dict):
        raise ValueError("Diagnostics document must contain a JSON object")

    provider = StaticDiagnostics()
    for key, items in data.items():
        if not isinstance(items, list):
            raise ValueError(f"Diagnostics for '{key}' must be a list")
        diagnostics = []
        for item in items:
            if isinstance(item, dict):
                diagnostics.append(
                    Diagnostic(
                        Severity.parse(item.get("severity", "")),
                        str(item.get("message", "")),
                    )
                )
            else:
                diagnostics.append(Diagnostic(Severity.parse(item)))
        uri: str | Path = key
        if "://" not in key and not Path(key).is_absolute():
            uri = base / key
        provider.set(uri, diagnostics)
    return provider


def load_diagnostics_file(path: Path) -> StaticDiagnostics:
    """Reads a diagnostics file once; see `parse_diagnostics` for the format.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the document is malformed or names an unknown severity.
    """
    return parse_diagnostics(json.loads(path.read_text()), path.parent)


class FileDiagnostics:
    """Diagnostics kept in a JSON file that an editor or linter rewrites.

    Every query reflects the file's current content. The parsed document is
    cached until the file's modification time or size changes. A missing
    file means no diagnostics.

    Attributes:
        path (Path): The diagnostics file.
    """

    def __init__(self, path: Path):
        self.path = path
        self._stamp: tuple[int, int] | None = None
        self._current = StaticDiagnostics()

    def refresh(self) -> None:
        """Re-reads the file if it changed since the last read.

        Raises:
            OSError: If the file exists but cannot be read.
            ValueError: If the document is malformed.
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._stamp = None
            self._current = StaticDiagnostics()
            return

        stamp = (stat.st_mtime_ns, stat.st_size)
        if stamp == self._stamp:
            return
        self._current = load_diagnostics_file(self.path)
        self._stamp = stamp

    def get_all_diagnostics(self) -> list[DiagnosticEntry]:
        try:
            self.refresh()
        except (OSError, ValueError) as e:
            logger.warning(
                f"Could not read diagnostics from {self.path}: {e}. "
                "Keeping the last known diagnostics."
            )
        return self._current.get_all_diagnostics()
