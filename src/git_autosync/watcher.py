"""Filesystem change notifications for a working tree."""

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


def is_ignored(root: Path, src_path: str) -> bool:
    """Returns True for paths inside the repository's .git directory."""
    try:
        rel = Path(src_path).resolve().relative_to(root.resolve())
    except ValueError:
        return True
    return bool(rel.parts) and rel.parts[0] == ".git"


class _Handler(FileSystemEventHandler):
    def __init__(self, watcher: "ChangeWatcher"):
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return
        if is_ignored(self.watcher.root, str(event.src_path)):
            return
        self.watcher.emit()


class ChangeWatcher:
    """Fans out working tree change events to subscribers.

    The observer thread is started with the first subscriber and stopped
    when the last one unsubscribes. Callbacks run on the observer thread.
    """

    def __init__(self, root: Path):
        self.root = root
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()
        self._observer: Observer | None = None

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)
            if self._observer is None:
                self._observer = Observer()
                self._observer.schedule(_Handler(self), str(self.root), recursive=True)
                self._observer.start()
                logger.debug(f"WATCH {self.root.name}: observer started.")

        def unsubscribe() -> None:
            self._unsubscribe(callback)

        return unsubscribe

    def _unsubscribe(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
            observer = self._observer if not self._callbacks else None
            if observer is not None:
                self._observer = None
        if observer is not None:
            observer.stop()
            observer.join()
            logger.debug(f"WATCH {self.root.name}: observer stopped.")

    def emit(self) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception(f"WATCH ERROR {self.root.name}")
