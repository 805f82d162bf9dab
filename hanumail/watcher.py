"""
File system watcher for message files.

This module provides:
- Watchdog-based file monitoring
- Debounced change notification (editors often write a file several times per save)
- Filtering to message files
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class MessageEventHandler(FileSystemEventHandler):
    """
    Collects changes to message files and reports each path once it has
    been quiet for `debounce_seconds`.
    """

    RELEVANT_EXTENSIONS = {".eml", ".msg", ".mbox"}
    DEBOUNCE_SECONDS = 0.5

    def __init__(
        self,
        on_change: Callable[[Path], None] | None = None,
        on_delete: Callable[[Path], None] | None = None,
        debounce_seconds: float | None = None,
    ):
        super().__init__()
        self.on_change = on_change
        self.on_delete = on_delete
        self.debounce_seconds = self.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        # path -> time of last event
        self.pending: dict[str, float] = {}
        self._lock = threading.Lock()

    def _is_relevant(self, path: str) -> bool:
        p = Path(path)
        if any(part.startswith(".") for part in p.parts):
            return False
        return p.suffix.lower() in self.RELEVANT_EXTENSIONS

    def _touch(self, path: str) -> None:
        with self._lock:
            self.pending[path] = time.monotonic()

    def flush_pending(self, now: float | None = None) -> list[Path]:
        """Report paths whose debounce window has passed; returns them."""
        now = time.monotonic() if now is None else now
        with self._lock:
            ready = [p for p, stamp in self.pending.items() if now - stamp >= self.debounce_seconds]
            for p in ready:
                del self.pending[p]
        paths = [Path(p) for p in sorted(ready)]
        for path in paths:
            if not path.exists():
                continue
            if self.on_change:
                self.on_change(path)
        return paths

    def on_created(self, event: FileCreatedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._touch(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._touch(event.src_path)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        with self._lock:
            self.pending.pop(event.src_path, None)
        if self.on_delete:
            self.on_delete(Path(event.src_path))

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        if self._is_relevant(event.src_path):
            with self._lock:
                self.pending.pop(event.src_path, None)
            if self.on_delete:
                self.on_delete(Path(event.src_path))
        if self._is_relevant(event.dest_path):
            self._touch(event.dest_path)


def watch_messages(
    directory: Path,
    on_change: Callable[[Path], None] | None = None,
    on_delete: Callable[[Path], None] | None = None,
    recursive: bool = True,
) -> tuple[Observer, MessageEventHandler]:
    """
    Start watching a directory for message changes.

    Returns:
        Tuple of (observer, handler) - caller should call observer.stop() to stop watching
    """
    handler = MessageEventHandler(on_change=on_change, on_delete=on_delete)
    observer = Observer()
    observer.schedule(handler, str(directory), recursive=recursive)
    observer.start()
    logger.debug(f"Watching {directory} (recursive={recursive})")
    return observer, handler


def run_watch_loop(
    directory: Path,
    on_change: Callable[[Path], None] | None = None,
    on_delete: Callable[[Path], None] | None = None,
) -> None:
    """
    Run the watch loop until interrupted.

    Blocks, flushing debounced changes periodically.
    """
    observer, handler = watch_messages(directory, on_change=on_change, on_delete=on_delete)
    try:
        while True:
            time.sleep(0.25)
            handler.flush_pending()
    except KeyboardInterrupt:
        observer.stop()
    observer.join()
