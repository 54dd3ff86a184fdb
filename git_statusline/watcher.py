"""Filesystem watch on the repository metadata directory."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

_LOGGER = logging.getLogger(__name__)

# inotify reports open/close too; only content or name changes matter here
_IGNORED_EVENT_TYPES = {"opened", "closed", "closed_no_write"}
JOIN_TIMEOUT_SECONDS = 1.0


class Watch(Protocol):
    @property
    def path(self) -> Path: ...

    @property
    def is_active(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


WatchFactory = Callable[[Path, Callable[[str], None], asyncio.AbstractEventLoop], Watch]


class _MetadataHandler(FileSystemEventHandler):
    def __init__(self, parent: MetadataWatcher) -> None:
        super().__init__()
        self.parent = parent

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        src_path = event.src_path
        if isinstance(src_path, bytes):
            src_path = src_path.decode(errors="replace")
        self.parent.notify(Path(src_path).name)


class MetadataWatcher:
    """Watches one directory and forwards changes to ``callback`` on ``loop``.

    watchdog delivers events on its own thread; they are handed to the event
    loop with ``call_soon_threadsafe`` so the callback always runs on the loop.
    """

    def __init__(
        self,
        path: Path,
        callback: Callable[[str], None],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self._path = path
        self._callback = callback
        self._loop = loop
        self._observer: Observer | None = None
        self._handler = _MetadataHandler(self)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_active(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self._handler, str(self._path), recursive=False)
        observer.start()
        self._observer = observer
        _LOGGER.debug("Watching %s", self._path)

    def stop(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        # join off the loop; the observer thread is a daemon either way
        if not self._loop.is_closed():
            try:
                self._loop.run_in_executor(None, observer.join, JOIN_TIMEOUT_SECONDS)
            except RuntimeError:
                # default executor already shut down
                _LOGGER.debug("Not joining observer for %s, executor shut down", self._path)
        _LOGGER.debug("Stopped watching %s", self._path)

    def notify(self, filename: str) -> None:
        if self._observer is None or self._loop.is_closed():
            return
        try:
            self._loop.call_soon_threadsafe(self._callback, filename)
        except RuntimeError:
            # loop closed between the check and the call
            _LOGGER.debug("Dropping change on %s, event loop closed", filename)
