from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from .config import Options, load_options
from .engine import StatusEngine
from .models import StatusResponse

_LOGGER = logging.getLogger(__name__)

# Editor events that can change what git status reports
DIR_CHANGED_EVENTS = frozenset({"DirChanged"})
BUFFER_EVENTS = frozenset({"BufEnter", "BufFilePost", "BufWritePost", "FileChangedShellPost"})


class StatusService:
    def __init__(self, options: Options | None = None, engine: StatusEngine | None = None) -> None:
        self.options = options or load_options()
        self.engine = engine or StatusEngine(self.options)
        self._stop = asyncio.Event()
        self._started = False

    @property
    def status(self) -> StatusResponse:
        git_dir = self.engine.git_dir
        snapshot = self.engine.snapshot
        return StatusResponse(
            repository=snapshot is not None,
            cwd=str(self.engine.cwd),
            git_dir=str(git_dir) if git_dir is not None else None,
            busy=self.engine.busy,
            snapshot=snapshot,
        )

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        _LOGGER.debug("Starting status engine in %s", self.engine.cwd)
        self.engine.on_working_directory_changed()
        self.engine.request_fetch()

    async def run(self) -> None:
        self.start()
        interval = self.options.fetch_interval_seconds()
        if interval is None:
            _LOGGER.info("Auto fetch disabled")
            await self._stop.wait()
            return
        _LOGGER.info("Auto fetch every %.1fs", interval)
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.engine.request_fetch()

    def request_status_refresh(self) -> bool:
        return self.engine.request_status_refresh()

    def request_fetch(self) -> bool:
        return self.engine.request_fetch()

    def on_working_directory_changed(self, path: str | Path | None = None) -> None:
        self.engine.on_working_directory_changed(path)

    def on_host_event(self, event: str) -> None:
        if event in DIR_CHANGED_EVENTS:
            self.on_working_directory_changed()
            return
        if event not in BUFFER_EVENTS:
            _LOGGER.debug("Unknown host event %r, refreshing anyway", event)
        self.request_status_refresh()

    def public_config(self) -> dict[str, Any]:
        return self.options.model_dump()

    async def shutdown(self) -> None:
        self._stop.set()
        await self.engine.aclose()
