"""Status-polling engine.

At most one ``git status`` runs at a time. When a run completes, the engine
stays busy for a fixed cool-down window and drops every refresh request that
arrives meanwhile. The window is never extended: ``git status`` itself writes
to the metadata directory, so the watcher would otherwise re-trigger it
forever.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Coroutine

from .config import Options
from .models import Snapshot
from .parser import parse_porcelain
from .runner import ProcessRunner, Runner
from .store import SnapshotStore
from .watcher import MetadataWatcher, Watch, WatchFactory

_LOGGER = logging.getLogger(__name__)

GIT_STATUS_ARGS = ("status", "--porcelain=2", "--branch", "--show-stash", "--untracked-files=all")
GIT_FETCH_ARGS = ("fetch",)
GIT_DIR_ARGS = ("rev-parse", "--git-dir")


class StatusEngine:
    def __init__(
        self,
        options: Options,
        runner: Runner | None = None,
        watch_factory: WatchFactory | None = None,
        store: SnapshotStore | None = None,
    ) -> None:
        self.options = options
        self.runner: Runner = runner or ProcessRunner()
        self.store = store or SnapshotStore()
        self.cwd = options.cwd()
        self.git_dir: Path | None = None
        self._watch_factory: WatchFactory = watch_factory or MetadataWatcher
        self._watch: Watch | None = None
        self._busy = False
        self._fetching = False
        self._cooldown: asyncio.TimerHandle | None = None
        self._discovery_generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def snapshot(self) -> Snapshot | None:
        return self.store.get()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def watch(self) -> Watch | None:
        return self._watch

    def request_status_refresh(self) -> bool:
        """Start ``git status`` unless a run or its cool-down is in progress.

        Returns immediately; True when a run was started.
        """
        if self._busy or self._closed:
            return False
        loop = self._running_loop()
        if loop is None:
            return False
        self._busy = True
        self._spawn(loop, self._run_status())
        return True

    def request_fetch(self) -> bool:
        """Run ``git fetch`` in the background; a successful fetch refreshes status."""
        if self._closed:
            return False
        if self._fetching:
            self._diag("git fetch still running, skipped")
            return False
        loop = self._running_loop()
        if loop is None:
            return False
        self._fetching = True
        self._diag("running git fetch")
        self._spawn(loop, self._run_fetch())
        return True

    def on_working_directory_changed(self, path: str | Path | None = None) -> None:
        """Rediscover the git directory for ``path`` (or the current cwd) and watch it."""
        if self._closed:
            return
        loop = self._running_loop()
        if loop is None:
            return
        if path is not None:
            self.cwd = Path(path).expanduser()
        self._discovery_generation += 1
        self._diag("working directory is %s", self.cwd)
        self._spawn(loop, self._discover(self._discovery_generation, self.cwd))
        self.request_status_refresh()

    async def aclose(self) -> None:
        self._closed = True
        if self._cooldown is not None:
            self._cooldown.cancel()
            self._cooldown = None
        self._replace_watch(None)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._busy = False

    def _git(self, *args: str) -> list[str]:
        return [self.options.git_executable, *args]

    def _diag(self, msg: str, *args: Any, exc_info: bool = False) -> None:
        if self.options.debug_logging:
            _LOGGER.debug(msg, *args, exc_info=exc_info)

    @staticmethod
    def _running_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            _LOGGER.warning("No running event loop, request dropped")
            return None

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro: Coroutine[Any, Any, None]) -> None:
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_status(self) -> None:
        try:
            await self._poll_status()
        except Exception:
            self._diag("git status handling failed", exc_info=True)
        finally:
            self._start_cooldown()

    async def _poll_status(self) -> None:
        self._diag("running git status")
        try:
            result = await self.runner.run(
                self._git(*GIT_STATUS_ARGS),
                cwd=self.cwd,
                timeout_ms=self.options.status_timeout,
            )
        except OSError as exc:
            self._diag("git status could not be started: %s", exc)
            self.store.clear()
            return

        if result.timed_out:
            self._diag("git status timed out after %sms", self.options.status_timeout)
            return
        if result.code != 0:
            # presume not a git repository
            self._diag("git status failed with exit code %s", result.code)
            self.store.clear()
            return

        snapshot = parse_porcelain(result.stdout)
        self.store.replace(snapshot)
        self._diag(
            "git status successful: branch=%s ahead=%d behind=%d dirty=%s",
            snapshot.branch,
            snapshot.ahead,
            snapshot.behind,
            snapshot.is_dirty,
        )

    def _start_cooldown(self) -> None:
        if self._closed or self.options.status_cooldown <= 0:
            self._busy = False
            return
        loop = asyncio.get_running_loop()
        self._cooldown = loop.call_later(self.options.status_cooldown / 1000, self._end_cooldown)

    def _end_cooldown(self) -> None:
        self._cooldown = None
        self._busy = False

    async def _run_fetch(self) -> None:
        try:
            result = await self.runner.run(self._git(*GIT_FETCH_ARGS), cwd=self.cwd)
        except Exception as exc:
            self._diag("git fetch could not be started: %s", exc)
            return
        finally:
            self._fetching = False
        if result.ok:
            self._diag("git fetch successful")
            self.request_status_refresh()
        else:
            self._diag("git fetch failed with exit code %s", result.code)

    async def _discover(self, generation: int, cwd: Path) -> None:
        try:
            result = await self.runner.run(self._git(*GIT_DIR_ARGS), cwd=cwd)
        except Exception as exc:
            self._diag("git rev-parse could not be started: %s", exc)
            result = None

        if generation != self._discovery_generation or self._closed:
            self._diag("discarding git dir lookup for %s, directory changed again", cwd)
            return

        raw = result.stdout.strip() if result is not None and result.ok else ""
        if not raw:
            self._diag("%s is not inside a git repository", cwd)
            self.git_dir = None
            self._replace_watch(None)
            return

        git_dir = Path(raw)
        if not git_dir.is_absolute():
            git_dir = cwd / git_dir
        self.git_dir = git_dir.resolve()
        self._replace_watch(self.git_dir)
        # the refresh requested with the directory change may have hit a busy engine
        self.request_status_refresh()

    def _replace_watch(self, path: Path | None) -> None:
        previous, self._watch = self._watch, None
        if previous is not None:
            try:
                previous.stop()
            except Exception:
                self._diag("failed to stop watch on %s", previous.path, exc_info=True)
        if path is None:
            return

        watch = self._watch_factory(path, self._on_metadata_change, asyncio.get_running_loop())
        try:
            watch.start()
        except Exception as exc:
            self._diag("could not watch %s: %s", path, exc)
            return
        self._watch = watch
        self._diag("watching git directory %s", path)

    def _on_metadata_change(self, filename: str) -> None:
        self._diag("git directory changed: %s", filename)
        self.request_status_refresh()
