from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

_LOGGER = logging.getLogger(__name__)

TIMEOUT_SIGNAL = int(signal.SIGTERM)
KILL_GRACE_SECONDS = 0.5


@dataclass(frozen=True)
class ProcessResult:
    code: int | None
    signal: int | None
    stdout: str

    @property
    def ok(self) -> bool:
        return self.code == 0 and self.signal is None

    @property
    def timed_out(self) -> bool:
        return self.signal == TIMEOUT_SIGNAL


class Runner(Protocol):
    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessResult: ...


class ProcessRunner:
    """Launches external commands on the running event loop.

    Non-zero exit codes are returned, never raised. ``OSError`` from the
    launch itself (missing executable, permissions) propagates to the caller.
    """

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessResult:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        timeout = timeout_ms / 1000 if timeout_ms else None
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            _LOGGER.debug("%s terminated after %sms", args[0], timeout_ms)
            return ProcessResult(code=proc.returncode, signal=TIMEOUT_SIGNAL, stdout="")
        except asyncio.CancelledError:
            await self._terminate(proc)
            _LOGGER.debug("%s terminated, run cancelled", args[0])
            raise

        returncode = proc.returncode
        if returncode is not None and returncode < 0:
            return ProcessResult(code=None, signal=-returncode, stdout=_decode(stdout))
        return ProcessResult(code=returncode, signal=None, stdout=_decode(stdout))

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_SECONDS)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")
