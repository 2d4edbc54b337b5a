"""asyncio subprocess implementation of the process runner."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging

from clipstack.adapters.media.base import (
    MediaToolNotFoundError,
    MediaToolTimeoutError,
    ProcessResult,
    ProcessRunner,
)

logger = logging.getLogger(__name__)

_TERMINATE_GRACE_SECONDS = 5.0


class SubprocessRunner(ProcessRunner):
    async def run(self, argv: Sequence[str], *, timeout: float) -> ProcessResult:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise MediaToolNotFoundError(f"{argv[0]} executable not found") from exc
        except PermissionError as exc:
            raise MediaToolNotFoundError(f"{argv[0]} executable is not runnable") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("process.timeout tool=%s timeout_s=%s", argv[0], timeout)
            await self._stop(proc)
            raise MediaToolTimeoutError(f"{argv[0]} timed out after {timeout:g} seconds") from exc
        except asyncio.CancelledError:
            await self._stop(proc)
            raise

        return ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    @staticmethod
    async def _stop(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
