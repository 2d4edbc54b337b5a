"""Process execution interfaces for external media tools."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass


class MediaToolError(Exception):
    """An external media tool failed; ``diagnostics`` holds its raw stderr text."""

    def __init__(self, message: str, *, diagnostics: str = "") -> None:
        self.diagnostics = diagnostics
        super().__init__(message)


class MediaToolNotFoundError(MediaToolError):
    """The tool executable could not be started."""


class MediaToolTimeoutError(MediaToolError):
    """The tool did not exit within the allowed time."""


@dataclass(frozen=True, slots=True)
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(ABC):
    """Runs one external command to completion."""

    @abstractmethod
    async def run(self, argv: Sequence[str], *, timeout: float) -> ProcessResult:
        """Run ``argv`` and capture its output.

        Raises ``MediaToolNotFoundError`` when the executable is missing and
        ``MediaToolTimeoutError`` when ``timeout`` elapses. A non-zero exit is
        reported through ``ProcessResult.returncode``, not raised.
        """


__all__ = [
    "MediaToolError",
    "MediaToolNotFoundError",
    "MediaToolTimeoutError",
    "ProcessResult",
    "ProcessRunner",
]
