"""External media tool adapters."""

from .base import (
    MediaToolError,
    MediaToolNotFoundError,
    MediaToolTimeoutError,
    ProcessResult,
    ProcessRunner,
)
from .ffmpeg import MediaShell
from .subprocess_runner import SubprocessRunner
from .whisper import TranscriptionResult, Transcriber

__all__ = [
    "MediaShell",
    "MediaToolError",
    "MediaToolNotFoundError",
    "MediaToolTimeoutError",
    "ProcessResult",
    "ProcessRunner",
    "SubprocessRunner",
    "TranscriptionResult",
    "Transcriber",
]
