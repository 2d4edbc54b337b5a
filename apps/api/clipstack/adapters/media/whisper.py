"""Best-effort speech-to-text through the whisper CLI."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from clipstack.adapters.media.base import MediaToolError, ProcessRunner


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    """Subtitles produced for an audio track, or the reason there are none.

    Absence is a normal outcome, never an error.
    """

    subtitle_path: Path | None = None
    text: str = ""
    absent_reason: str | None = None

    @property
    def available(self) -> bool:
        return self.subtitle_path is not None and bool(self.text.strip())

    @classmethod
    def absent(cls, reason: str) -> "TranscriptionResult":
        return cls(absent_reason=reason)


class Transcriber:
    def __init__(
        self,
        runner: ProcessRunner,
        *,
        binary: str = "whisper",
        model: str = "tiny",
        timeout: float = 900.0,
    ) -> None:
        self._runner = runner
        self._binary = binary
        self._model = model
        self._timeout = timeout

    @staticmethod
    def subtitle_path_for(audio: Path, output_dir: Path) -> Path:
        """whisper names its output after the input file's stem."""
        return output_dir / f"{audio.stem}.srt"

    async def transcribe(self, audio: Path, output_dir: Path) -> TranscriptionResult:
        argv = [
            self._binary,
            str(audio),
            "--model", self._model,
            "--output_format", "srt",
            "--output_dir", str(output_dir),
        ]
        try:
            result = await self._runner.run(argv, timeout=self._timeout)
        except MediaToolError as exc:
            return TranscriptionResult.absent(str(exc))

        if not result.ok:
            return TranscriptionResult.absent(f"{self._binary} exited with status {result.returncode}")

        srt_path = self.subtitle_path_for(audio, output_dir)
        try:
            text = await asyncio.to_thread(srt_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return TranscriptionResult.absent("no subtitle file produced")
        except (OSError, UnicodeDecodeError) as exc:
            return TranscriptionResult.absent(f"subtitle file unreadable: {exc}")

        if not text.strip():
            return TranscriptionResult(subtitle_path=srt_path, text="", absent_reason="empty transcript")
        return TranscriptionResult(subtitle_path=srt_path, text=text)
