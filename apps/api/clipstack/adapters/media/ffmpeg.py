"""ffmpeg-backed media operations used by the pipeline and the metadata endpoint."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path

from clipstack.adapters.media.base import MediaToolError, ProcessResult, ProcessRunner
from clipstack.adapters.media.probe_parser import parse_probe_output
from clipstack.domain import filtergraph
from clipstack.schemas.job import Layout
from clipstack.schemas.media import VideoMetadata

logger = logging.getLogger(__name__)

_H264_OUTPUT = ("-c:v", "libx264", "-preset", "fast", "-crf", "23", "-pix_fmt", "yuv420p")


class MediaShell:
    """Wraps every ffmpeg invocation behind task-shaped methods.

    Every method writes to ``output`` and returns only after ffmpeg exited with status 0;
    otherwise ``MediaToolError`` is raised with ffmpeg's stderr as the message.
    """

    def __init__(self, runner: ProcessRunner, *, binary: str = "ffmpeg", timeout: float = 900.0) -> None:
        self._runner = runner
        self._binary = binary
        self._timeout = timeout

    async def _execute(self, args: Sequence[str]) -> ProcessResult:
        argv = [self._binary, *args]
        result = await self._runner.run(argv, timeout=self._timeout)
        if not result.ok:
            logger.debug("ffmpeg.failed returncode=%s args=%s", result.returncode, " ".join(args[:4]))
            raise MediaToolError(f"FFmpeg failed: {result.stderr}", diagnostics=result.stderr)
        return result

    async def probe(self, path: Path) -> VideoMetadata:
        """Describe ``path`` by asking ffmpeg to open it without producing output."""
        # ffmpeg exits non-zero here ("At least one output file must be specified").
        result = await self._runner.run([self._binary, "-i", str(path), "-hide_banner"], timeout=self._timeout)
        fields = parse_probe_output(result.stderr)
        file_size = (await asyncio.to_thread(path.stat)).st_size
        return VideoMetadata(
            duration=fields.duration,
            width=fields.width,
            height=fields.height,
            fps=fields.fps,
            audio_bitrate=fields.audio_bitrate,
            aspect_ratio=fields.aspect_ratio,
            file_size=file_size,
        )

    async def extract_audio(self, video: Path, output: Path) -> None:
        await self._execute(["-i", str(video), "-vn", "-acodec", "aac", str(output), "-y"])

    async def mix_audio(self, primary: Path, bgm: Path, output: Path, *, bgm_volume: float) -> None:
        await self._execute(
            [
                "-i", str(primary),
                "-i", str(bgm),
                "-filter_complex", filtergraph.mix_audio_graph(bgm_volume),
                "-ac", "2",
                str(output),
                "-y",
            ]
        )

    async def merge_layout(
        self,
        first: Path,
        second: Path,
        output: Path,
        *,
        layout: Layout,
        duration: float,
    ) -> None:
        await self._execute(
            [
                "-i", str(first),
                "-i", str(second),
                "-filter_complex", filtergraph.layout_graph(layout, duration),
                "-map", "[v]",
                "-t", filtergraph.format_seconds(duration),
                *_H264_OUTPUT,
                str(output),
                "-y",
            ]
        )

    async def burn_subtitles(self, video: Path, subtitles: Path, output: Path) -> None:
        await self._execute(
            [
                "-i", str(video),
                "-vf", filtergraph.subtitles_filter(subtitles),
                *_H264_OUTPUT,
                str(output),
                "-y",
            ]
        )

    async def mux_final(
        self,
        video: Path,
        audio: Path,
        output: Path,
        *,
        watermark_text: str,
        duration: float,
    ) -> None:
        await self._execute(
            [
                "-i", str(video),
                "-i", str(audio),
                "-filter_complex", filtergraph.watermark_graph(watermark_text, duration),
                "-map", "[v]",
                "-map", "1:a",
                *_H264_OUTPUT,
                "-c:a", "aac",
                "-b:a", "192k",
                str(output),
                "-y",
            ]
        )

    async def extract_thumbnail(
        self,
        video: Path,
        output: Path,
        *,
        time_fraction: float = 0.3,
        duration: float | None = None,
    ) -> None:
        if duration is None:
            duration = (await self.probe(video)).duration
        seek = filtergraph.format_seconds(duration * time_fraction)
        await self._execute(["-ss", seek, "-i", str(video), "-vframes", "1", "-q:v", "2", str(output), "-y"])
