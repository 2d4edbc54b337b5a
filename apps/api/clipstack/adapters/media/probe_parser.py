"""Parsing of ffmpeg's self-description printed on its diagnostic stream.

ffmpeg invoked with an input and no output prints the container and stream summary
on stderr and exits non-zero. Only this module knows that text format.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

_DURATION_RE = re.compile(r"Duration: (\d{2}):(\d{2}):(\d{2}\.\d{2})")
_VIDEO_SIZE_RE = re.compile(r"Video: .*?, (\d{2,5})x(\d{2,5})")
_FPS_RE = re.compile(r"(\d+(?:\.\d+)?) fps")
_AUDIO_BITRATE_RE = re.compile(r"Audio: .*, (\d+) kb/s")


@dataclass(frozen=True, slots=True)
class ProbeFields:
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    audio_bitrate: int = 0

    @property
    def aspect_ratio(self) -> float:
        if not self.width or not self.height:
            return 0.0
        return round(self.width / self.height, 2)


def parse_probe_output(text: str) -> ProbeFields:
    """Extract duration, size, frame rate and audio bitrate; missing fields stay zero."""
    duration = 0.0
    match = _DURATION_RE.search(text)
    if match:
        hours, minutes, seconds = match.groups()
        duration = int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    width = height = 0
    match = _VIDEO_SIZE_RE.search(text)
    if match:
        width, height = int(match.group(1)), int(match.group(2))

    match = _FPS_RE.search(text)
    fps = float(match.group(1)) if match else 0.0

    match = _AUDIO_BITRATE_RE.search(text)
    audio_bitrate = int(match.group(1)) if match else 0

    return ProbeFields(
        duration=duration,
        width=width,
        height=height,
        fps=fps,
        audio_bitrate=audio_bitrate,
    )
