"""File naming conventions for job inputs, intermediates and deliverables."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DOWNLOAD_PREFIX = "/download"


def input_path(temp_dir: Path, job_id: str, slot: str) -> Path:
    return temp_dir / f"{job_id}_{slot}.mp4"


def final_video_name(job_id: str) -> str:
    return f"{job_id}_final.mp4"


def thumbnail_name(job_id: str) -> str:
    return f"{job_id}_thumb.jpg"


def download_url(filename: str) -> str:
    return f"{DOWNLOAD_PREFIX}/{filename}"


def deliverable_paths(output_dir: Path, job_id: str) -> tuple[Path, Path]:
    return output_dir / final_video_name(job_id), output_dir / thumbnail_name(job_id)


@dataclass(frozen=True, slots=True)
class JobWorkspace:
    """Every file a pipeline run may create for one job."""

    job_id: str
    input_a: Path
    input_b: Path
    audio: Path
    subtitles: Path
    mixed_audio: Path
    merged_video: Path
    subtitled_video: Path
    final_video: Path
    thumbnail: Path

    @classmethod
    def build(cls, *, job_id: str, input_a: Path, input_b: Path, temp_dir: Path, output_dir: Path) -> "JobWorkspace":
        final_video, thumbnail = deliverable_paths(output_dir, job_id)
        audio = temp_dir / f"{job_id}_audio_a.aac"
        return cls(
            job_id=job_id,
            input_a=input_a,
            input_b=input_b,
            audio=audio,
            # whisper writes <stem>.srt next to the requested output dir
            subtitles=temp_dir / f"{audio.stem}.srt",
            mixed_audio=temp_dir / f"{job_id}_mixed.aac",
            merged_video=temp_dir / f"{job_id}_merged.mp4",
            subtitled_video=temp_dir / f"{job_id}_subs.mp4",
            final_video=final_video,
            thumbnail=thumbnail,
        )

    def intermediates(self) -> list[Path]:
        return [
            self.input_a,
            self.input_b,
            self.audio,
            self.subtitles,
            self.mixed_audio,
            self.merged_video,
            self.subtitled_video,
        ]

    def deliverables(self) -> list[Path]:
        return [self.final_video, self.thumbnail]


def discard_files(paths: Iterable[Path]) -> int:
    """Delete files that exist; failures are logged, never raised. Returns the count removed."""
    removed = 0
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("cleanup.failed file=%s reason=%s", path.name, exc)
            continue
        removed += 1
    return removed
