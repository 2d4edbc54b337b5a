"""Pipeline engine: drives one job from its two inputs to the final short."""

from __future__ import annotations

import asyncio
import base64
from datetime import UTC, datetime
import logging
from pathlib import Path

import aiofiles

from clipstack.adapters.media import MediaShell, Transcriber, TranscriptionResult
from clipstack.core.config import Settings
from clipstack.errors import ApiError
from clipstack.repositories.file_store import FileJobStore, JobNotFoundError
from clipstack.schemas.job import Job, JobResult, JobStatus
from clipstack.schemas.media import VideoMetadata
from clipstack.services.artifacts import JobWorkspace, discard_files, download_url
from clipstack.services.bgm import BgmLibrary
from clipstack.services.retention import RetentionManager

logger = logging.getLogger(__name__)

# Progress checkpoints persisted after each stage completes.
PROGRESS_STARTED = 10
PROGRESS_AUDIO_EXTRACTED = 20
PROGRESS_TRANSCRIBED = 30
PROGRESS_AUDIO_MIXED = 40
PROGRESS_MERGED = 60
PROGRESS_SUBTITLED = 75
PROGRESS_MUXED = 90
PROGRESS_COMPLETED = 100


class PipelineError(Exception):
    """A stage could not produce a usable output."""


async def _read_base64(path: Path) -> str:
    async with aiofiles.open(path, "rb") as handle:
        data = await handle.read()
    return base64.b64encode(data).decode("ascii")


class PipelineEngine:
    """Runs the ordered stages of one job.

    Stages are strictly sequential; each one persists its progress checkpoint before
    the next starts. Any stage error other than transcription fails the job with the
    underlying message and leaves progress at the last checkpoint. Intermediate files
    are removed whatever the outcome.
    """

    def __init__(
        self,
        *,
        store: FileJobStore,
        media: MediaShell,
        transcriber: Transcriber,
        bgm: BgmLibrary,
        retention: RetentionManager,
        settings: Settings,
    ) -> None:
        self._store = store
        self._media = media
        self._transcriber = transcriber
        self._bgm = bgm
        self._retention = retention
        self._settings = settings

    def workspace_for(self, job: Job) -> JobWorkspace:
        return JobWorkspace.build(
            job_id=job.job_id,
            input_a=Path(job.input_a_path),
            input_b=Path(job.input_b_path),
            temp_dir=self._settings.temp_dir,
            output_dir=self._settings.output_dir,
        )

    async def run(self, job_id: str) -> Job | None:
        job = await asyncio.to_thread(self._store.get, job_id)
        if job is None:
            logger.warning("pipeline.skipped job_id=%s reason=missing_record", job_id)
            return None
        if job.status is not JobStatus.QUEUED:
            logger.warning("pipeline.skipped job_id=%s reason=status_%s", job_id, job.status.value)
            return job

        workspace = self.workspace_for(job)
        stage = "start"
        succeeded = False
        completion: asyncio.Task[Job] | None = None
        try:
            await self._checkpoint(job_id, PROGRESS_STARTED, stage)

            stage = "probe_input_a"
            source = await self._media.probe(workspace.input_a)
            if source.duration <= 0:
                raise PipelineError(f"Could not determine the duration of input A ({workspace.input_a.name})")
            duration = source.duration

            stage = "extract_audio"
            await self._media.extract_audio(workspace.input_a, workspace.audio)
            await self._checkpoint(job_id, PROGRESS_AUDIO_EXTRACTED, stage)

            stage = "transcribe"
            transcript = await self._transcribe(job_id, workspace)
            await self._checkpoint(job_id, PROGRESS_TRANSCRIBED, stage)

            stage = "mix_audio"
            soundtrack = await self._mix_audio(job_id, workspace)
            await self._checkpoint(job_id, PROGRESS_AUDIO_MIXED, stage)

            stage = "merge_layout"
            await self._media.merge_layout(
                workspace.input_a,
                workspace.input_b,
                workspace.merged_video,
                layout=job.layout,
                duration=duration,
            )
            await self._checkpoint(job_id, PROGRESS_MERGED, stage)

            stage = "burn_subtitles"
            video = workspace.merged_video
            if transcript.available:
                await self._media.burn_subtitles(video, transcript.subtitle_path, workspace.subtitled_video)
                video = workspace.subtitled_video
            await self._checkpoint(job_id, PROGRESS_SUBTITLED, stage)

            stage = "final_mux"
            await self._media.mux_final(
                video,
                soundtrack,
                workspace.final_video,
                watermark_text=self._settings.watermark_text,
                duration=duration,
            )
            await self._checkpoint(job_id, PROGRESS_MUXED, stage)

            stage = "finalize"
            result = await self._build_result(workspace, transcript, source_duration=duration)
            completion = asyncio.ensure_future(self._complete(job_id, result))
            completed = await asyncio.shield(completion)
            succeeded = True
            logger.info(
                "pipeline.completed job_id=%s duration_s=%.2f subtitles=%s",
                job_id,
                result.metadata.duration,
                transcript.available,
            )
            return completed
        except Exception as exc:
            logger.warning(
                "pipeline.failed job_id=%s stage=%s reason=%s",
                job_id,
                stage,
                type(exc).__name__,
            )
            return await self.mark_failed(job_id, str(exc) or type(exc).__name__, stage=stage)
        finally:
            if completion is not None and not succeeded:
                # A cancel that lands during the final write does not undo a committed completion.
                await asyncio.wait({completion})
                succeeded = not completion.cancelled() and completion.exception() is None
            leftovers = workspace.intermediates()
            if not succeeded:
                leftovers += workspace.deliverables()
            await asyncio.to_thread(discard_files, leftovers)

    async def mark_failed(self, job_id: str, message: str, *, stage: str | None = None) -> Job | None:
        """Move a non-terminal job to ``failed``; progress keeps its last checkpoint."""
        try:
            failed = await asyncio.to_thread(
                self._store.update,
                job_id,
                status=JobStatus.FAILED,
                error=message,
                failed_stage=stage,
                completed_at=datetime.now(UTC),
            )
        except ApiError as exc:
            logger.info("pipeline.fail_skipped job_id=%s code=%s", job_id, exc.payload.code)
            return await asyncio.to_thread(self._store.get, job_id)
        except JobNotFoundError:
            logger.info("pipeline.fail_skipped job_id=%s code=RESOURCE_NOT_FOUND", job_id)
            return None
        self._retention.schedule(failed)
        return failed

    async def _complete(self, job_id: str, result: JobResult) -> Job:
        completed = await asyncio.to_thread(
            self._store.update,
            job_id,
            status=JobStatus.COMPLETED,
            progress=PROGRESS_COMPLETED,
            result=result,
            completed_at=datetime.now(UTC),
        )
        self._retention.schedule(completed)
        return completed

    async def _checkpoint(self, job_id: str, progress: int, stage: str) -> None:
        await asyncio.to_thread(self._store.update, job_id, status=JobStatus.PROCESSING, progress=progress)
        logger.info("pipeline.stage_completed job_id=%s stage=%s progress=%s", job_id, stage, progress)

    async def _transcribe(self, job_id: str, workspace: JobWorkspace) -> TranscriptionResult:
        transcript = await self._transcriber.transcribe(workspace.audio, workspace.subtitles.parent)
        if not transcript.available:
            logger.info("pipeline.transcription_absent job_id=%s reason=%s", job_id, transcript.absent_reason)
        return transcript

    async def _mix_audio(self, job_id: str, workspace: JobWorkspace) -> Path:
        bgm = await asyncio.to_thread(self._bgm.pick)
        if bgm is None:
            logger.info("pipeline.bgm_skipped job_id=%s reason=empty_pool", job_id)
            return workspace.audio
        await self._media.mix_audio(
            workspace.audio,
            bgm,
            workspace.mixed_audio,
            bgm_volume=self._settings.bgm_volume,
        )
        return workspace.mixed_audio

    async def _build_result(
        self,
        workspace: JobWorkspace,
        transcript: TranscriptionResult,
        *,
        source_duration: float,
    ) -> JobResult:
        await self._media.extract_thumbnail(
            workspace.input_a,
            workspace.thumbnail,
            time_fraction=self._settings.thumbnail_time_fraction,
            duration=source_duration,
        )
        metadata: VideoMetadata = await self._media.probe(workspace.final_video)

        video_base64 = thumbnail_base64 = None
        if self._settings.inline_results:
            video_base64 = await _read_base64(workspace.final_video)
            thumbnail_base64 = await _read_base64(workspace.thumbnail)

        return JobResult(
            video_url=download_url(workspace.final_video.name),
            thumbnail_url=download_url(workspace.thumbnail.name),
            metadata=metadata,
            subtitle_text=transcript.text,
            video_base64=video_base64,
            thumbnail_base64=thumbnail_base64,
        )
