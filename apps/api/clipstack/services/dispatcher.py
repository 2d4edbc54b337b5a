"""Job queue: accepts jobs, persists them, and hands them to the pipeline."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import logging
from pathlib import Path
import secrets

from clipstack.core.config import Settings
from clipstack.domain.job_fsm import ensure_transition
from clipstack.errors import not_found
from clipstack.repositories.file_store import FileJobStore, JobExistsError
from clipstack.schemas.job import Job, JobStatus, Layout, Platform
from clipstack.services.artifacts import discard_files
from clipstack.services.pipeline import PipelineEngine
from clipstack.services.retention import RetentionManager

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Job cancelled"
SHUTDOWN_MESSAGE = "Job interrupted by service shutdown"
INTERRUPTED_MESSAGE = "Job interrupted by service restart"


class JobDispatcher:
    """Owns the asyncio task of every in-flight job.

    A submitted job is written to the store before its task is created, so a crash
    after ``submit`` returns never loses it. At most ``max_concurrent_jobs`` pipelines
    run at once; the others wait in ``queued``.
    """

    def __init__(
        self,
        *,
        store: FileJobStore,
        pipeline: PipelineEngine,
        retention: RetentionManager,
        settings: Settings,
    ) -> None:
        self._store = store
        self._pipeline = pipeline
        self._retention = retention
        self._settings = settings
        self._slots = asyncio.Semaphore(settings.max_concurrent_jobs)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cancel_reasons: dict[str, str] = {}

    @staticmethod
    def new_job_id() -> str:
        return secrets.token_hex(16)

    @property
    def active_job_ids(self) -> set[str]:
        return {job_id for job_id, task in self._tasks.items() if not task.done()}

    async def submit(
        self,
        *,
        job_id: str,
        layout: Layout,
        platform: Platform,
        input_a: Path,
        input_b: Path,
    ) -> Job:
        now = datetime.now(UTC)
        job = Job(
            job_id=job_id,
            status=JobStatus.QUEUED,
            progress=0,
            layout=layout,
            platform=platform,
            input_a_path=str(input_a),
            input_b_path=str(input_b),
            created_at=now,
            updated_at=now,
        )
        try:
            stored = await asyncio.to_thread(self._store.create, job)
        except JobExistsError:
            logger.error("dispatch.rejected job_id=%s reason=duplicate_id", job_id)
            raise
        self._launch(stored.job_id)
        logger.info("dispatch.queued job_id=%s layout=%s", stored.job_id, stored.layout.value)
        return stored

    async def status(self, job_id: str) -> Job:
        job = await asyncio.to_thread(self._store.get, job_id)
        if job is None:
            raise not_found("Job not found")
        return job

    async def cancel(self, job_id: str) -> Job:
        """Best-effort cancellation; the job ends ``failed`` with a cancellation error."""
        job = await self.status(job_id)
        if job.is_terminal:
            ensure_transition(job.status, JobStatus.FAILED)

        task = self._tasks.get(job_id)
        if task is None or task.done():
            await self._close(job, CANCELLED_MESSAGE, stage="cancelled")
        else:
            self._cancel_reasons[job_id] = CANCELLED_MESSAGE
            task.cancel()
            await asyncio.wait({task})
        logger.info("dispatch.cancelled job_id=%s", job_id)
        return await self.status(job_id)

    async def start(self) -> None:
        """Recover state from disk: reclaim expired jobs and resume or close the rest."""
        jobs = await asyncio.to_thread(self._store.load)
        purged = set(await self._retention.sweep(jobs))

        for job in jobs:
            if job.job_id in purged or job.is_terminal:
                continue
            if job.status is JobStatus.QUEUED and not self._settings.resume_queued_jobs:
                logger.warning("dispatch.recovered_idle job_id=%s status=queued", job.job_id)
                continue
            inputs_present = await asyncio.to_thread(self._inputs_present, job)
            if job.status is JobStatus.QUEUED and inputs_present:
                self._launch(job.job_id)
                logger.info("dispatch.resumed job_id=%s", job.job_id)
                continue
            logger.warning(
                "dispatch.recovery_failed job_id=%s status=%s inputs_present=%s",
                job.job_id,
                job.status.value,
                inputs_present,
            )
            await self._close(job, INTERRUPTED_MESSAGE, stage="recovery")

    async def shutdown(self) -> None:
        tasks = []
        for job_id, task in list(self._tasks.items()):
            if task.done():
                continue
            self._cancel_reasons.setdefault(job_id, SHUTDOWN_MESSAGE)
            task.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._retention.shutdown()

    def _launch(self, job_id: str) -> None:
        task = asyncio.create_task(self._run(job_id), name=f"pipeline-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda done: self._forget(job_id, done))

    def _forget(self, job_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        self._cancel_reasons.pop(job_id, None)

    async def _run(self, job_id: str) -> None:
        try:
            async with self._slots:
                await self._pipeline.run(job_id)
        except asyncio.CancelledError:
            reason = self._cancel_reasons.get(job_id, CANCELLED_MESSAGE)
            job = await asyncio.to_thread(self._store.get, job_id)
            if job is not None:
                await self._close(job, reason, stage="cancelled")
            raise
        except Exception:
            logger.exception("dispatch.pipeline_crashed job_id=%s", job_id)

    async def _close(self, job: Job, message: str, *, stage: str) -> None:
        if job.is_terminal:
            return
        await self._pipeline.mark_failed(job.job_id, message, stage=stage)
        workspace = self._pipeline.workspace_for(job)
        await asyncio.to_thread(discard_files, workspace.intermediates() + workspace.deliverables())

    @staticmethod
    def _inputs_present(job: Job) -> bool:
        return Path(job.input_a_path).is_file() and Path(job.input_b_path).is_file()
