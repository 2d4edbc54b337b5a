"""Time-based reclamation of finished jobs and their deliverables."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
import logging
from pathlib import Path

from clipstack.repositories.file_store import FileJobStore
from clipstack.schemas.job import Job, JobStatus
from clipstack.services.artifacts import deliverable_paths, discard_files

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RetentionManager:
    """Owns one cancellable deletion timer per finished job.

    ``sweep()`` is the single entry point used both at startup and after a job
    finishes: anything already past its window is purged on the spot, everything
    else gets a timer computed from ``completed_at``.
    """

    def __init__(
        self,
        store: FileJobStore,
        *,
        output_dir: Path,
        completed_window: float,
        failed_window: float | None = None,
        now_provider: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._output_dir = output_dir
        self._completed_window = completed_window
        self._failed_window = failed_window
        self._now = now_provider
        self._timers: dict[str, asyncio.Task[None]] = {}

    @property
    def scheduled_job_ids(self) -> set[str]:
        return {job_id for job_id, task in self._timers.items() if not task.done()}

    def window_for(self, job: Job) -> float | None:
        if job.status is JobStatus.COMPLETED:
            return self._completed_window
        if job.status is JobStatus.FAILED:
            return self._failed_window
        return None

    def due_at(self, job: Job) -> datetime | None:
        window = self.window_for(job)
        if window is None or job.completed_at is None:
            return None
        return job.completed_at + timedelta(seconds=window)

    async def sweep(self, jobs: list[Job] | None = None) -> list[str]:
        """Purge overdue jobs and schedule the rest. Returns the purged job ids."""
        if jobs is None:
            jobs = await asyncio.to_thread(self._store.list_jobs)

        now = self._now()
        purged: list[str] = []
        for job in jobs:
            due = self.due_at(job)
            if due is None:
                continue
            if due <= now:
                await self.purge(job.job_id)
                purged.append(job.job_id)
            else:
                self._arm(job.job_id, (due - now).total_seconds())
        return purged

    def schedule(self, job: Job) -> bool:
        due = self.due_at(job)
        if due is None:
            return False
        self._arm(job.job_id, max(0.0, (due - self._now()).total_seconds()))
        return True

    def cancel(self, job_id: str) -> bool:
        task = self._timers.pop(job_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def purge(self, job_id: str) -> bool:
        """Delete a job's deliverables, then its record."""
        self.cancel(job_id)
        await asyncio.to_thread(discard_files, deliverable_paths(self._output_dir, job_id))
        try:
            deleted = await asyncio.to_thread(self._store.delete, job_id)
        except OSError as exc:
            logger.warning("retention.purge_failed job_id=%s reason=%s", job_id, exc)
            return False
        if deleted:
            logger.info("retention.purged job_id=%s", job_id)
        return deleted

    async def shutdown(self) -> None:
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _arm(self, job_id: str, delay: float) -> None:
        self.cancel(job_id)
        task = asyncio.create_task(self._purge_after(job_id, delay), name=f"retention-{job_id}")
        self._timers[job_id] = task
        logger.debug("retention.scheduled job_id=%s delay_s=%.1f", job_id, delay)

    async def _purge_after(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach first so purge() does not cancel the running timer.
        if self._timers.get(job_id) is asyncio.current_task():
            del self._timers[job_id]
        await self.purge(job_id)
