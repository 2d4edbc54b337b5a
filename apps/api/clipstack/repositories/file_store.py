"""File-backed job repository: one JSON record per job plus an in-memory index."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
import os
from pathlib import Path
import threading
from typing import Any

from pydantic import ValidationError

from clipstack.domain.job_fsm import ensure_transition
from clipstack.schemas.job import Job, JobResult, JobStatus

logger = logging.getLogger(__name__)

_RECORD_SUFFIX = ".json"
_IMMUTABLE_FIELDS = ("job_id", "layout", "platform", "input_a_path", "input_b_path", "created_at")
_UNSET: Any = object()


class JobExistsError(Exception):
    """A record with the same job id is already stored."""


class JobNotFoundError(KeyError):
    """No record exists for the job id."""


class JobInvariantError(Exception):
    """An update would leave the record in an inconsistent state."""


class FileJobStore:
    """Durable job records.

    Every mutation is written to disk (atomic replace + fsync) before the index is
    updated, so the index can always be rebuilt from the files alone. Readers receive
    copies and never observe a partially applied update.

    Serialisation and fsync happen under a per-job lock only; the shared index lock is
    held just for the rename and the index swap, so reads never wait on disk I/O.
    """

    def __init__(self, jobs_dir: Path) -> None:
        self._jobs_dir = jobs_dir
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._job_locks: dict[str, threading.Lock] = {}

    def record_path(self, job_id: str) -> Path:
        return self._jobs_dir / f"{job_id}{_RECORD_SUFFIX}"

    def load(self) -> list[Job]:
        """Rebuild the index from the records on disk."""
        with self._lock:
            self._jobs_dir.mkdir(parents=True, exist_ok=True)
            index: dict[str, Job] = {}
            for path in sorted(self._jobs_dir.glob(f"*{_RECORD_SUFFIX}")):
                try:
                    job = Job.model_validate_json(path.read_text(encoding="utf-8"))
                except (OSError, ValidationError) as exc:
                    logger.warning("store.record_skipped file=%s reason=%s", path.name, type(exc).__name__)
                    continue
                if job.job_id != path.stem:
                    logger.warning("store.record_skipped file=%s reason=job_id_mismatch", path.name)
                    continue
                index[job.job_id] = job

            self._jobs = index
            logger.info("store.loaded jobs=%s dir=%s", len(index), self._jobs_dir)
            return [job.model_copy(deep=True) for job in index.values()]

    def create(self, job: Job) -> Job:
        self._check_consistency(job)
        stored = job.model_copy(deep=True)
        with self._job_lock(stored.job_id):
            with self._lock:
                if stored.job_id in self._jobs or self.record_path(stored.job_id).exists():
                    raise JobExistsError(stored.job_id)
            self._publish(stored)
            return stored.model_copy(deep=True)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def list_jobs(self) -> list[Job]:
        with self._lock:
            jobs = [job.model_copy(deep=True) for job in self._jobs.values()]
        jobs.sort(key=lambda job: job.created_at)
        return jobs

    def update(
        self,
        job_id: str,
        *,
        status: JobStatus | None = None,
        progress: int | None = None,
        result: JobResult | None = _UNSET,
        error: str | None = _UNSET,
        failed_stage: str | None = _UNSET,
        completed_at: datetime | None = _UNSET,
    ) -> Job:
        """Apply an FSM-validated mutation, persist it, then publish it to the index."""
        with self._job_lock(job_id):
            with self._lock:
                current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)

            new_status = status if status is not None else current.status
            ensure_transition(current.status, new_status)

            changes: dict[str, Any] = {"status": new_status, "updated_at": datetime.now(UTC)}
            if progress is not None:
                changes["progress"] = progress
            if result is not _UNSET:
                changes["result"] = result
            if error is not _UNSET:
                changes["error"] = error
            if failed_stage is not _UNSET:
                changes["failed_stage"] = failed_stage
            if completed_at is not _UNSET:
                changes["completed_at"] = completed_at

            updated = current.model_copy(update=changes, deep=True)
            self._check_update(current, updated)
            self._publish(updated)
            return updated.model_copy(deep=True)

    def delete(self, job_id: str) -> bool:
        with self._job_lock(job_id):
            with self._lock:
                path = self.record_path(job_id)
                existed = path.exists() or job_id in self._jobs
                path.unlink(missing_ok=True)
                self._jobs.pop(job_id, None)
                self._job_locks.pop(job_id, None)
                return existed

    def _job_lock(self, job_id: str) -> threading.Lock:
        with self._lock:
            return self._job_locks.setdefault(job_id, threading.Lock())

    def _publish(self, job: Job) -> None:
        """Persist ``job`` and swap it into the index; the caller holds the job's lock."""
        tmp_path = self._write_temp(job)
        try:
            with self._lock:
                os.replace(tmp_path, self.record_path(job.job_id))
                self._jobs[job.job_id] = job
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _write_temp(self, job: Job) -> Path:
        self._jobs_dir.mkdir(parents=True, exist_ok=True)
        path = self.record_path(job.job_id)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as handle:
                handle.write(job.model_dump_json(indent=2))
                handle.flush()
                os.fsync(handle.fileno())
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        return tmp_path

    @classmethod
    def _check_update(cls, current: Job, updated: Job) -> None:
        for field_name in _IMMUTABLE_FIELDS:
            if getattr(current, field_name) != getattr(updated, field_name):
                raise JobInvariantError(f"{field_name} is immutable")
        if updated.progress < current.progress:
            raise JobInvariantError(
                f"progress cannot decrease ({current.progress} -> {updated.progress})"
            )
        cls._check_consistency(updated)

    @staticmethod
    def _check_consistency(job: Job) -> None:
        if not 0 <= job.progress <= 100:
            raise JobInvariantError("progress must be within 0..100")
        if (job.progress == 100) != (job.status is JobStatus.COMPLETED):
            raise JobInvariantError("progress is 100 exactly when the job is completed")
        if job.status is JobStatus.COMPLETED:
            if job.result is None or job.error is not None:
                raise JobInvariantError("completed jobs carry a result and no error")
        elif job.status is JobStatus.FAILED:
            if not job.error or job.result is not None:
                raise JobInvariantError("failed jobs carry an error and no result")
        elif job.result is not None or job.error is not None:
            raise JobInvariantError("only terminal jobs carry a result or an error")
