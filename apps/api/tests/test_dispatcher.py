"""Job dispatcher tests: submission, concurrency, cancellation and restart recovery."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from functools import partial
from pathlib import Path
import tempfile
import time
import unittest

from clipstack.adapters.media import MediaShell, Transcriber
from clipstack.errors import ApiError
from clipstack.repositories.file_store import FileJobStore
from clipstack.schemas.job import Job, JobResult, JobStatus, Layout, Platform
from clipstack.schemas.media import VideoMetadata
from clipstack.services.bgm import BgmLibrary
from clipstack.services.dispatcher import (
    CANCELLED_MESSAGE,
    INTERRUPTED_MESSAGE,
    SHUTDOWN_MESSAGE,
    JobDispatcher,
)
from clipstack.services.pipeline import PipelineEngine
from clipstack.services.retention import RetentionManager
from media_fakes import ScriptedRunner, SlowWriteStore, make_settings, wait_for_terminal, write_inputs


class JobDispatcherTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.runner = ScriptedRunner()

    async def asyncTearDown(self) -> None:
        await self.dispatcher.shutdown()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _dispatcher(self, store_factory=FileJobStore, **overrides) -> JobDispatcher:
        self.settings = make_settings(self.root, **overrides)
        self.store = store_factory(self.settings.jobs_dir)
        self.retention = retention = RetentionManager(
            self.store,
            output_dir=self.settings.output_dir,
            completed_window=self.settings.retention_seconds,
            failed_window=self.settings.failed_retention_seconds,
        )
        pipeline = PipelineEngine(
            store=self.store,
            media=MediaShell(self.runner),
            transcriber=Transcriber(self.runner),
            bgm=BgmLibrary(self.settings.bgm_dir),
            retention=retention,
            settings=self.settings,
        )
        self.dispatcher = JobDispatcher(
            store=self.store,
            pipeline=pipeline,
            retention=retention,
            settings=self.settings,
        )
        return self.dispatcher

    async def _submit(self, dispatcher: JobDispatcher) -> str:
        job_id = dispatcher.new_job_id()
        input_a, input_b = write_inputs(self.settings, job_id)
        await dispatcher.submit(
            job_id=job_id,
            layout=Layout.STACK_VERTICAL,
            platform=Platform.TIKTOK,
            input_a=input_a,
            input_b=input_b,
        )
        return job_id

    def _seed(self, job_id: str, status: JobStatus, *, finished_ago: float | None = None) -> None:
        input_a, input_b = write_inputs(self.settings, job_id)
        self.store.create(
            Job(
                job_id=job_id,
                layout=Layout.STACK_VERTICAL,
                input_a_path=str(input_a),
                input_b_path=str(input_b),
                created_at=datetime.now(UTC) - timedelta(hours=1),
            )
        )
        if status is JobStatus.QUEUED:
            return
        self.store.update(job_id, status=JobStatus.PROCESSING, progress=60)
        if status is JobStatus.COMPLETED:
            self.store.update(
                job_id,
                status=JobStatus.COMPLETED,
                progress=100,
                result=JobResult(video_url="/download/x", thumbnail_url="/download/y", metadata=VideoMetadata()),
                completed_at=datetime.now(UTC) - timedelta(seconds=finished_ago or 0),
            )

    async def test_new_job_ids_are_unique_hex(self) -> None:
        dispatcher = self._dispatcher()
        ids = {dispatcher.new_job_id() for _ in range(50)}
        self.assertEqual(len(ids), 50)
        self.assertTrue(all(len(job_id) == 32 and int(job_id, 16) >= 0 for job_id in ids))

    async def test_submitted_job_is_persisted_queued_then_completes(self) -> None:
        dispatcher = self._dispatcher()
        job_id = await self._submit(dispatcher)

        self.assertTrue(self.store.record_path(job_id).exists())
        job = await wait_for_terminal(self.store, job_id)

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual((await dispatcher.status(job_id)).progress, 100)

    async def test_status_of_unknown_job_is_not_found(self) -> None:
        dispatcher = self._dispatcher()
        with self.assertRaises(ApiError) as context:
            await dispatcher.status("missing")
        self.assertEqual(context.exception.status_code, 404)

    async def test_status_is_served_while_a_record_write_is_in_flight(self) -> None:
        dispatcher = self._dispatcher(store_factory=partial(SlowWriteStore, delay=0.3, stall_status=JobStatus.PROCESSING))
        job_id = await self._submit(dispatcher)
        self.assertTrue(await asyncio.to_thread(self.store.writing.wait, 5))

        started = time.monotonic()
        job = await dispatcher.status(job_id)
        elapsed = time.monotonic() - started

        self.assertEqual(job.status, JobStatus.QUEUED)
        self.assertLess(elapsed, self.store.delay / 2)
        self.assertEqual((await wait_for_terminal(self.store, job_id, timeout=10)).status, JobStatus.COMPLETED)

    async def test_concurrency_limit_keeps_extra_jobs_queued(self) -> None:
        self.runner.block_on = "vstack"
        dispatcher = self._dispatcher(max_concurrent_jobs=1)

        first = await self._submit(dispatcher)
        await asyncio.wait_for(self.runner.blocked.wait(), timeout=5)
        second = await self._submit(dispatcher)
        await asyncio.sleep(0.05)

        self.assertEqual(self.store.get(first).status, JobStatus.PROCESSING)
        self.assertEqual(self.store.get(second).status, JobStatus.QUEUED)

        self.runner.release.set()
        self.assertEqual((await wait_for_terminal(self.store, first)).status, JobStatus.COMPLETED)
        self.assertEqual((await wait_for_terminal(self.store, second)).status, JobStatus.COMPLETED)

    async def test_cancel_running_job_fails_it_and_cleans_up(self) -> None:
        self.runner.block_on = "vstack"
        dispatcher = self._dispatcher()
        job_id = await self._submit(dispatcher)
        await asyncio.wait_for(self.runner.blocked.wait(), timeout=5)

        job = await dispatcher.cancel(job_id)

        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, CANCELLED_MESSAGE)
        self.assertEqual(job.progress, 40)
        self.assertEqual(list(self.settings.temp_dir.iterdir()), [])
        self.assertEqual(dispatcher.active_job_ids, set())

    async def test_cancel_during_the_completion_write_keeps_the_finished_job(self) -> None:
        dispatcher = self._dispatcher(store_factory=partial(SlowWriteStore, stall_status=JobStatus.COMPLETED))
        job_id = await self._submit(dispatcher)
        self.assertTrue(await asyncio.to_thread(self.store.writing.wait, 5))

        job = await dispatcher.cancel(job_id)

        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.progress, 100)
        self.assertIsNone(job.error)
        self.assertTrue((self.settings.output_dir / f"{job_id}_final.mp4").exists())
        self.assertTrue((self.settings.output_dir / f"{job_id}_thumb.jpg").exists())
        self.assertIn(job_id, self.retention.scheduled_job_ids)
        self.assertEqual(list(self.settings.temp_dir.iterdir()), [])

    async def test_cancel_terminal_job_is_rejected(self) -> None:
        dispatcher = self._dispatcher()
        job_id = await self._submit(dispatcher)
        await wait_for_terminal(self.store, job_id)

        with self.assertRaises(ApiError) as context:
            await dispatcher.cancel(job_id)
        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "FSM_TERMINAL_IMMUTABLE")

    async def test_shutdown_interrupts_running_jobs(self) -> None:
        self.runner.block_on = "vstack"
        dispatcher = self._dispatcher()
        job_id = await self._submit(dispatcher)
        await asyncio.wait_for(self.runner.blocked.wait(), timeout=5)

        await dispatcher.shutdown()

        job = self.store.get(job_id)
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, SHUTDOWN_MESSAGE)

    async def test_start_recovers_state_left_by_a_previous_process(self) -> None:
        self._dispatcher()
        self._seed("queued1", JobStatus.QUEUED)
        self._seed("running1", JobStatus.PROCESSING)
        self._seed("expired1", JobStatus.COMPLETED, finished_ago=3600)
        self._seed("recent1", JobStatus.COMPLETED, finished_ago=1)
        (self.settings.output_dir / "expired1_final.mp4").write_bytes(b"old")

        dispatcher = self._dispatcher()
        await dispatcher.start()

        resumed = await wait_for_terminal(self.store, "queued1")
        self.assertEqual(resumed.status, JobStatus.COMPLETED)
        interrupted = self.store.get("running1")
        self.assertEqual(interrupted.status, JobStatus.FAILED)
        self.assertEqual(interrupted.error, INTERRUPTED_MESSAGE)
        self.assertEqual(interrupted.progress, 60)
        self.assertIsNone(self.store.get("expired1"))
        self.assertFalse((self.settings.output_dir / "expired1_final.mp4").exists())
        self.assertEqual(self.store.get("recent1").status, JobStatus.COMPLETED)

    async def test_queued_job_with_missing_inputs_is_failed_on_start(self) -> None:
        self._dispatcher()
        self._seed("orphan1", JobStatus.QUEUED)
        (self.settings.temp_dir / "orphan1_b.mp4").unlink()

        dispatcher = self._dispatcher()
        await dispatcher.start()

        job = self.store.get("orphan1")
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, INTERRUPTED_MESSAGE)

    async def test_queued_jobs_stay_queued_when_resume_is_disabled(self) -> None:
        self._dispatcher()
        self._seed("queued1", JobStatus.QUEUED)

        dispatcher = self._dispatcher(resume_queued_jobs=False)
        await dispatcher.start()

        self.assertEqual(self.store.get("queued1").status, JobStatus.QUEUED)
        self.assertEqual(dispatcher.active_job_ids, set())

        job = await dispatcher.cancel("queued1")
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, CANCELLED_MESSAGE)
        self.assertEqual(job.progress, 0)
        self.assertFalse((self.settings.temp_dir / "queued1_a.mp4").exists())


if __name__ == "__main__":
    unittest.main()
