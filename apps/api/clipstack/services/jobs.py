"""Job service layer."""

from __future__ import annotations

import asyncio
from pathlib import Path

from clipstack.domain.layouts import parse_layout
from clipstack.errors import bad_request
from clipstack.schemas.job import JobStatusResponse, Layout, Platform, SubmitJobResponse
from clipstack.services.artifacts import discard_files, input_path
from clipstack.services.dispatcher import JobDispatcher
from clipstack.services.inputs import InputResolver, InputSource

_DEFAULT_LAYOUT = Layout.STACK_VERTICAL.value
_DEFAULT_PLATFORM = Platform.TIKTOK.value


class JobService:
    def __init__(self, *, dispatcher: JobDispatcher, resolver: InputResolver, temp_dir: Path) -> None:
        self._dispatcher = dispatcher
        self._resolver = resolver
        self._temp_dir = temp_dir

    async def submit_job(
        self,
        *,
        layout: str | None,
        platform: str | None,
        video_a: InputSource,
        video_b: InputSource,
    ) -> SubmitJobResponse:
        """Validate, materialise both inputs, then queue the job.

        Nothing is persisted unless both inputs resolve; a failure on ``videoB``
        removes the file already written for ``videoA``.
        """
        parsed_layout = parse_layout(layout or _DEFAULT_LAYOUT)
        if parsed_layout is None:
            raise bad_request("INVALID_LAYOUT", "Invalid layout", details={"layout": layout})
        parsed_platform = _parse_platform(platform or _DEFAULT_PLATFORM)
        if parsed_platform is None:
            raise bad_request(
                "UNSUPPORTED_PLATFORM",
                "Only tiktok platform is supported",
                details={"platform": platform},
            )

        job_id = self._dispatcher.new_job_id()
        path_a = await self._resolver.resolve("videoA", video_a, input_path(self._temp_dir, job_id, "a"))
        try:
            path_b = await self._resolver.resolve("videoB", video_b, input_path(self._temp_dir, job_id, "b"))
        except BaseException:
            await asyncio.to_thread(discard_files, [path_a])
            raise

        try:
            job = await self._dispatcher.submit(
                job_id=job_id,
                layout=parsed_layout,
                platform=parsed_platform,
                input_a=path_a,
                input_b=path_b,
            )
        except BaseException:
            await asyncio.to_thread(discard_files, [path_a, path_b])
            raise
        return SubmitJobResponse(job_id=job.job_id)

    async def get_job_status(self, job_id: str) -> JobStatusResponse:
        return JobStatusResponse.from_job(await self._dispatcher.status(job_id))

    async def cancel_job(self, job_id: str) -> JobStatusResponse:
        job = await self._dispatcher.cancel(job_id)
        return JobStatusResponse.from_job(job)


def _parse_platform(value: str) -> Platform | None:
    try:
        return Platform(value.strip().lower())
    except ValueError:
        return None
