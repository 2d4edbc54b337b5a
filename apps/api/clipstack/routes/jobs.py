"""Job routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path
from fastapi.responses import JSONResponse

from clipstack.routes.dependencies import get_job_service, read_submission_fields
from clipstack.schemas.error import FsmTransitionError, InputError, NoLeakNotFoundError
from clipstack.schemas.job import JobStatusResponse, SubmitJobResponse
from clipstack.services.inputs import InputSource
from clipstack.services.jobs import JobService

router = APIRouter(tags=["Jobs"])


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value.strip() else None


@router.post(
    "/api/process",
    response_model=SubmitJobResponse,
    responses={400: {"model": InputError}},
)
async def submit_job(
    fields: Annotated[dict[str, Any], Depends(read_submission_fields)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> SubmitJobResponse:
    return await service.submit_job(
        layout=_optional_text(fields.get("layout")),
        platform=_optional_text(fields.get("platform")),
        video_a=InputSource.from_fields(fields, "videoA"),
        video_b=InputSource.from_fields(fields, "videoB"),
    )


@router.get(
    "/api/job/{job_id}",
    response_model=JobStatusResponse,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path()],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JSONResponse:
    status = await service.get_job_status(job_id)
    return JSONResponse(content=status.model_dump(mode="json", exclude_none=True))


@router.post(
    "/api/job/{job_id}/cancel",
    response_model=JobStatusResponse,
    responses={404: {"model": NoLeakNotFoundError}, 409: {"model": FsmTransitionError}},
)
async def cancel_job(
    job_id: Annotated[str, Path()],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JSONResponse:
    status = await service.cancel_job(job_id)
    return JSONResponse(content=status.model_dump(mode="json", exclude_none=True))
