"""Service index, metadata and download routes."""

from pathlib import PurePath
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from clipstack.core.config import Settings
from clipstack.errors import not_found
from clipstack.routes.dependencies import get_metadata_service, get_settings, read_submission_fields
from clipstack.schemas.error import InputError, NoLeakNotFoundError, UpstreamToolError
from clipstack.schemas.media import ServiceIndex, VideoMetadata
from clipstack.services.artifacts import DOWNLOAD_PREFIX
from clipstack.services.inputs import InputSource
from clipstack.services.metadata import MetadataService

router = APIRouter(tags=["Media"])

_MEDIA_TYPES = {".mp4": "video/mp4", ".jpg": "image/jpeg"}


@router.get("/", response_model=ServiceIndex)
async def service_index() -> ServiceIndex:
    return ServiceIndex(
        message="Vertical Video API",
        endpoints={
            "process": "POST /api/process",
            "job": "GET /api/job/{job_id}",
            "cancel": "POST /api/job/{job_id}/cancel",
            "metadata": "POST /api/metadata",
            "download": f"GET {DOWNLOAD_PREFIX}/{{filename}}",
        },
    )


@router.post(
    "/api/metadata",
    response_model=VideoMetadata,
    responses={400: {"model": InputError}, 502: {"model": UpstreamToolError}},
)
async def get_metadata(
    fields: Annotated[dict[str, Any], Depends(read_submission_fields)],
    service: Annotated[MetadataService, Depends(get_metadata_service)],
) -> VideoMetadata:
    return await service.probe(InputSource.from_fields(fields, "video"))


@router.get(
    f"{DOWNLOAD_PREFIX}/{{filename}}",
    response_class=FileResponse,
    responses={404: {"model": NoLeakNotFoundError}},
)
async def download(
    filename: str,
    settings: Annotated[Settings, Depends(get_settings)],
) -> FileResponse:
    if not filename or PurePath(filename).name != filename or filename.startswith("."):
        raise not_found("File not found")
    path = settings.output_dir / filename
    if not path.is_file():
        raise not_found("File not found")
    return FileResponse(path, media_type=_MEDIA_TYPES.get(path.suffix.lower()), filename=filename)
