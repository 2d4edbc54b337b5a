"""Dependency wiring for routes."""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import Depends, Request

from clipstack.core.config import Settings
from clipstack.errors import bad_request
from clipstack.services.dispatcher import JobDispatcher
from clipstack.services.inputs import InputResolver
from clipstack.services.jobs import JobService
from clipstack.services.metadata import MetadataService

logger = logging.getLogger(__name__)

_FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


async def read_submission_fields(request: Request) -> dict[str, Any]:
    """Collect submitted fields from a multipart form, an urlencoded form, or a JSON object.

    Upload parts stay ``UploadFile`` instances; everything else is a string.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in _FORM_CONTENT_TYPES:
        form = await request.form()
        return {key: value for key, value in form.multi_items()}

    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError as exc:
        logger.info("request.rejected path=%s reason=invalid_json", request.url.path)
        raise bad_request("VALIDATION_ERROR", "Request body must be a form or a JSON object") from exc
    if not isinstance(payload, dict):
        raise bad_request("VALIDATION_ERROR", "Request body must be a form or a JSON object")
    return payload


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_dispatcher(request: Request) -> JobDispatcher:
    return request.app.state.dispatcher


def get_input_resolver(request: Request) -> InputResolver:
    return request.app.state.resolver


def get_job_service(
    settings: Annotated[Settings, Depends(get_settings)],
    dispatcher: Annotated[JobDispatcher, Depends(get_dispatcher)],
    resolver: Annotated[InputResolver, Depends(get_input_resolver)],
) -> JobService:
    return JobService(dispatcher=dispatcher, resolver=resolver, temp_dir=settings.temp_dir)


def get_metadata_service(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    resolver: Annotated[InputResolver, Depends(get_input_resolver)],
) -> MetadataService:
    return MetadataService(media=request.app.state.media, resolver=resolver, temp_dir=settings.temp_dir)
