"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from clipstack.adapters.media import MediaShell, ProcessRunner, SubprocessRunner, Transcriber
from clipstack.core.config import Settings, get_settings
from clipstack.core.logging_safety import configure_package_logging
from clipstack.errors import ApiError
from clipstack.repositories.file_store import FileJobStore
from clipstack.routes import jobs_router, media_router
from clipstack.schemas.error import ErrorResponse
from clipstack.services.bgm import BgmLibrary
from clipstack.services.dispatcher import JobDispatcher
from clipstack.services.inputs import InputResolver
from clipstack.services.pipeline import PipelineEngine
from clipstack.services.retention import RetentionManager

logger = logging.getLogger(__name__)

_API_PREFIX = "/api/"


def create_app(
    settings: Settings | None = None,
    *,
    runner: ProcessRunner | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_package_logging(settings.log_level)
    runner = runner or SubprocessRunner()

    store = FileJobStore(settings.jobs_dir)
    media = MediaShell(runner, binary=settings.ffmpeg_binary, timeout=settings.tool_timeout_seconds)
    transcriber = Transcriber(
        runner,
        binary=settings.whisper_binary,
        model=settings.whisper_model,
        timeout=settings.transcription_timeout_seconds,
    )
    retention = RetentionManager(
        store,
        output_dir=settings.output_dir,
        completed_window=settings.retention_seconds,
        failed_window=settings.failed_retention_seconds,
    )
    pipeline = PipelineEngine(
        store=store,
        media=media,
        transcriber=transcriber,
        bgm=BgmLibrary(settings.bgm_dir),
        retention=retention,
        settings=settings,
    )

    dispatcher = JobDispatcher(store=store, pipeline=pipeline, retention=retention, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings.ensure_directories()
        await dispatcher.start()
        logger.info("app.started storage_root=%s", settings.storage_root)
        try:
            yield
        finally:
            await dispatcher.shutdown()
            logger.info("app.stopped")

    app = FastAPI(title="Clipstack API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.media = media
    app.state.retention = retention
    app.state.pipeline = pipeline
    app.state.dispatcher = dispatcher
    app.state.resolver = InputResolver(
        download_timeout=settings.download_timeout_seconds,
        max_input_bytes=settings.max_input_bytes,
        transport=http_transport,
    )

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        if request.url.path.startswith(_API_PREFIX):
            payload = ErrorResponse(code="VALIDATION_ERROR", message="Invalid request payload")
            return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))
        return await request_validation_exception_handler(request, exc)

    app.include_router(media_router)
    app.include_router(jobs_router)

    return app


app = create_app()
