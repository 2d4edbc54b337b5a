"""Single-shot metadata extraction; no job is created."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
import secrets

from clipstack.adapters.media import MediaShell, MediaToolError
from clipstack.errors import ApiError
from clipstack.schemas.media import VideoMetadata
from clipstack.services.artifacts import discard_files
from clipstack.services.inputs import InputResolver, InputSource

logger = logging.getLogger(__name__)


class MetadataService:
    def __init__(self, *, media: MediaShell, resolver: InputResolver, temp_dir: Path) -> None:
        self._media = media
        self._resolver = resolver
        self._temp_dir = temp_dir

    async def probe(self, video: InputSource) -> VideoMetadata:
        """Resolve ``video`` to a temp file, probe it, and always delete the temp file."""
        destination = self._temp_dir / f"metadata_{secrets.token_hex(8)}.mp4"
        path = await self._resolver.resolve("video", video, destination)
        try:
            return await self._media.probe(path)
        except MediaToolError as exc:
            logger.warning("metadata.probe_failed reason=%s", type(exc).__name__)
            raise ApiError(status_code=502, code="METADATA_PROBE_FAILED", message=str(exc)) from exc
        finally:
            await asyncio.to_thread(discard_files, [path])
