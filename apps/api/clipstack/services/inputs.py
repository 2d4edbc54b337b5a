"""Input resolver: turns a submitted video (inline, upload or URL) into a local file."""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
import logging
from pathlib import Path
import re
from typing import Any, Literal
from urllib.parse import urlparse

import aiofiles
import httpx
from starlette.datastructures import UploadFile

from clipstack.core.logging_safety import safe_log_identifier
from clipstack.errors import ApiError, bad_request
from clipstack.services.artifacts import discard_files

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024
DEFAULT_MAX_INPUT_BYTES = 500 * 1024 * 1024
_DATA_URI_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")

SourceKind = Literal["inline", "upload", "url"]


@dataclass(slots=True)
class InputSource:
    """The candidate sources supplied for one slot.

    When several are present the first of inline > upload > url wins.
    """

    inline: str | None = None
    upload: UploadFile | None = None
    url: str | None = None

    @classmethod
    def from_fields(cls, fields: dict[str, Any], prefix: str) -> "InputSource":
        upload = fields.get(f"{prefix}_file")
        return cls(
            inline=_text_field(fields.get(f"{prefix}_base64")),
            upload=upload if isinstance(upload, UploadFile) and upload.filename else None,
            url=_text_field(fields.get(f"{prefix}_url")),
        )

    def supplied(self) -> list[SourceKind]:
        kinds: list[SourceKind] = []
        if self.inline:
            kinds.append("inline")
        if self.upload is not None:
            kinds.append("upload")
        if self.url:
            kinds.append("url")
        return kinds

    @property
    def kind(self) -> SourceKind | None:
        supplied = self.supplied()
        return supplied[0] if supplied else None


def _text_field(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def decode_inline_payload(payload: str, *, max_bytes: int | None = None, slot: str | None = None) -> bytes:
    data = _DATA_URI_PREFIX.sub("", payload.strip(), count=1)
    if max_bytes is not None and len(data) // 4 * 3 - 2 > max_bytes:
        raise _too_large(max_bytes, slot)
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise bad_request("INVALID_INPUT", "Inline video payload is not valid base64") from exc
    if not decoded:
        raise bad_request("INVALID_INPUT", "Inline video payload is empty")
    if max_bytes is not None and len(decoded) > max_bytes:
        raise _too_large(max_bytes, slot)
    return decoded


def _too_large(max_bytes: int, slot: str | None = None) -> ApiError:
    details: dict[str, Any] = {"max_bytes": max_bytes}
    if slot is not None:
        details["slot"] = slot
    return bad_request("INPUT_TOO_LARGE", f"Input exceeds the {max_bytes} byte limit", details=details)


class InputResolver:
    def __init__(
        self,
        *,
        download_timeout: float = 120.0,
        max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._download_timeout = download_timeout
        self._max_input_bytes = max_input_bytes
        self._transport = transport

    async def resolve(self, slot: str, source: InputSource, destination: Path) -> Path:
        """Materialise ``source`` at ``destination`` or raise a 400 ``ApiError``."""
        supplied = source.supplied()
        if not supplied:
            raise bad_request("NO_INPUT_PROVIDED", f"No input provided for {slot}", details={"slot": slot})
        if len(supplied) > 1:
            logger.info("inputs.multiple_sources slot=%s supplied=%s chosen=%s", slot, ",".join(supplied), supplied[0])

        destination.parent.mkdir(parents=True, exist_ok=True)
        kind = supplied[0]
        try:
            if kind == "inline":
                await self._write_inline(slot, source.inline, destination)
            elif kind == "upload":
                await self._copy_upload(slot, source.upload, destination)
            else:
                await self._download(slot, source.url, destination)
        except BaseException:
            await asyncio.to_thread(discard_files, [destination])
            raise

        logger.info("inputs.resolved slot=%s kind=%s file=%s", slot, kind, destination.name)
        return destination

    async def _write_inline(self, slot: str, payload: str, destination: Path) -> None:
        data = await asyncio.to_thread(decode_inline_payload, payload, max_bytes=self._max_input_bytes, slot=slot)
        async with aiofiles.open(destination, "wb") as out_file:
            await out_file.write(data)

    async def _copy_upload(self, slot: str, upload: UploadFile, destination: Path) -> None:
        try:
            if upload.size is not None and upload.size > self._max_input_bytes:
                raise _too_large(self._max_input_bytes, slot)
            written = 0
            async with aiofiles.open(destination, "wb") as out_file:
                while True:
                    chunk = await upload.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self._max_input_bytes:
                        raise _too_large(self._max_input_bytes, slot)
                    await out_file.write(chunk)
        finally:
            await upload.close()

    async def _download(self, slot: str, url: str, destination: Path) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise bad_request("INVALID_INPUT", f"Unsupported URL for {slot}", details={"slot": slot})

        safe_url = safe_log_identifier(url, prefix="url")
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._download_timeout,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > self._max_input_bytes:
                        logger.warning("inputs.download_rejected slot=%s url=%s declared_bytes=%s", slot, safe_url, declared)
                        raise _too_large(self._max_input_bytes, slot)
                    written = 0
                    async with aiofiles.open(destination, "wb") as out_file:
                        async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                            written += len(chunk)
                            if written > self._max_input_bytes:
                                raise _too_large(self._max_input_bytes, slot)
                            await out_file.write(chunk)
        except httpx.HTTPStatusError as exc:
            logger.warning("inputs.download_failed slot=%s url=%s status=%s", slot, safe_url, exc.response.status_code)
            raise bad_request(
                "INPUT_DOWNLOAD_FAILED",
                f"Failed to download {slot}: HTTP {exc.response.status_code}",
                details={"slot": slot},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("inputs.download_failed slot=%s url=%s reason=%s", slot, safe_url, type(exc).__name__)
            raise bad_request(
                "INPUT_DOWNLOAD_FAILED",
                f"Failed to download {slot}: {type(exc).__name__}",
                details={"slot": slot},
            ) from exc
