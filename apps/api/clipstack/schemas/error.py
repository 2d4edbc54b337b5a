"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from clipstack.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE"]
    message: str
    details: TransitionErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class InputError(BaseModel):
    code: Literal[
        "INVALID_LAYOUT",
        "UNSUPPORTED_PLATFORM",
        "NO_INPUT_PROVIDED",
        "INVALID_INPUT",
        "INPUT_DOWNLOAD_FAILED",
        "INPUT_TOO_LARGE",
        "VALIDATION_ERROR",
    ]
    message: str
    details: dict[str, Any] | None = None


class UpstreamToolError(BaseModel):
    code: Literal["METADATA_PROBE_FAILED"]
    message: str
