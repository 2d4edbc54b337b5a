"""Application exception types."""

from clipstack.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to an error response payload."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


def not_found(message: str = "Resource not found") -> ApiError:
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message=message)


def bad_request(code: str, message: str, details: dict | None = None) -> ApiError:
    return ApiError(status_code=400, code=code, message=message, details=details)


__all__ = ["ApiError", "bad_request", "not_found"]
