"""Response envelope models.

WHY RESPONSE ENVELOPES:
- Success bodies are keyed by resource name ({"comment": ...},
  {"user": ...}), errors always use {"error": {...}}
- Easy to distinguish success from error responses
- Middleware stages render the same error envelope as exception handlers
"""

from pydantic import BaseModel
from starlette.responses import JSONResponse

from comments_api.core.errors import APIError


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional list of field-level errors (for validation).
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(exclude_none=True),
        )
    """

    error: ErrorDetail


class MessageResponse(BaseModel):
    """Envelope for operations that only report an outcome."""

    message: str


def error_response(
    exc: APIError,
    *,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render an APIError as a JSON error envelope.

    Used by exception handlers and by middleware stages, which run
    outside FastAPI's exception handling and must respond directly.

    Args:
        exc: The error to render.
        headers: Extra headers merged over the error's own headers.

    Returns:
        JSONResponse with the error's status code and envelope.
    """
    merged = {**(exc.headers or {}), **(headers or {})}
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(exclude_none=True),
        headers=merged or None,
    )
