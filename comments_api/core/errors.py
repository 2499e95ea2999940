"""API error classes.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints and middleware
- Easy to map to HTTP status codes in exception handlers
- Authentication, authorization and rate-limit rejections are typed,
  so business handlers never need to special-case them
"""

# Challenge header for 401 responses on bearer-protected resources
_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class MalformedCredentialError(APIError):
    """Authorization header present but not a well-formed bearer token (401).

    Terminal: the request is rejected before routing.
    """

    def __init__(self) -> None:
        super().__init__(
            code="MALFORMED_CREDENTIAL",
            message="invalid or missing authentication token",
            status_code=401,
            headers=dict(_BEARER_CHALLENGE),
        )


class InvalidCredentialsError(APIError):
    """Credentials did not resolve to a user (401).

    Security: The same error is raised for an unknown token, an expired
    token, a token of the wrong scope, an unknown email and a wrong
    password. Callers cannot tell these cases apart.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message="invalid authentication credentials",
            status_code=401,
            headers=dict(_BEARER_CHALLENGE),
        )


class AuthenticationRequiredError(APIError):
    """Anonymous caller reached a protected resource (401)."""

    def __init__(self) -> None:
        super().__init__(
            code="AUTHENTICATION_REQUIRED",
            message="you must be authenticated to access this resource",
            status_code=401,
            headers=dict(_BEARER_CHALLENGE),
        )


class NotActivatedError(APIError):
    """Authenticated caller whose account is not activated (403)."""

    def __init__(self) -> None:
        super().__init__(
            code="NOT_ACTIVATED",
            message="your user account must be activated to access this resource",
            status_code=403,
        )


class RateLimitedError(APIError):
    """Client exceeded its request budget (429).

    Retryable by the caller after Retry-After seconds.

    Args:
        retry_after: Whole seconds until a request would be admitted.
    """

    def __init__(self, retry_after: int = 1) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message="rate limit exceeded",
            status_code=429,
            headers={"Retry-After": str(max(retry_after, 1))},
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Use for duplicate entries, conflicting state, etc.
    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )


class PersistenceError(InternalError):
    """A store or hashing call failed or timed out (500).

    Raise sites log the cause server-side; the client only sees the
    generic INTERNAL_ERROR envelope.

    Args:
        operation: Short description of the failed call.
    """

    def __init__(self, operation: str) -> None:
        super().__init__()
        self.operation = operation
