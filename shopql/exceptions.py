"""
HTTP exceptions for the FastAPI surface and the mapping from service errors.
"""

from fastapi import HTTPException, status

from shopql.services.errors import (
    AuthError,
    RateLimitError,
    RetryExhaustedError,
    ServiceError,
    UnknownResourceError,
    UpstreamQueryError,
    ValidationError,
)


class BadRequestError(HTTPException):
    """Bad request error exception"""

    def __init__(self, detail: str | dict = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UnauthorizedError(HTTPException):
    """Unauthorized error exception"""

    def __init__(self, detail: str | dict = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class NotFoundError(HTTPException):
    """Not found error exception"""

    def __init__(self, detail: str | dict = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class MethodNotAllowedError(HTTPException):
    """Write attempted against the read-only API"""

    def __init__(self, detail: str | dict = "Read-only API: only GET is supported"):
        super().__init__(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail=detail,
            headers={"Allow": "GET"},
        )


class TooManyRequestsError(HTTPException):
    """Upstream rate limit exceeded"""

    def __init__(self, detail: str | dict = "Rate limit exceeded", retry_after: float | None = None):
        headers = {"Retry-After": str(max(1, round(retry_after)))} if retry_after else None
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail, headers=headers
        )


class UpstreamError(HTTPException):
    """Any other upstream failure, with the service error's own status code"""

    def __init__(self, status_code: int, detail: str | dict = "Upstream error"):
        super().__init__(status_code=status_code, detail=detail)


def to_http_exception(error: ServiceError) -> HTTPException:
    """Map a service error onto an HTTPException carrying its serialized form."""
    root = error.last_error if isinstance(error, RetryExhaustedError) else error
    detail = error.to_dict()

    if isinstance(root, (ValidationError, UpstreamQueryError)):
        return BadRequestError(detail)
    if isinstance(root, AuthError):
        return UnauthorizedError(detail)
    if isinstance(root, UnknownResourceError):
        return NotFoundError(detail)
    if isinstance(root, RateLimitError):
        return TooManyRequestsError(detail, retry_after=root.retry_after)
    return UpstreamError(error.status_code or 500, detail)
