"""
Service layer exceptions.

Every error carries a stable ``kind`` and an HTTP-ish ``status_code`` so the
outer surface can map it without string matching. Messages never contain
credentials.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for service layer errors."""

    kind = "service_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "status_code": self.status_code,
        }


class ValidationError(ServiceError):
    """Caller input rejected locally, never sent upstream."""

    kind = "validation_error"
    status_code = 400


class UpstreamQueryError(ServiceError):
    """Upstream answered with a GraphQL ``errors`` payload."""

    kind = "upstream_query_error"
    status_code = 400

    def __init__(self, errors: list[Any], service_id: str | None = None):
        self.errors = errors
        super().__init__(
            f"GraphQL query returned {len(errors)} error(s)",
            service_id=service_id,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class TransportError(ServiceError):
    """Connection-level failure talking to upstream."""

    kind = "transport_error"
    status_code = 503
    retryable = True


class RequestTimeoutError(TransportError):
    """Request timed out."""

    kind = "timeout"
    status_code = 504

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class AuthError(ServiceError):
    """Upstream rejected the access token."""

    kind = "unauthorized"
    status_code = 401


class RateLimitError(ServiceError):
    """Rate limit exceeded."""

    kind = "rate_limited"
    status_code = 429
    retryable = True

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id)


class UnknownResourceError(ServiceError):
    """Requested resource does not exist upstream."""

    kind = "not_found"
    status_code = 404


class UpstreamHTTPError(ServiceError):
    """Non-retryable client error returned by upstream (4xx other than 401/404/429)."""

    kind = "upstream_http_error"

    def __init__(self, message: str, status_code: int, service_id: str | None = None):
        self.status_code = status_code
        super().__init__(message, service_id=service_id)


class ServiceUnavailableError(ServiceError):
    """Service is temporarily unavailable."""

    kind = "service_unavailable"
    status_code = 503
    retryable = True

    def __init__(self, message: str, status_code: int = 503, service_id: str | None = None):
        self.status_code = status_code
        super().__init__(message, service_id=service_id)


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    kind = "circuit_open"
    status_code = 503

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            service_id=service_id,
        )


class RetryExhaustedError(ServiceError):
    """All retry attempts failed; wraps the last underlying failure."""

    kind = "retry_exhausted"

    def __init__(self, operation: str, attempts: int, last_error: Exception | None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        self.status_code = getattr(last_error, "status_code", 503)
        detail = str(last_error) if last_error else "Unknown error"
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts. "
            f"Last error: {detail}",
            service_id=operation,
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        if isinstance(self.last_error, ServiceError):
            data["last_error"] = self.last_error.to_dict()
        return data
