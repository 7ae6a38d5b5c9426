"""Errors raised by the quota and consistency services.

Quota denials and partial batch failures are results, not exceptions:
see ``AdmissionDecision`` and ``CleanupResult``.
"""


class ServiceError(Exception):
    """Base class for service-level errors."""


class ValidationError(ServiceError):
    """Raised on malformed input, before any side effect."""


class NotFoundError(ServiceError):
    """Raised when a user or content id does not resolve to a record."""


class UpstreamFailure(ServiceError):
    """Raised when a provider or store is unreachable or timed out."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        retry_after_seconds: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.retry_after_seconds = retry_after_seconds
