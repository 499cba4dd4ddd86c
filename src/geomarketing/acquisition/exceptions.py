"""
Errors raised while reading source files or calling the OSM services.

Every error knows whether trying again can help (``retryable``). The
HTTP client retries those and re-raises everything else immediately.
"""

from typing import Optional

from ..core.exceptions import GeomarketingError

# Gateway-type statuses the public Overpass and Nominatim servers return under load
RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})


class AcquisitionError(GeomarketingError):
    """Base exception for all acquisition-related errors."""

    retryable = False


class ConnectionError(AcquisitionError):
    """The service could not be reached."""

    retryable = True


class TimeoutError(AcquisitionError):
    """A request phase (connect, read, write, pool) timed out."""

    retryable = True

    def __init__(
        self,
        message: str,
        timeout_type: str = "unknown",
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.timeout_type = timeout_type


class ServiceError(AcquisitionError):
    """
    A service answered with an HTTP error status.

    Attributes:
        status_code: HTTP status of the response.
        url: Requested URL.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        url: str = "",
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.status_code = status_code
        self.url = url


class RateLimitError(ServiceError):
    """429 Too Many Requests; Overpass sends this when all query slots are taken."""

    retryable = True

    def __init__(
        self,
        message: str,
        url: str = "",
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, 429, url, cause)
        self.retry_after = retry_after


class ServerError(ServiceError):
    """5xx response."""

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code in RETRYABLE_STATUS_CODES


class AuthenticationError(ServiceError):
    """401/403, e.g. a client blocked for breaking the usage policy."""


class NotFoundError(ServiceError):
    """404 for the requested endpoint."""


class InvalidResponseError(AcquisitionError):
    """A response could not be parsed or lacks the expected fields."""

    def __init__(
        self,
        message: str,
        response_text: Optional[str] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, cause)
        self.response_text = response_text[:500] if response_text else None


class OverpassQueryError(InvalidResponseError):
    """
    Overpass answered 200 but reports a runtime error in its ``remark``.

    Raised for queries that ran out of time or memory on the server; the
    element list of such a response is incomplete.
    """


class MaxRetriesExceededError(AcquisitionError):
    """Every attempt failed with a retryable error."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, last_error)
        self.attempts = attempts
        self.last_error = last_error
