"""
Async HTTP plumbing shared by the OpenStreetMap service clients.

The public OSM endpoints are shared, volunteer-run infrastructure with
strict usage policies, so every request goes through the same gate:

- at most ``concurrent_requests`` in flight, spaced ``min_request_interval`` apart
- a descriptive User-Agent on every request
- retries with exponential backoff for retryable failures only, honouring
  ``Retry-After`` on 429 responses
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from .exceptions import (
    AcquisitionError,
    AuthenticationError,
    ConnectionError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ServiceError,
    TimeoutError,
)
from .models import ServiceConfig

logger = logging.getLogger(__name__)

TIMEOUT_TYPES = (
    (httpx.ConnectTimeout, "connect"),
    (httpx.ReadTimeout, "read"),
    (httpx.WriteTimeout, "write"),
    (httpx.PoolTimeout, "pool"),
)


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        # HTTP-date form; fall back to the configured backoff
        return None


def map_http_error(error: httpx.HTTPStatusError, url: str) -> ServiceError | InvalidResponseError:
    """Translate an error status into the acquisition error hierarchy."""
    response = error.response
    status = response.status_code

    if status == 429:
        return RateLimitError(
            f"Rate limit exceeded for {url}",
            url=url,
            retry_after=_retry_after_seconds(response),
            cause=error,
        )
    if status in (401, 403):
        return AuthenticationError(f"Access refused for {url}: {status}", status, url, error)
    if status == 404:
        return NotFoundError(f"Resource not found: {url}", status, url, error)
    if status >= 500:
        return ServerError(f"Server error {status} for {url}", status, url, error)
    return InvalidResponseError(
        f"HTTP {status} error for {url}",
        response_text=response.text,
        cause=error,
    )


def map_transport_error(error: httpx.TransportError, url: str) -> AcquisitionError:
    """Translate a network-level failure into the acquisition error hierarchy."""
    if isinstance(error, httpx.TimeoutException):
        timeout_type = next(
            (name for kind, name in TIMEOUT_TYPES if isinstance(error, kind)),
            "unknown",
        )
        return TimeoutError(
            f"Request to {url} timed out ({timeout_type})",
            timeout_type=timeout_type,
            cause=error,
        )
    return ConnectionError(f"Could not reach {url}: {error}", cause=error)


class AsyncServiceClient:
    """
    Rate-limited, retrying JSON client.

    Subclasses build service-specific requests and parse the responses.

    Usage:
        async with OSMClient(config) as client:
            data = await client.get_json(url, params=...)

    Attributes:
        config: ServiceConfig with endpoints, timeouts, limits and retry policy.
    """

    def __init__(
        self,
        config: ServiceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            config: Client settings.
            transport: httpx transport override, e.g. httpx.MockTransport in tests.
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._gate: Optional[asyncio.Semaphore] = None
        self._last_sent = float("-inf")
        self._request_count = 0

    async def __aenter__(self) -> "AsyncServiceClient":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(**self.config.timeout.model_dump()),
            limits=httpx.Limits(**self.config.limits.model_dump()),
            headers={
                "User-Agent": self.config.user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
            transport=self._transport,
        )
        self._gate = asyncio.Semaphore(self.config.rate_limit.concurrent_requests)
        logger.debug(
            "Opened service client (%d concurrent, %.2fs spacing)",
            self.config.rate_limit.concurrent_requests,
            self.config.rate_limit.min_request_interval,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Closed service client after %d requests", self._request_count)

    @property
    def request_count(self) -> int:
        return self._request_count

    async def _wait_turn(self) -> None:
        """Sleep until min_request_interval has passed since the previous request."""
        wait = self._last_sent + self.config.rate_limit.min_request_interval - time.monotonic()
        if wait > 0:
            logger.debug("Spacing requests: sleeping %.3fs", wait)
            await asyncio.sleep(wait)
        self._last_sent = time.monotonic()

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """One attempt; failures come back as acquisition errors."""
        if self._client is None or self._gate is None:
            raise RuntimeError("Client not open; use 'async with'")

        async with self._gate:
            await self._wait_turn()
            try:
                response = await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                raise map_transport_error(e, url) from e

            self._request_count += 1
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise map_http_error(e, url) from e
            return response

    def _backoff(self, attempt: int, error: AcquisitionError) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(error.retry_after, self.config.retry.max_delay)
        return self.config.retry.calculate_delay(attempt)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, retrying retryable failures with backoff.

        Raises:
            MaxRetriesExceededError: When every attempt failed with a retryable error.
            AcquisitionError: The first non-retryable error (404, 403, bad status, ...).
        """
        attempts = self.config.retry.max_retries + 1
        last_error: Optional[AcquisitionError] = None

        for attempt in range(attempts):
            try:
                return await self._send_once(method, url, **kwargs)
            except AcquisitionError as e:
                if not e.retryable:
                    raise
                last_error = e

            if attempt + 1 < attempts:
                delay = self._backoff(attempt, last_error)
                logger.warning(
                    "%s (attempt %d/%d), retrying in %.2fs",
                    last_error,
                    attempt + 1,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)

        raise MaxRetriesExceededError(
            f"Gave up on {url} after {attempts} attempts",
            attempts=attempts,
            last_error=last_error,
        )

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(
                f"Response from {url} is not JSON",
                response_text=response.text,
                cause=e,
            )

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        return await self._json("GET", url, **kwargs)

    async def post_json(self, url: str, **kwargs: Any) -> Any:
        """POST (Overpass takes the query as form data) and parse the JSON body."""
        return await self._json("POST", url, **kwargs)
