"""
Resilient outbound HTTP helpers shared by the data fetchers.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 504)


class RateLimiter:
    """
    Enforce a minimum interval between requests to one upstream.

    Callers await wait() before each request; concurrent callers are
    serialised so the interval holds across tasks.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                remaining = self.min_interval - elapsed
                if remaining > 0:
                    logger.debug(f"Rate limit: sleeping {remaining:.2f}s")
                    await self._sleep(remaining)
            self._last_request = self._clock()


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def json_body(response: httpx.Response, service: str) -> Any:
    """Decode a JSON body; a page that is not JSON counts as an upstream failure."""
    try:
        return response.json()
    except ValueError as e:
        logger.warning(f"Response is not JSON: {response.text[:200]!r}", extra={"service": service})
        raise UpstreamServiceError(service, "invalid JSON response", details=response.text[:500]) from e


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    service: str,
    retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    retry_statuses: Iterable[int] = RETRY_STATUSES,
    limiter: Optional[RateLimiter] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> httpx.Response:
    """
    Send a request, retrying rate-limit and gateway-timeout responses.

    Only the statuses in retry_statuses (and transport errors) are retried,
    with exponential backoff of backoff_base * 2**attempt seconds, or the
    server's Retry-After when that is longer. Any other non-2xx response
    raises UpstreamServiceError straight away.

    Args:
        client: Shared async client
        method: HTTP method
        url: Absolute URL
        service: Upstream name used in logs and errors
        retries: Extra attempts after the first (defaults to HTTP_MAX_RETRIES)
        backoff_base: First backoff delay in seconds (defaults to HTTP_BACKOFF_BASE)
        retry_statuses: Statuses that trigger a retry
        limiter: Optional rate limiter awaited before every attempt
        **kwargs: Passed through to httpx

    Returns:
        The successful response
    """
    retries = settings.HTTP_MAX_RETRIES if retries is None else retries
    backoff_base = settings.HTTP_BACKOFF_BASE if backoff_base is None else backoff_base
    retry_statuses = tuple(retry_statuses)

    for attempt in range(retries + 1):
        if limiter is not None:
            await limiter.wait()

        delay = backoff_base * (2 ** attempt)
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt >= retries:
                raise UpstreamServiceError(service, f"network error: {e}") from e
            logger.warning(
                f"Network error on attempt {attempt + 1}/{retries + 1}: {e}; retrying in {delay:.1f}s",
                extra={"service": service},
            )
            await sleep(delay)
            continue

        if response.status_code in retry_statuses:
            if attempt >= retries:
                raise UpstreamServiceError(
                    service,
                    "retries exhausted",
                    status_code=response.status_code,
                    details=response.text,
                )
            retry_after = _retry_after(response)
            if retry_after is not None:
                delay = max(delay, retry_after)
            logger.warning(
                f"HTTP {response.status_code} on attempt {attempt + 1}/{retries + 1}; retrying in {delay:.1f}s",
                extra={"service": service},
            )
            await sleep(delay)
            continue

        if response.is_error:
            raise UpstreamServiceError(
                service,
                response.reason_phrase or "request failed",
                status_code=response.status_code,
                details=response.text,
            )

        return response

    # Unreachable: the loop either returns or raises on the last attempt
    raise UpstreamServiceError(service, "retries exhausted")
