"""Async HTTP client with rate limiting and retries.

Used by network-backed sources to fetch JSON documents:
- Async/await for non-blocking I/O
- Token bucket rate limiting
- Retries with exponential backoff on transient failures
- APIProviderError for everything that still fails

Usage:
    async with JsonHttpClient(base_url="https://example.org/api") as client:
        data = await client.get("/summits", params={"region": "Schrammsteine"})

Absolute URLs bypass ``base_url``:
    async with JsonHttpClient() as client:
        data = await client.get("https://example.org/export.json")
"""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class RateLimiter:
    """Token bucket rate limiter for async operations.

    Args:
        rate: Maximum requests per second
    """

    def __init__(self, rate: int) -> None:
        if rate < 1:
            raise ValueError(f"rate must be >= 1, got {rate}")
        self.rate = rate
        self.tokens = float(rate)
        self.updated_at: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self.updated_at is None:
                self.updated_at = loop.time()

            while self.tokens < 1:
                now = loop.time()
                self.tokens = min(self.rate, self.tokens + (now - self.updated_at) * self.rate)
                self.updated_at = now
                if self.tokens < 1:
                    await asyncio.sleep((1 - self.tokens) / self.rate)

            self.tokens -= 1
            self.updated_at = loop.time()


class APIProviderError(Exception):
    """Request failed after retries, or the response was unusable."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class JsonHttpClient:
    """Async JSON-over-HTTP client.

    Args:
        base_url: Prefix for relative endpoints (may be empty)
        headers: Default headers for all requests
        rate_limit: Maximum requests per second (default: 5)
        timeout: Request timeout in seconds (default: 30)
        max_retries: Retries after the first attempt (default: 3)
        backoff: Base backoff in seconds, doubled per attempt (default: 1.0)
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        rate_limit: int = 5,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "JsonHttpClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _resolve(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")) or not self.base_url:
            return endpoint
        return endpoint if endpoint.startswith("/") else f"/{endpoint}"

    async def _retry_or_raise(self, attempt: int, error: APIProviderError, what: str) -> None:
        if attempt >= self.max_retries:
            logger.error("%s, giving up after %d attempts", what, attempt + 1)
            raise error
        delay = self.backoff * (2 ** attempt)
        logger.warning(
            "%s, retrying in %.1fs (attempt %d/%d)",
            what, delay, attempt + 1, self.max_retries + 1,
        )
        await asyncio.sleep(delay)

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: Any | None = None,
    ) -> Any:
        """Make a request and decode the JSON body.

        Raises:
            RuntimeError: If used outside ``async with``
            APIProviderError: On non-retryable failure or exhausted retries
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        url = self._resolve(endpoint)

        for attempt in range(self.max_retries + 1):
            await self._rate_limiter.acquire()
            logger.debug("%s %s params=%s (attempt %d)", method, url, params, attempt + 1)

            try:
                response = await self._client.request(method, url, params=params, json=json_data)
            except httpx.TimeoutException as e:
                await self._retry_or_raise(attempt, APIProviderError(f"Request timeout: {e}"), f"Timeout for {url}")
                continue
            except httpx.NetworkError as e:
                await self._retry_or_raise(attempt, APIProviderError(f"Network error: {e}"), f"Network error for {url}")
                continue

            if response.status_code >= 400:
                error = APIProviderError(
                    message=f"API request failed: {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text[:500],
                )
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error("API error: %d %s", response.status_code, url)
                    raise error
                await self._retry_or_raise(attempt, error, f"Retryable {response.status_code} for {url}")
                continue

            try:
                return response.json()
            except ValueError as e:
                raise APIProviderError(
                    message=f"Invalid JSON response: {e}",
                    status_code=response.status_code,
                    response_body=response.text[:500],
                ) from e

        raise APIProviderError("Request failed after retries")

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Convenience method for GET requests."""
        return await self.request("GET", endpoint, params=params)
