"""HTTP client layer for network-backed sources."""

from cragdata.clients.base import APIProviderError, JsonHttpClient, RateLimiter

__all__ = ["APIProviderError", "JsonHttpClient", "RateLimiter"]
