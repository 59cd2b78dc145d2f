"""Fetcher interface and the composed source client every fetcher uses."""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from citekit.cache import Cache, RateLimiter, make_cache_key
from citekit.config import SourceSettings
from citekit.errors import (
    BulkFailure,
    BulkResult,
    FetchError,
    FetchResult,
    ParseError,
    RateLimited,
    SearchResult,
    SearchUnsupported,
)
from citekit.http_client import PROBE_TIMEOUT, HttpClient, HttpResponse
from citekit.models import Reference

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


class SourceClient:
    """Rate-limited, cached HTTP access for a single source.

    Every request follows the same order: ask the rate limiter (and raise
    :class:`RateLimited` without touching the network on denial), look up
    the cache, record the request, perform it, cache the decoded body.
    """

    def __init__(
        self,
        source: str,
        http: HttpClient,
        rate_limiter: RateLimiter,
        cache: Cache,
        settings: SourceSettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source = source
        self.http = http
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.settings = settings or SourceSettings.default(source)
        self.logger = logger or logging.getLogger(__name__)

    def _through(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        decode: Callable[[HttpResponse], Any],
    ) -> Any:
        if not self.rate_limiter.allow(self.source):
            raise RateLimited(f"Rate limit exceeded for {self.source}. Please try again later.")
        key = make_cache_key(self.source, url, params)
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug("Cache hit for %s %s", self.source, url)
            return cached
        self.rate_limiter.record(self.source)
        resp = self.http.get(url, params=params, headers=headers, timeout=self.settings.timeout)
        value = decode(resp)
        self.cache.put(key, value, self.settings.cache_ttl)
        return value

    def get_json(self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> Any:
        """GET a JSON document."""
        return self._through(url, params, headers, lambda r: r.json())

    def get_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        require_html: bool = False,
    ) -> str:
        """GET a text body; with ``require_html`` the response must be a non-empty HTML page."""

        def decode(resp: HttpResponse) -> str:
            if require_html:
                if resp.content_type and not any(t in resp.content_type for t in HTML_CONTENT_TYPES):
                    raise ParseError(f"Expected HTML from {url}, got {resp.content_type}")
                if not resp.text.strip():
                    raise ParseError(f"Empty response from {url}")
            return resp.text

        return self._through(url, params, headers, decode)

    def get_xml(self, url: str, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> ET.Element:
        """GET and parse an XML document. The raw text is what gets cached."""

        def decode(resp: HttpResponse) -> str:
            resp.xml()
            return resp.text

        text = self._through(url, params, headers, decode)
        try:
            return ET.fromstring(text)
        except ET.ParseError as e:
            raise ParseError(f"Invalid XML response from {url}: {e}") from e

    def probe(self, url: str, method: str = "GET", headers: dict[str, str] | None = None) -> HttpResponse:
        """Connectivity probe: short timeout, bypasses the limiter and the cache."""
        if method == "HEAD":
            return self.http.head(url, headers=headers, timeout=PROBE_TIMEOUT)
        return self.http.get(url, headers=headers, timeout=PROBE_TIMEOUT)

    def clear_cache(self) -> int:
        """Drop every cached response of this source."""
        removed = self.cache.clear(prefix=f"{self.source}:")
        self.logger.info("Cleared %d cached %s responses", removed, self.source)
        return removed

    def statistics(self) -> dict[str, Any]:
        limit = self.rate_limiter.limit_for(self.source)
        usage = self.rate_limiter.usage(self.source)
        return {
            "source": self.source,
            "requests_this_minute": usage["minute"],
            "requests_this_hour": usage["hour"],
            "rate_limit_per_minute": limit.per_minute,
            "rate_limit_per_hour": limit.per_hour,
            "cache_ttl": self.settings.cache_ttl,
        }


def sequential_bulk(
    identifiers: Iterable[str],
    fetch: Callable[[str], FetchResult[Reference]],
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> BulkResult:
    """Fetch identifiers one at a time with a fixed pause between requests.

    Every identifier is attempted; failures are collected, never raised.
    """
    result = BulkResult()
    for i, identifier in enumerate(identifiers):
        if i and delay:
            sleep(delay)
        outcome = fetch(identifier)
        if outcome.ok:
            result.successful.append(outcome.value)  # type: ignore[arg-type]
        else:
            result.failed.append(BulkFailure(identifier, outcome.error))  # type: ignore[arg-type]
    return result


class Fetcher(ABC):
    """Capability interface implemented by each metadata source.

    Shared rate-limit/cache/HTTP behaviour lives in the injected
    :class:`SourceClient`, not in this class.
    """

    name: str = ""

    def __init__(
        self,
        client: SourceClient,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    @property
    def settings(self) -> SourceSettings:
        return self.client.settings

    @abstractmethod
    def validate(self, identifier: str) -> bool:
        """Return True if the identifier has this source's syntax."""

    @abstractmethod
    def normalize_id(self, identifier: str) -> str | None:
        """Return the canonical identifier, or None when it cannot be one."""

    @abstractmethod
    def fetch(self, identifier: str) -> FetchResult[Reference]:
        """Fetch and normalize one record."""

    @abstractmethod
    def normalize(self, raw: Any) -> Reference:
        """Pure conversion of a raw payload into a Reference."""

    def search(self, query: str, limit: int = 10, offset: int = 0) -> FetchResult[SearchResult]:
        return FetchResult.failure(SearchUnsupported(f"Search is not supported by {self.name}"))

    def bulk_fetch(self, identifiers: Iterable[str]) -> BulkResult:
        return sequential_bulk(identifiers, self.fetch, self.settings.bulk_delay, self.sleep)

    def test_connection(self) -> FetchResult[bool]:
        """Probe the source's endpoint with a short timeout."""
        try:
            self.client.probe(self.probe_url())
        except FetchError as e:
            return FetchResult.failure(e)
        return FetchResult.success(True)

    def probe_url(self) -> str:
        raise NotImplementedError

    def get_statistics(self) -> dict[str, Any]:
        return self.client.statistics()

    def clear_cache(self) -> int:
        return self.client.clear_cache()
