"""Configuration dataclasses for citekit."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import yaml

from citekit.cache import DEFAULT_LIMITS, DEFAULT_TTLS, RateLimit

DEFAULT_BULK_DELAYS = {
    "doi": 0.1,
    "pubmed": 0.2,
    "isbn": 0.1,
    "url_scraper": 0.5,
}


@dataclass
class SourceSettings:
    """Per-source throttling and caching settings.

    Attributes:
        requests_per_minute: Ceiling for the minute bucket
        requests_per_hour: Ceiling for the hour bucket
        cache_ttl: Seconds a cached response stays valid
        bulk_delay: Seconds to wait between sequential bulk requests
        timeout: Optional per-source request timeout overriding the global one
    """

    requests_per_minute: int
    requests_per_hour: int
    cache_ttl: int
    bulk_delay: float
    timeout: float | None = None

    @property
    def rate_limit(self) -> RateLimit:
        return RateLimit(self.requests_per_minute, self.requests_per_hour)

    @classmethod
    def default(cls, source: str) -> SourceSettings:
        limit = DEFAULT_LIMITS.get(source, RateLimit(30, 500))
        return cls(
            requests_per_minute=limit.per_minute,
            requests_per_hour=limit.per_hour,
            cache_ttl=DEFAULT_TTLS.get(source, 86400),
            bulk_delay=DEFAULT_BULK_DELAYS.get(source, 0.1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "requests_per_minute": self.requests_per_minute,
            "requests_per_hour": self.requests_per_hour,
            "cache_ttl": self.cache_ttl,
            "bulk_delay": self.bulk_delay,
            "timeout": self.timeout,
        }


def _default_sources() -> dict[str, SourceSettings]:
    return {name: SourceSettings.default(name) for name in DEFAULT_LIMITS}


@dataclass
class CitekitConfig:
    """Top-level configuration.

    Attributes:
        user_agent: User-Agent sent to the bibliographic APIs
        contact_email: Address appended as ``mailto:`` for the CrossRef polite pool
        timeout: Default request timeout in seconds
        cache_path: JSON file for the shared cache; None keeps state in memory
        google_books_api_key: Optional Google Books API key
        ncbi_api_key: Optional NCBI E-utilities API key
        fallback_on_error: Return a minimal webpage record when scraping fails
        sources: Per-source settings keyed by fetcher name
    """

    user_agent: str = "citekit/0.1"
    contact_email: str | None = None
    timeout: float = 30.0
    cache_path: str | None = None
    google_books_api_key: str | None = None
    ncbi_api_key: str | None = None
    fallback_on_error: bool = True
    sources: dict[str, SourceSettings] = field(default_factory=_default_sources)

    def source(self, name: str) -> SourceSettings:
        """Get settings for a source, falling back to its defaults."""
        return self.sources.get(name) or SourceSettings.default(name)

    def polite_user_agent(self) -> str:
        if self.contact_email:
            return f"{self.user_agent} (mailto:{self.contact_email})"
        return self.user_agent

    def rate_limits(self) -> dict[str, RateLimit]:
        return {name: s.rate_limit for name, s in self.sources.items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CitekitConfig:
        """Create config from a dictionary (e.g. parsed YAML).

        Unknown keys are ignored. Source entries are merged over the
        defaults, so a file may override a single field of one source.
        """
        sources = _default_sources()
        for name, overrides in (data.get("sources") or {}).items():
            base = sources.get(name) or SourceSettings.default(name)
            merged = {**base.to_dict(), **(overrides or {})}
            sources[name] = SourceSettings(**{k: merged[k] for k in base.to_dict()})
        return cls(
            user_agent=data.get("user_agent", "citekit/0.1"),
            contact_email=data.get("contact_email"),
            timeout=float(data.get("timeout", 30.0)),
            cache_path=data.get("cache_path"),
            google_books_api_key=data.get("google_books_api_key"),
            ncbi_api_key=data.get("ncbi_api_key"),
            fallback_on_error=bool(data.get("fallback_on_error", True)),
            sources=sources,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "user_agent": self.user_agent,
            "contact_email": self.contact_email,
            "timeout": self.timeout,
            "cache_path": self.cache_path,
            "google_books_api_key": self.google_books_api_key,
            "ncbi_api_key": self.ncbi_api_key,
            "fallback_on_error": self.fallback_on_error,
            "sources": {name: s.to_dict() for name, s in self.sources.items()},
        }

    def with_env(self) -> CitekitConfig:
        """Fill missing credentials from GOOGLE_BOOKS_API_KEY, NCBI_API_KEY and CITEKIT_CONTACT_EMAIL."""
        self.google_books_api_key = self.google_books_api_key or os.environ.get("GOOGLE_BOOKS_API_KEY")
        self.ncbi_api_key = self.ncbi_api_key or os.environ.get("NCBI_API_KEY")
        self.contact_email = self.contact_email or os.environ.get("CITEKIT_CONTACT_EMAIL")
        return self


def load_config(path: str | None) -> CitekitConfig:
    """Load configuration from a YAML file; a missing path yields defaults."""
    if not path:
        return CitekitConfig()
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return CitekitConfig.from_dict(data)
