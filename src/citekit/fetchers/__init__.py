"""Source fetchers and the factory that wires them to shared infrastructure."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import date

from citekit.cache import Cache, DiskCache, MemoryCache, RateLimiter
from citekit.config import CitekitConfig
from citekit.fetchers.base import Fetcher, SourceClient, sequential_bulk
from citekit.fetchers.doi import DoiFetcher
from citekit.fetchers.isbn import IsbnFetcher
from citekit.fetchers.pubmed import PubMedFetcher
from citekit.fetchers.url_scraper import UrlScraper
from citekit.http_client import HttpClient
from citekit.utils import (
    extract_doi_from_url,
    extract_pmid_from_url,
    is_doi,
    is_http_url,
    is_isbn_shaped,
    is_pmid,
)

# Order matters: detection tries the sources top to bottom.
SOURCE_NAMES = ("doi", "pubmed", "isbn", "url_scraper")

__all__ = [
    "DoiFetcher",
    "Fetcher",
    "IsbnFetcher",
    "PubMedFetcher",
    "SOURCE_NAMES",
    "SourceClient",
    "UrlScraper",
    "create_fetchers",
    "detect_source",
    "sequential_bulk",
]


def detect_source(identifier: str) -> str | None:
    """Guess which fetcher handles ``identifier``.

    DOIs (including doi.org links) win over PubMed links, then bare PMIDs,
    ISBNs and finally any other http(s) URL.
    """
    text = (identifier or "").strip()
    if not text:
        return None
    url = is_http_url(text)
    if is_doi(text) or extract_doi_from_url(text):
        return "doi"
    if is_pmid(text) or (url and extract_pmid_from_url(text)):
        return "pubmed"
    if not url and is_isbn_shaped(text):
        return "isbn"
    if url:
        return "url_scraper"
    return None


def create_fetchers(
    config: CitekitConfig | None = None,
    cache: Cache | None = None,
    logger: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
    today: Callable[[], date] = date.today,
) -> dict[str, Fetcher]:
    """Build all four fetchers sharing one cache and one rate limiter.

    Args:
        config: Configuration; defaults are used when omitted.
        cache: Cache port; a DiskCache at ``config.cache_path`` or an
            in-memory cache when omitted.
        logger: Logger passed to every component.
        sleep: Pause function used between bulk requests.
        today: Date source for the scraper's ``accessed`` field.

    Returns:
        Mapping of source name to fetcher.
    """
    config = config or CitekitConfig()
    logger = logger or logging.getLogger("citekit")
    if cache is None:
        cache = DiskCache(config.cache_path, logger=logger) if config.cache_path else MemoryCache()
    limiter = RateLimiter(cache, config.rate_limits(), logger=logger)

    api_http = HttpClient(timeout=config.timeout, user_agent=config.polite_user_agent(), logger=logger)
    scrape_http = HttpClient(timeout=config.timeout, user_agent=config.user_agent, verify=False, logger=logger)

    def client(source: str, http: HttpClient) -> SourceClient:
        return SourceClient(source, http, limiter, cache, settings=config.source(source), logger=logger)

    return {
        "doi": DoiFetcher(client("doi", api_http), sleep=sleep, logger=logger, mailto=config.contact_email),
        "pubmed": PubMedFetcher(client("pubmed", api_http), sleep=sleep, logger=logger, api_key=config.ncbi_api_key),
        "isbn": IsbnFetcher(client("isbn", api_http), sleep=sleep, logger=logger, api_key=config.google_books_api_key),
        "url_scraper": UrlScraper(
            client("url_scraper", scrape_http),
            sleep=sleep,
            logger=logger,
            today=today,
            fallback_on_error=config.fallback_on_error,
        ),
    }
