"""Reference extraction from arbitrary web pages.

Scraping is best-effort: when a page cannot be fetched or carries no
recognisable metadata the scraper returns a minimal ``webpage`` record built
from the URL instead of an error.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import date
from typing import Any
from urllib.parse import unquote, urlparse

from citekit.errors import FetchError, FetchResult, HttpStatusError, InvalidIdentifier, ParseError, RateLimited
from citekit.fetchers.base import HTML_CONTENT_TYPES, Fetcher, SourceClient
from citekit.fetchers.html_metadata import Metadata, extract_metadata
from citekit.models import Reference
from citekit.utils import clean_str, extract_authors, extract_date, is_http_url, isbn_clean, pmid_normalize, today_parts

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

OG_TYPE_MAP = {
    "article": "article-journal",
    "book": "book",
    "video": "motion_picture",
}

PAGE_EXTENSIONS = ("html", "htm", "shtml", "php", "asp", "aspx", "jsp", "pdf")

DOMAIN_TYPES = (
    ("arxiv.org", "manuscript"),
    ("pubmed.ncbi.nlm.nih.gov", "article-journal"),
    ("scholar.google", "article-journal"),
    ("researchgate.net", "article-journal"),
    ("academia.edu", "manuscript"),
    ("ssrn.com", "manuscript"),
    ("biorxiv.org", "manuscript"),
    ("psyarxiv.com", "manuscript"),
)


def infer_type(metadata: Metadata, url: str) -> str:
    """Guess the CSL type of a scraped page."""
    if metadata.get("journal") or metadata.get("volume") or metadata.get("issue"):
        return "article-journal"
    if metadata.get("isbn"):
        return "book"
    og_type = (metadata.get("og_type") or "").lower()
    if og_type in OG_TYPE_MAP:
        return OG_TYPE_MAP[og_type]
    host = (urlparse(url).hostname or "").lower()
    for domain, csl_type in DOMAIN_TYPES:
        if domain in host:
            return csl_type
    return "webpage"


def humanize_slug(url: str) -> str:
    """Title from the last path segment: ``/my-great_post`` -> ``My Great Post``."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    if not segments:
        return "Web Page"
    slug = unquote(segments[-1])
    stem, dot, ext = slug.rpartition(".")
    if dot and ext.lower() in PAGE_EXTENSIONS:
        slug = stem
    words = slug.replace("-", " ").replace("_", " ").split()
    return " ".join(w[:1].upper() + w[1:] for w in words) or "Web Page"


def fallback_reference(url: str, today: date) -> Reference:
    """Minimal webpage record derived from the URL alone."""
    host = urlparse(url).hostname or ""
    return Reference(
        type="webpage",
        title=humanize_slug(url),
        URL=url,
        container_title=host or None,
        accessed=today_parts(today),
        source="url_scraper",
        source_data={
            "scraped_date": today.isoformat(),
            "original_url": url,
            "fallback_used": True,
        },
    )


def metadata_to_reference(metadata: Metadata, url: str, today: date) -> Reference:
    """Convert merged page metadata into a Reference."""
    host = urlparse(url).hostname or ""
    start, end = metadata.get("start_page"), metadata.get("end_page")
    page = f"{start}-{end}" if start and end else start or None
    site_name = metadata.get("site_name") or host
    return Reference(
        type=infer_type(metadata, url),
        title=metadata.get("title") or humanize_slug(url),
        author=extract_authors(metadata.get("authors") or []),
        issued=extract_date(metadata.get("date")),
        container_title=clean_str(metadata.get("journal") or site_name),
        volume=clean_str(metadata.get("volume")),
        issue=clean_str(metadata.get("issue")),
        page=clean_str(page),
        publisher=clean_str(metadata.get("publisher")),
        DOI=clean_str(metadata.get("doi")),
        ISBN=isbn_clean(metadata.get("isbn")) or None,
        ISSN=clean_str(metadata.get("issn")),
        PMID=pmid_normalize(metadata.get("pmid")),
        URL=metadata.get("canonical_url") or url,
        abstract=clean_str(metadata.get("abstract") or metadata.get("description")),
        keyword=clean_str(metadata.get("keywords")),
        language=clean_str(metadata.get("language")),
        accessed=today_parts(today),
        source="url_scraper",
        source_data={
            "scraped_date": today.isoformat(),
            "original_url": url,
            "canonical_url": metadata.get("canonical_url", ""),
            "site_name": site_name,
            "og_type": metadata.get("og_type", ""),
            "twitter_site": metadata.get("twitter_site", ""),
            "twitter_creator": metadata.get("twitter_creator", ""),
            "image": metadata.get("image", ""),
        },
    )


class UrlScraper(Fetcher):
    """Scrape citation metadata from web pages."""

    name = "url_scraper"

    def __init__(
        self,
        client: SourceClient,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
        today: Callable[[], date] = date.today,
        fallback_on_error: bool = True,
    ) -> None:
        super().__init__(client, sleep=sleep, logger=logger)
        self.today = today
        self.fallback_on_error = fallback_on_error

    def validate(self, identifier: str) -> bool:
        return is_http_url(identifier)

    def normalize_id(self, identifier: str) -> str | None:
        return identifier.strip() if self.validate(identifier) else None

    def fetch(self, identifier: str) -> FetchResult[Reference]:
        url = self.normalize_id(identifier)
        if url is None:
            return FetchResult.failure(InvalidIdentifier(f"Invalid URL: {identifier}"))
        try:
            markup = self.client.get_text(url, headers=BROWSER_HEADERS, require_html=True)
        except RateLimited as e:
            return FetchResult.failure(e)
        except FetchError as e:
            if not self.fallback_on_error:
                return FetchResult.failure(e)
            self.logger.warning("Scraping %s failed (%s); using fallback metadata", url, e)
            return FetchResult.success(self.generate_fallback(url))
        return FetchResult.success(self.normalize({"url": url, "html": markup}))

    def normalize(self, raw: Any) -> Reference:
        """Normalize ``{"url": ..., "html": ...}`` into a Reference."""
        url = raw["url"]
        metadata = extract_metadata(raw.get("html") or "")
        if not metadata:
            self.logger.debug("No metadata found on %s; using fallback", url)
            return self.generate_fallback(url)
        return metadata_to_reference(metadata, url, self.today())

    def generate_fallback(self, url: str) -> Reference:
        return fallback_reference(url, self.today())

    def test_url(self, url: str) -> FetchResult[bool]:
        """HEAD the URL and check it serves HTML with status 200."""
        if not self.validate(url):
            return FetchResult.failure(InvalidIdentifier(f"Invalid URL: {url}"))
        try:
            resp = self.client.probe(url, method="HEAD", headers=BROWSER_HEADERS)
            if resp.status_code != 200:
                raise HttpStatusError(resp.status_code)
            if not any(t in resp.content_type for t in HTML_CONTENT_TYPES):
                raise ParseError(f"URL does not serve HTML: {resp.content_type or 'unknown'}")
        except FetchError as e:
            return FetchResult.failure(e)
        return FetchResult.success(True)

    def probe_url(self) -> str:
        return "https://example.com/"
