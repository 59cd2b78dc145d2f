"""Book metadata from the Google Books volumes API."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from typing import Any

from citekit.errors import FetchError, FetchResult, InvalidIdentifier, NotFound, ParseError, SearchHit, SearchResult
from citekit.fetchers.base import Fetcher, SourceClient
from citekit.models import Name, Reference
from citekit.utils import (
    GOOGLE_BOOKS_API,
    clean_str,
    extract_authors,
    extract_date,
    is_isbn_shaped,
    isbn_clean,
    strip_tags,
)

EDITOR_PATTERNS = (
    re.compile(r"edited by ([^.]+)", re.IGNORECASE),
    re.compile(r"editors?:\s*([^.]+)", re.IGNORECASE),
    re.compile(r"\(eds?\.\)\s*([^.]+)", re.IGNORECASE),
)

ADVANCED_FIELDS = {
    "title": "intitle",
    "author": "inauthor",
    "publisher": "inpublisher",
    "subject": "subject",
    "isbn": "isbn",
}


def editors_from_description(description: str | None) -> tuple[Name, ...]:
    """Find editors named in a book description; the first matching pattern wins."""
    if not description:
        return ()
    text = strip_tags(description, sep=" ")
    for pattern in EDITOR_PATTERNS:
        m = pattern.search(text)
        if m:
            return extract_authors(m.group(1).strip())
    return ()


def volume_isbn(info: dict[str, Any]) -> str | None:
    """Return the first ISBN-13 or ISBN-10 industry identifier of a volume."""
    for ident in info.get("industryIdentifiers") or []:
        if ident.get("type") in ("ISBN_13", "ISBN_10") and ident.get("identifier"):
            return isbn_clean(ident["identifier"])
    return None


def google_volume_to_reference(item: dict[str, Any]) -> Reference:
    """Convert a Google Books volume resource into a Reference."""
    info = item.get("volumeInfo") or {}
    title = info.get("title") or ""
    if info.get("subtitle"):
        title = f"{title}: {info['subtitle']}"

    authors = extract_authors(info.get("authors") or [])
    editors: tuple[Name, ...] = ()
    if not authors:
        editors = editors_from_description(info.get("description"))

    series = info.get("seriesInfo") or {}
    collection = None
    if isinstance(series, dict):
        volumes = series.get("volumeSeries") or []
        collection = clean_str(series.get("title") or (volumes[0].get("seriesId") if volumes else None))

    page_count = info.get("pageCount")
    return Reference(
        type="book",
        title=title,
        author=authors,
        editor=editors,
        issued=extract_date(info.get("publishedDate")),
        publisher=clean_str(info.get("publisher")),
        ISBN=volume_isbn(info),
        number_of_pages=str(page_count) if page_count else None,
        language=clean_str(info.get("language")),
        keyword=", ".join(info.get("categories") or []) or None,
        abstract=strip_tags(info.get("description"), sep=" ") or None,
        URL=clean_str(info.get("canonicalVolumeLink") or info.get("infoLink")),
        edition=clean_str(info.get("edition")),
        collection_title=collection,
        source="isbn",
        source_data={
            "id": item.get("id", ""),
            "preview_link": info.get("previewLink", ""),
            "info_link": info.get("infoLink", ""),
            "canonical_link": info.get("canonicalVolumeLink", ""),
            "average_rating": info.get("averageRating"),
            "ratings_count": info.get("ratingsCount"),
            "maturity_rating": info.get("maturityRating", ""),
            "print_type": info.get("printType", ""),
            "content_version": info.get("contentVersion", ""),
            "image_links": info.get("imageLinks") or {},
        },
    )


class IsbnFetcher(Fetcher):
    """Look up books by ISBN in Google Books."""

    name = "isbn"

    def __init__(
        self,
        client: SourceClient,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
        api_key: str | None = None,
    ) -> None:
        super().__init__(client, sleep=sleep, logger=logger)
        self.api_key = api_key

    def _params(self, **params: Any) -> dict[str, Any]:
        if self.api_key:
            params["key"] = self.api_key
        return params

    def validate(self, identifier: str) -> bool:
        return is_isbn_shaped(identifier)

    def normalize_id(self, identifier: str) -> str | None:
        isbn = isbn_clean(identifier)
        return isbn if len(isbn) in (10, 13) else None

    def fetch(self, identifier: str) -> FetchResult[Reference]:
        isbn = self.normalize_id(identifier)
        if isbn is None or not self.validate(isbn):
            return FetchResult.failure(InvalidIdentifier(f"Invalid ISBN format: {identifier}"))
        params = self._params(q=f"isbn:{isbn}", maxResults=1, projection="full")
        try:
            data = self.client.get_json(GOOGLE_BOOKS_API, params=params)
            if not isinstance(data, dict):
                raise ParseError("Invalid response from Google Books API")
            items = data.get("items") or []
            if not items:
                raise NotFound(f"ISBN not found: {isbn}")
        except FetchError as e:
            self.logger.debug("Google Books lookup failed for %s: %s", isbn, e)
            return FetchResult.failure(e)
        return FetchResult.success(self.normalize(items[0]))

    def normalize(self, raw: Any) -> Reference:
        return google_volume_to_reference(raw)

    def search(self, query: str, limit: int = 10, offset: int = 0) -> FetchResult[SearchResult]:
        """Free-text volume search."""
        per_page = min(limit, 40)
        params = self._params(q=query, maxResults=per_page, startIndex=offset, projection="lite", orderBy="relevance")
        try:
            data = self.client.get_json(GOOGLE_BOOKS_API, params=params)
            if not isinstance(data, dict):
                raise ParseError("Invalid search response from Google Books API")
        except FetchError as e:
            return FetchResult.failure(e)
        hits = [SearchHit(reference=self.normalize(item)) for item in data.get("items") or []]
        return FetchResult.success(
            SearchResult(items=hits, total_results=int(data.get("totalItems", 0)), items_per_page=per_page, query=query)
        )

    def advanced_search(self, limit: int = 10, offset: int = 0, **criteria: str) -> FetchResult[SearchResult]:
        """Search with field qualifiers, e.g. ``advanced_search(title="python", author="lutz")``."""
        parts = [f"{ADVANCED_FIELDS[k]}:{v}" for k, v in criteria.items() if k in ADVANCED_FIELDS and v]
        if not parts:
            return FetchResult.failure(InvalidIdentifier("No search criteria given"))
        return self.search("+".join(parts), limit=limit, offset=offset)

    def get_volume(self, volume_id: str) -> FetchResult[Reference]:
        """Fetch one volume by its Google Books id (richer than search results)."""
        try:
            data = self.client.get_json(f"{GOOGLE_BOOKS_API}/{volume_id}", params=self._params())
            if not isinstance(data, dict) or "volumeInfo" not in data:
                raise ParseError("Invalid volume response from Google Books API")
        except FetchError as e:
            return FetchResult.failure(e)
        return FetchResult.success(self.normalize(data))

    def probe_url(self) -> str:
        return f"{GOOGLE_BOOKS_API}?q=isbn:9780262033848&maxResults=1"
