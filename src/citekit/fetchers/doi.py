"""DOI metadata from the CrossRef REST API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

from citekit.errors import FetchError, FetchResult, InvalidIdentifier, ParseError, SearchHit, SearchResult
from citekit.fetchers.base import Fetcher, SourceClient
from citekit.models import CSL_TYPES, Reference
from citekit.utils import (
    CROSSREF_API,
    CROSSREF_MEMBERS_API,
    clean_str,
    doi_normalize,
    doi_url,
    extract_authors,
    extract_date,
    first_item,
    is_doi,
    strip_tags,
)

CSL_JSON = "application/vnd.citationstyles.csl+json"

CROSSREF_TYPE_MAP = {
    "journal-article": "article-journal",
    "book-chapter": "chapter",
    "book": "book",
    "proceedings-article": "paper-conference",
    "dissertation": "thesis",
    "report": "report",
    "dataset": "dataset",
    "book-section": "chapter",
    "monograph": "book",
    "reference-book": "book",
    "book-series": "book",
    "book-set": "book",
    "book-track": "chapter",
    "edited-book": "book",
    "journal": "periodical",
    "journal-issue": "article-journal",
    "journal-volume": "article-journal",
    "proceedings": "book",
    "standard": "standard",
    "posted-content": "manuscript",
}

DATE_PRECEDENCE = ("published-print", "published-online", "created")


def map_crossref_type(crossref_type: str | None) -> str:
    """Map a CrossRef work type onto a CSL item type.

    Types already named like CSL types pass through; anything else is ``article``.
    """
    if not crossref_type:
        return "article"
    if crossref_type in CROSSREF_TYPE_MAP:
        return CROSSREF_TYPE_MAP[crossref_type]
    if crossref_type in CSL_TYPES:
        return crossref_type
    return "article"


def crossref_message_to_reference(msg: dict[str, Any]) -> Reference:
    """Convert a CrossRef works message into a Reference."""
    doi = doi_normalize(msg.get("DOI"))

    issued = None
    for key in DATE_PRECEDENCE:
        parts = (msg.get(key) or {}).get("date-parts")
        if parts and parts[0] and parts[0][0]:
            issued = extract_date(parts[0])
            break

    licenses = msg.get("license") or []
    subjects = msg.get("subject") or []

    return Reference(
        type=map_crossref_type(msg.get("type")),
        title=strip_tags(first_item(msg.get("title")) or ""),
        author=extract_authors(msg.get("author") or []),
        editor=extract_authors(msg.get("editor") or []),
        issued=issued,
        container_title=clean_str(first_item(msg.get("container-title"))),
        volume=clean_str(msg.get("volume")),
        issue=clean_str(msg.get("issue") or (msg.get("journal-issue") or {}).get("issue")),
        page=clean_str(msg.get("page")),
        publisher=clean_str(msg.get("publisher")),
        DOI=doi,
        ISBN=clean_str(first_item(msg.get("ISBN"))),
        ISSN=clean_str(first_item(msg.get("ISSN"))),
        URL=doi_url(doi) if doi else clean_str(msg.get("URL")),
        abstract=strip_tags(msg.get("abstract"), sep=" ") or None,
        keyword=", ".join(subjects) or None,
        language=clean_str(msg.get("language")),
        license=clean_str(licenses[0].get("URL")) if licenses else None,
        source="doi",
        source_data={
            "is_referenced_by_count": msg.get("is-referenced-by-count", 0),
            "references_count": msg.get("references-count", 0),
            "score": msg.get("score", 0),
            "indexed": (msg.get("indexed") or {}).get("date-time", ""),
            "deposited": (msg.get("deposited") or {}).get("date-time", ""),
            "prefix": msg.get("prefix", ""),
            "member": msg.get("member", ""),
        },
    )


def search_snippet(msg: dict[str, Any]) -> str:
    """Short human-readable summary of a CrossRef search item."""
    parts = []
    names = [
        " ".join(p for p in (a.get("given", ""), a.get("family", "")) if p)
        for a in (msg.get("author") or [])
    ]
    if names:
        shown = ", ".join(names[:3])
        parts.append(shown + (" et al." if len(names) > 3 else ""))
    for key in DATE_PRECEDENCE:
        year_parts = (msg.get(key) or {}).get("date-parts")
        if year_parts and year_parts[0] and year_parts[0][0]:
            parts.append(f"({year_parts[0][0]})")
            break
    title = first_item(msg.get("title"))
    if title:
        parts.append(strip_tags(title))
    container = first_item(msg.get("container-title"))
    if container:
        parts.append(f"<em>{container}</em>")
    return " ".join(parts)


class DoiFetcher(Fetcher):
    """Resolve DOIs against CrossRef."""

    name = "doi"

    def __init__(
        self,
        client: SourceClient,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
        mailto: str | None = None,
    ) -> None:
        super().__init__(client, sleep=sleep, logger=logger)
        self.mailto = mailto

    def _headers(self, accept: str) -> dict[str, str]:
        headers = {"Accept": accept}
        if self.mailto:
            headers["User-Agent"] = f"citekit/0.1 (mailto:{self.mailto})"
        return headers

    def validate(self, identifier: str) -> bool:
        return is_doi(identifier)

    def normalize_id(self, identifier: str) -> str | None:
        doi = doi_normalize(identifier)
        if not doi or not doi.startswith("10."):
            return None
        return doi

    def fetch(self, identifier: str) -> FetchResult[Reference]:
        doi = self.normalize_id(identifier)
        if doi is None or not self.validate(doi):
            return FetchResult.failure(InvalidIdentifier(f"Invalid DOI format: {identifier}"))
        url = f"{CROSSREF_API}/{quote(doi, safe='')}"
        try:
            data = self.client.get_json(url, headers=self._headers(CSL_JSON))
            if not isinstance(data, dict) or "message" not in data:
                raise ParseError("Invalid response from CrossRef API")
        except FetchError as e:
            self.logger.debug("CrossRef lookup failed for %s: %s", doi, e)
            return FetchResult.failure(e)
        return FetchResult.success(self.normalize(data["message"]))

    def normalize(self, raw: Any) -> Reference:
        return crossref_message_to_reference(raw)

    def search(self, query: str, limit: int = 10, offset: int = 0) -> FetchResult[SearchResult]:
        """Full-text search over CrossRef works, ordered by relevance."""
        rows = min(limit, 100)
        params = {"query": query, "rows": rows, "offset": offset, "sort": "relevance"}
        try:
            data = self.client.get_json(CROSSREF_API, params=params, headers=self._headers("application/json"))
            message = data.get("message") if isinstance(data, dict) else None
            if not isinstance(message, dict) or "items" not in message:
                raise ParseError("Invalid search response from CrossRef API")
        except FetchError as e:
            return FetchResult.failure(e)
        hits = [
            SearchHit(reference=self.normalize(item), score=item.get("score"), snippet=search_snippet(item))
            for item in message["items"]
        ]
        return FetchResult.success(
            SearchResult(
                items=hits,
                total_results=int(message.get("total-results", 0)),
                items_per_page=int(message.get("items-per-page", rows)),
                query=query,
            )
        )

    def get_member_info(self, member_id: str | int) -> FetchResult[dict[str, Any]]:
        """Look up a CrossRef member (publisher) record."""
        try:
            data = self.client.get_json(f"{CROSSREF_MEMBERS_API}/{member_id}", headers=self._headers("application/json"))
            if not isinstance(data, dict) or "message" not in data:
                raise ParseError("Invalid member response from CrossRef API")
        except FetchError as e:
            return FetchResult.failure(e)
        return FetchResult.success(data["message"])

    def probe_url(self) -> str:
        return f"{CROSSREF_API}?rows=1"
