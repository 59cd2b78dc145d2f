"""Bibliographic metadata extraction from arbitrary HTML pages.

Seven independent passes each read one metadata convention and return a
partial field map:

1. Open Graph (``og:*``)
2. Twitter Card (``twitter:*``)
3. Dublin Core (``DC.*`` / ``dcterms.*``)
4. Highwire Press (``citation_*``), used by most academic publishers
5. Plain HTML (``<title>``, meta description/keywords/author, canonical link)
6. JSON-LD (schema.org Article/ScholarlyArticle/NewsArticle, Book, WebPage/WebSite)
7. Microdata (``itemtype`` naming schema.org Article or Book)

:func:`merge_metadata` combines them: for each field the first pass that
produced a non-empty value wins. The DOI scan over the raw markup only fills
``doi`` when no pass found one.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from bs4 import BeautifulSoup, Tag

from citekit.utils import doi_normalize, isbn_clean, split_author_string

logger = logging.getLogger(__name__)

Metadata = dict[str, Any]

DOI_PAGE_PATTERNS = (
    re.compile(r"(?:doi:|DOI:)\s*(10\.\d{4,}/[^\s<>\"]+)"),
    re.compile(r"https?://(?:dx\.)?doi\.org/(10\.\d{4,}/[^\s<>\"]+)", re.IGNORECASE),
    re.compile(r"\"doi\"\s*:\s*\"(10\.\d{4,}/[^\"]+)\"", re.IGNORECASE),
)

OPEN_GRAPH_FIELDS = {
    "og:title": "title",
    "og:description": "description",
    "og:site_name": "site_name",
    "og:type": "og_type",
    "og:url": "canonical_url",
    "og:image": "image",
    "article:published_time": "date",
}

TWITTER_FIELDS = {
    "twitter:title": "title",
    "twitter:description": "description",
    "twitter:site": "twitter_site",
    "twitter:creator": "twitter_creator",
}

DUBLIN_CORE_FIELDS = {
    "title": "title",
    "date": "date",
    "issued": "date",
    "created": "date",
    "publisher": "publisher",
    "description": "description",
    "abstract": "description",
    "language": "language",
}

HIGHWIRE_FIELDS = {
    "citation_title": "title",
    "citation_publication_date": "date",
    "citation_date": "date",
    "citation_online_date": "date",
    "citation_journal_title": "journal",
    "citation_volume": "volume",
    "citation_issue": "issue",
    "citation_firstpage": "start_page",
    "citation_lastpage": "end_page",
    "citation_doi": "doi",
    "citation_pmid": "pmid",
    "citation_isbn": "isbn",
    "citation_issn": "issn",
    "citation_publisher": "publisher",
    "citation_abstract": "abstract",
    "citation_language": "language",
}

JSONLD_ARTICLE_TYPES = {"Article", "ScholarlyArticle", "NewsArticle"}
JSONLD_BOOK_TYPES = {"Book"}
JSONLD_PAGE_TYPES = {"WebPage", "WebSite"}

MICRODATA_ARTICLE_TYPES = {"Article", "ScholarlyArticle", "NewsArticle"}


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == ()


def _set_first(data: Metadata, key: str, value: Any) -> None:
    """Within a pass the first value seen for a field wins too."""
    if isinstance(value, str):
        value = re.sub(r"\s+", " ", value).strip()
    if not is_empty(value) and is_empty(data.get(key)):
        data[key] = value


def _meta_tags(soup: BeautifulSoup) -> Iterator[tuple[str, str]]:
    """Yield ``(lowercased name or property, content)`` for every meta tag."""
    for tag in soup.find_all("meta"):
        key = (tag.get("property") or tag.get("name") or "").strip().lower()
        content = (tag.get("content") or "").strip()
        if key and content:
            yield key, content


def _clean_doi(value: str | None) -> str | None:
    doi = doi_normalize(value)
    if not doi or not doi.startswith("10."):
        return None
    return doi.rstrip(".,;)")


# ------------- Extraction passes -------------


def extract_open_graph(soup: BeautifulSoup) -> Metadata:
    data: Metadata = {}
    for key, content in _meta_tags(soup):
        if key in OPEN_GRAPH_FIELDS:
            _set_first(data, OPEN_GRAPH_FIELDS[key], content)
    return data


def extract_twitter_card(soup: BeautifulSoup) -> Metadata:
    data: Metadata = {}
    for key, content in _meta_tags(soup):
        if key in TWITTER_FIELDS:
            _set_first(data, TWITTER_FIELDS[key], content)
    return data


def extract_dublin_core(soup: BeautifulSoup) -> Metadata:
    """Dublin Core ``DC.*`` and ``DCTERMS.*`` meta tags (names are case-insensitive)."""
    data: Metadata = {}
    authors: list[str] = []
    subjects: list[str] = []
    for key, content in _meta_tags(soup):
        prefix, _, element = key.partition(".")
        if prefix not in ("dc", "dcterms") or not element:
            continue
        if element in ("creator", "author"):
            authors.append(content)
        elif element == "subject":
            subjects.append(content)
        elif element == "identifier":
            doi = _clean_doi(content) if content.lower().startswith(("doi:", "10.", "https://doi.org/")) else None
            _set_first(data, "doi", doi)
        elif element in DUBLIN_CORE_FIELDS:
            _set_first(data, DUBLIN_CORE_FIELDS[element], content)
    _set_first(data, "authors", authors)
    _set_first(data, "keywords", ", ".join(subjects))
    return data


def extract_highwire(soup: BeautifulSoup) -> Metadata:
    """Highwire Press ``citation_*`` tags; one ``citation_author`` tag per author."""
    data: Metadata = {}
    authors: list[str] = []
    keywords: list[str] = []
    for key, content in _meta_tags(soup):
        if key == "citation_author":
            authors.append(content)
        elif key == "citation_keywords":
            keywords.append(content)
        elif key == "citation_doi":
            _set_first(data, "doi", _clean_doi(content))
        elif key == "citation_isbn":
            _set_first(data, "isbn", isbn_clean(content))
        elif key in HIGHWIRE_FIELDS:
            _set_first(data, HIGHWIRE_FIELDS[key], content)
    _set_first(data, "authors", authors)
    _set_first(data, "keywords", ", ".join(keywords))
    return data


def extract_plain_html(soup: BeautifulSoup) -> Metadata:
    data: Metadata = {}
    if soup.title and soup.title.string:
        _set_first(data, "title", soup.title.string)
    for key, content in _meta_tags(soup):
        if key == "description":
            _set_first(data, "description", content)
        elif key == "keywords":
            _set_first(data, "keywords", content)
        elif key == "author":
            _set_first(data, "authors", split_author_string(content))
    link = soup.find("link", rel="canonical")
    if isinstance(link, Tag) and link.get("href"):
        _set_first(data, "canonical_url", link["href"])
    return data


def _jsonld_items(payload: Any) -> Iterator[dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            yield from _jsonld_items(item)
    elif isinstance(payload, dict):
        if "@graph" in payload:
            yield from _jsonld_items(payload["@graph"])
        yield payload


def _jsonld_types(item: dict[str, Any]) -> set[str]:
    types = item.get("@type") or []
    if isinstance(types, str):
        types = [types]
    return {t.rsplit("/", 1)[-1] for t in types if isinstance(t, str)}


def _jsonld_names(value: Any) -> list[str]:
    """Authors as a string, a ``{name: ...}`` object, or a list of either."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        return [value["name"]] if isinstance(value.get("name"), str) else []
    if isinstance(value, list):
        names: list[str] = []
        for v in value:
            names.extend(_jsonld_names(v))
        return names
    return []


def _jsonld_name(value: Any) -> str | None:
    names = _jsonld_names(value)
    return names[0] if names else None


def extract_json_ld(soup: BeautifulSoup) -> Metadata:
    data: Metadata = {}
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug("Skipping malformed JSON-LD block: %s", e)
            continue
        for item in _jsonld_items(payload):
            types = _jsonld_types(item)
            if types & JSONLD_ARTICLE_TYPES:
                _set_first(data, "title", item.get("headline") or item.get("name"))
                _set_first(data, "description", item.get("description"))
                _set_first(data, "date", item.get("datePublished") or item.get("dateCreated"))
                _set_first(data, "authors", _jsonld_names(item.get("author")))
                _set_first(data, "publisher", _jsonld_name(item.get("publisher")))
            elif types & JSONLD_BOOK_TYPES:
                _set_first(data, "title", item.get("name"))
                _set_first(data, "description", item.get("description"))
                _set_first(data, "date", item.get("datePublished"))
                _set_first(data, "isbn", isbn_clean(str(item.get("isbn") or "")))
                _set_first(data, "authors", _jsonld_names(item.get("author")))
                _set_first(data, "publisher", _jsonld_name(item.get("publisher")))
            elif types & JSONLD_PAGE_TYPES:
                _set_first(data, "title", item.get("name"))
                _set_first(data, "description", item.get("description"))
    return data


def _owning_scope(el: Tag) -> Tag | None:
    for parent in el.parents:
        if isinstance(parent, Tag) and parent.has_attr("itemscope"):
            return parent
    return None


def _itemprops(scope: Tag, name: str) -> list[Tag]:
    """Properties named ``name`` that belong directly to ``scope`` (not to a nested item)."""
    found = []
    for el in scope.find_all(attrs={"itemprop": True}):
        if name in str(el["itemprop"]).split() and _owning_scope(el) is scope:
            found.append(el)
    return found


def _itemprop_value(el: Tag) -> str:
    if el.has_attr("itemscope"):
        nested = _itemprops(el, "name")
        if nested:
            return _itemprop_value(nested[0])
    value = el.get("content") or el.get("datetime")
    if value:
        return str(value).strip()
    return el.get_text(" ", strip=True)


def extract_microdata(soup: BeautifulSoup) -> Metadata:
    data: Metadata = {}
    for scope in soup.find_all(attrs={"itemtype": True}):
        itemtype = str(scope["itemtype"])
        if "schema.org" not in itemtype:
            continue
        kind = itemtype.rstrip("/").rsplit("/", 1)[-1]
        if kind in MICRODATA_ARTICLE_TYPES:
            for prop in ("headline", "name"):
                els = _itemprops(scope, prop)
                if els:
                    _set_first(data, "title", _itemprop_value(els[0]))
                    break
        elif kind == "Book":
            els = _itemprops(scope, "name")
            if els:
                _set_first(data, "title", _itemprop_value(els[0]))
            isbns = _itemprops(scope, "isbn")
            if isbns:
                _set_first(data, "isbn", isbn_clean(_itemprop_value(isbns[0])))
        else:
            continue
        _set_first(data, "authors", [v for v in (_itemprop_value(a) for a in _itemprops(scope, "author")) if v])
        dates = _itemprops(scope, "datePublished")
        if dates:
            _set_first(data, "date", _itemprop_value(dates[0]))
    return data


EXTRACTION_PASSES: tuple[Callable[[BeautifulSoup], Metadata], ...] = (
    extract_open_graph,
    extract_twitter_card,
    extract_dublin_core,
    extract_highwire,
    extract_plain_html,
    extract_json_ld,
    extract_microdata,
)


# ------------- Merge -------------


def merge_metadata(partials: Iterable[Metadata]) -> Metadata:
    """Ordered merge: each field keeps the first non-empty value across the passes."""
    merged: Metadata = {}
    for partial in partials:
        for key, value in partial.items():
            if not is_empty(value) and is_empty(merged.get(key)):
                merged[key] = value
    return merged


def find_doi_in_page(markup: str) -> str | None:
    """Scan raw markup for a DOI in ``doi:`` text, doi.org links or inline JSON."""
    for pattern in DOI_PAGE_PATTERNS:
        m = pattern.search(markup)
        if m:
            doi = _clean_doi(m.group(1))
            if doi:
                return doi
    return None


def extract_metadata(markup: str) -> Metadata:
    """Run every pass over ``markup`` and merge the results.

    Returns an empty dict when the page carries no recognisable metadata.
    """
    soup = BeautifulSoup(markup, "html.parser")
    merged = merge_metadata(extract(soup) for extract in EXTRACTION_PASSES)
    if is_empty(merged.get("doi")):
        doi = find_doi_in_page(markup)
        if doi:
            merged["doi"] = doi
    return merged
