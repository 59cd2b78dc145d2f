"""Shared fixtures for citekit tests."""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any
from unittest.mock import MagicMock

import pytest

from citekit import HttpClient, HttpResponse, MemoryCache, RateLimiter, SourceClient, SourceSettings


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_040.0) -> None:
        # start is 0s into a minute bucket (1_700_000_040 / 60 is a whole number)
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def rate_limiter(cache, clock):
    return RateLimiter(cache, clock=clock)


@pytest.fixture
def logger():
    return logging.getLogger("citekit.tests")


@pytest.fixture
def mock_http():
    """An HttpClient double; set ``get.return_value`` / ``side_effect`` per test."""
    return MagicMock(spec=HttpClient)


def _json_response(payload: Any, url: str = "https://example.test/", status: int = 200) -> HttpResponse:
    return HttpResponse(
        status_code=status,
        text=json.dumps(payload),
        url=url,
        headers={"content-type": "application/json"},
    )


def _html_response(markup: str, url: str = "https://example.test/") -> HttpResponse:
    return HttpResponse(status_code=200, text=markup, url=url, headers={"Content-Type": "text/html; charset=utf-8"})


@pytest.fixture
def json_response():
    """Builds a 200 JSON HttpResponse."""
    return _json_response


@pytest.fixture
def html_response():
    """Builds a 200 text/html HttpResponse."""
    return _html_response


@pytest.fixture
def make_client(mock_http, rate_limiter, cache, logger):
    """Factory fixture for SourceClients wired to the mock HTTP client."""

    def _make_client(source: str, **overrides: Any) -> SourceClient:
        settings = SourceSettings.default(source)
        for key, value in overrides.items():
            setattr(settings, key, value)
        return SourceClient(source, mock_http, rate_limiter, cache, settings=settings, logger=logger)

    return _make_client


@pytest.fixture
def sleeps():
    """Records every pause requested by bulk fetches."""
    calls: list[float] = []
    return calls


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def today():
    return lambda: date(2024, 3, 15)


# ------------- Sample payloads -------------


@pytest.fixture
def crossref_message() -> dict[str, Any]:
    """A CrossRef works message for a journal article."""
    return {
        "DOI": "10.1038/nature12373",
        "type": "journal-article",
        "title": ["Nanometre-scale thermometry in a living cell"],
        "author": [
            {"given": "G.", "family": "Kucsko"},
            {"given": "P. C.", "family": "Maurer"},
            {"given": "N. Y.", "family": "Yao"},
        ],
        "container-title": ["Nature"],
        "volume": "500",
        "issue": "7460",
        "page": "54-58",
        "publisher": "Springer Science and Business Media LLC",
        "ISSN": ["0028-0836", "1476-4687"],
        "published-print": {"date-parts": [[2013, 8]]},
        "published-online": {"date-parts": [[2013, 7, 31]]},
        "created": {"date-parts": [[2013, 7, 31]]},
        "abstract": "<jats:p>Sensitive probing of temperature variations.</jats:p>",
        "subject": ["Multidisciplinary"],
        "license": [{"URL": "https://www.springer.com/tdm"}],
        "is-referenced-by-count": 1234,
        "references-count": 30,
        "prefix": "10.1038",
        "member": "297",
        "score": 1.0,
    }


@pytest.fixture
def pubmed_summary() -> dict[str, Any]:
    """An esummary JSON result for one PMID."""
    return {
        "header": {"type": "esummary"},
        "result": {
            "uids": ["23903748"],
            "23903748": {
                "uid": "23903748",
                "pubdate": "2013 Aug 1",
                "source": "Nature",
                "fulljournalname": "Nature",
                "title": "Nanometre-scale thermometry in a living cell.",
                "authors": [
                    {"name": "Kucsko G", "authtype": "Author"},
                    {"name": "Maurer PC", "authtype": "Author"},
                ],
                "volume": "500",
                "issue": "7460",
                "pages": "54-8",
                "lang": ["eng"],
                "issn": "0028-0836",
                "essn": "1476-4687",
                "pubtype": ["Journal Article"],
                "articleids": [
                    {"idtype": "pubmed", "value": "23903748"},
                    {"idtype": "doi", "value": "10.1038/nature12373"},
                    {"idtype": "pmc", "value": "PMC4221854"},
                ],
                "sortdate": "2013/08/01 00:00",
            },
        },
    }


@pytest.fixture
def pubmed_efetch_xml() -> str:
    return """<?xml version="1.0" ?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID>23903748</PMID>
      <Article>
        <Abstract>
          <AbstractText Label="BACKGROUND">Sensitive probing of temperature.</AbstractText>
          <AbstractText Label="RESULTS">Sub-kelvin <i>resolution</i> achieved.</AbstractText>
        </Abstract>
      </Article>
      <MeshHeadingList>
        <MeshHeading><DescriptorName>Thermometry</DescriptorName></MeshHeading>
        <MeshHeading><DescriptorName>Nanodiamonds</DescriptorName></MeshHeading>
      </MeshHeadingList>
      <KeywordList>
        <Keyword>quantum sensing</Keyword>
        <Keyword>thermometry</Keyword>
      </KeywordList>
    </MedlineCitation>
    <PubmedData>
      <ArticleIdList>
        <ArticleId IdType="pubmed">23903748</ArticleId>
        <ArticleId IdType="doi">10.1038/nature12373</ArticleId>
      </ArticleIdList>
    </PubmedData>
  </PubmedArticle>
</PubmedArticleSet>
"""


@pytest.fixture
def google_volume() -> dict[str, Any]:
    """A Google Books volume resource."""
    return {
        "id": "i-bUBQAAQBAJ",
        "volumeInfo": {
            "title": "Introduction to Algorithms",
            "subtitle": "Third Edition",
            "authors": ["Thomas H. Cormen", "Charles E. Leiserson"],
            "publisher": "MIT Press",
            "publishedDate": "2009-07-31",
            "description": "A <b>comprehensive</b> introduction.",
            "industryIdentifiers": [
                {"type": "ISBN_10", "identifier": "0262033844"},
                {"type": "ISBN_13", "identifier": "9780262033848"},
            ],
            "pageCount": 1312,
            "categories": ["Computers"],
            "language": "en",
            "infoLink": "https://books.google.com/books?id=i-bUBQAAQBAJ",
            "canonicalVolumeLink": "https://books.google.com/books/about/?id=i-bUBQAAQBAJ",
            "printType": "BOOK",
        },
    }


@pytest.fixture
def article_html() -> str:
    """A publisher landing page with Open Graph and Highwire tags."""
    return """<!DOCTYPE html>
<html lang="en">
<head>
  <title>Thermometry | Nature</title>
  <meta property="og:title" content="Nanometre-scale thermometry in a living cell">
  <meta property="og:site_name" content="Nature">
  <meta property="og:type" content="article">
  <meta name="twitter:site" content="@nature">
  <meta name="citation_title" content="Highwire title that loses to Open Graph">
  <meta name="citation_author" content="Kucsko, G.">
  <meta name="citation_author" content="Maurer, P. C.">
  <meta name="citation_journal_title" content="Nature">
  <meta name="citation_volume" content="500">
  <meta name="citation_issue" content="7460">
  <meta name="citation_firstpage" content="54">
  <meta name="citation_lastpage" content="58">
  <meta name="citation_publication_date" content="2013/07/31">
  <meta name="citation_doi" content="10.1038/nature12373">
  <meta name="description" content="Sensitive probing of temperature.">
  <link rel="canonical" href="https://www.nature.com/articles/nature12373">
</head>
<body><p>Body text</p></body>
</html>
"""
