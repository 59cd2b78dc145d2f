"""Tests for the PubMed fetcher."""

from __future__ import annotations

import xml.etree.ElementTree as ET

import pytest

from citekit import ErrorKind, HttpResponse, Name, NetworkError, PubMedFetcher
from citekit.fetchers.pubmed import BATCH_SIZE, EFETCH_URL, ESEARCH_URL, ESUMMARY_URL, parse_efetch_article, pubmed_author


@pytest.fixture
def fetcher(make_client, fake_sleep, logger):
    return PubMedFetcher(make_client("pubmed"), sleep=fake_sleep, logger=logger)


def _xml_response(text: str) -> HttpResponse:
    return HttpResponse(200, text, url=EFETCH_URL, headers={"content-type": "text/xml"})


def _route(responses):
    """side_effect that answers by endpoint URL."""

    def _get(url, params=None, headers=None, timeout=None):
        answer = responses[url]
        if isinstance(answer, Exception):
            raise answer
        return answer

    return _get


class TestPubmedAuthor:
    """Tests for esummary author parsing."""

    def test_initials_suffix(self):
        assert pubmed_author("Smith JA") == Name(family="Smith", given="J. A.")

    def test_multiword_family(self):
        assert pubmed_author("van der Berg H") == Name(family="van der Berg", given="H.")

    def test_collective_name(self):
        assert pubmed_author("COVID-19 Genomics Consortium") == Name(literal="COVID-19 Genomics Consortium")

    def test_empty(self):
        assert pubmed_author("") is None


class TestParseEfetch:
    """Tests for efetch XML enrichment."""

    def test_extracts_details(self, pubmed_efetch_xml):
        details = parse_efetch_article(ET.fromstring(pubmed_efetch_xml))
        assert details["abstract"] == "Sensitive probing of temperature. Sub-kelvin resolution achieved."
        assert details["keywords"] == "quantum sensing, thermometry"
        assert details["doi"] == "10.1038/nature12373"
        assert details["mesh_terms"] == ["Thermometry", "Nanodiamonds"]

    def test_empty_set(self):
        assert parse_efetch_article(ET.fromstring("<PubmedArticleSet/>")) == {}


class TestPubMedFetcher:
    """Tests for PubMedFetcher."""

    def test_validate(self, fetcher):
        assert fetcher.validate("23903748")
        assert fetcher.validate("PMID:23903748")
        assert not fetcher.validate("abc")

    def test_fetch_merges_summary_and_efetch(
        self, fetcher, mock_http, json_response, pubmed_summary, pubmed_efetch_xml
    ):
        mock_http.get.side_effect = _route(
            {ESUMMARY_URL: json_response(pubmed_summary), EFETCH_URL: _xml_response(pubmed_efetch_xml)}
        )
        result = fetcher.fetch("PMID: 23903748")
        assert result.ok
        ref = result.value
        assert ref.type == "article-journal"
        assert ref.title == "Nanometre-scale thermometry in a living cell."
        assert ref.author == (Name("Kucsko", "G."), Name("Maurer", "P. C."))
        assert ref.issued == (2013, 8, 1)
        assert ref.container_title == "Nature"
        assert ref.page == "54-8"
        assert ref.DOI == "10.1038/nature12373"
        assert ref.URL == "https://doi.org/10.1038/nature12373"
        assert ref.PMID == "23903748"
        assert ref.abstract.startswith("Sensitive probing")
        assert ref.keyword == "quantum sensing, thermometry"
        assert ref.language == "eng"
        assert ref.source_data["pmcid"] == "PMC4221854"
        assert ref.source_data["mesh_terms"] == ["Thermometry", "Nanodiamonds"]
        assert mock_http.get.call_args_list[0].kwargs["params"]["db"] == "pubmed"

    def test_efetch_failure_still_returns_summary(self, fetcher, mock_http, json_response, pubmed_summary):
        mock_http.get.side_effect = _route({ESUMMARY_URL: json_response(pubmed_summary), EFETCH_URL: NetworkError("x")})
        result = fetcher.fetch("23903748")
        assert result.ok
        assert result.value.abstract is None

    def test_missing_pmid_is_not_found(self, fetcher, mock_http, json_response):
        mock_http.get.return_value = json_response({"result": {"uids": []}})
        assert fetcher.fetch("12345678").kind is ErrorKind.NOT_FOUND

    def test_summary_error_entry_is_not_found(self, fetcher, mock_http, json_response):
        mock_http.get.return_value = json_response({"result": {"12345678": {"uid": "12345678", "error": "cannot get"}}})
        assert fetcher.fetch("12345678").kind is ErrorKind.NOT_FOUND

    def test_invalid_pmid(self, fetcher, mock_http):
        assert fetcher.fetch("12").kind is ErrorKind.INVALID_IDENTIFIER
        mock_http.get.assert_not_called()

    def test_url_without_doi_points_to_pubmed(self, fetcher):
        ref = fetcher.normalize({"uid": "12345678", "title": "T", "pubdate": "2020"})
        assert ref.URL == "https://pubmed.ncbi.nlm.nih.gov/12345678/"
        assert ref.issued == (2020,)

    def test_summary_doi_beats_efetch_doi(self, fetcher):
        ref = fetcher.normalize(
            {
                "uid": "12345678",
                "title": "T",
                "doi": "10.1/efetch",
                "articleids": [{"idtype": "doi", "value": "10.1/summary"}],
            }
        )
        assert ref.DOI == "10.1/summary"

    def test_efetch_doi_fills_missing_summary_doi(self, fetcher):
        ref = fetcher.normalize({"uid": "12345678", "title": "T", "doi": "10.1/EFETCH"})
        assert ref.DOI == "10.1/efetch"

    def test_api_key_is_sent(self, make_client, mock_http, json_response, pubmed_summary, fake_sleep):
        fetcher = PubMedFetcher(make_client("pubmed"), sleep=fake_sleep, api_key="secret")
        mock_http.get.side_effect = _route(
            {ESUMMARY_URL: json_response(pubmed_summary), EFETCH_URL: _xml_response("<PubmedArticleSet/>")}
        )
        fetcher.fetch("23903748")
        assert all(c.kwargs["params"]["api_key"] == "secret" for c in mock_http.get.call_args_list)

    def test_search(self, fetcher, mock_http, json_response, pubmed_summary):
        mock_http.get.side_effect = _route(
            {
                ESEARCH_URL: json_response({"esearchresult": {"count": "1", "idlist": ["23903748"]}}),
                ESUMMARY_URL: json_response(pubmed_summary),
            }
        )
        result = fetcher.search("thermometry", limit=5)
        assert result.ok
        assert result.value.total_results == 1
        assert result.value.items[0].reference.PMID == "23903748"

    def test_search_no_hits_skips_summary(self, fetcher, mock_http, json_response):
        mock_http.get.return_value = json_response({"esearchresult": {"count": "0", "idlist": []}})
        result = fetcher.search("nothing")
        assert result.value.items == []
        assert mock_http.get.call_count == 1

    def test_bulk_batches_of_twenty(self, fetcher, mock_http, json_response, sleeps):
        pmids = [str(10000000 + i) for i in range(BATCH_SIZE + 5)]

        def _get(url, params=None, headers=None, timeout=None):
            ids = params["id"].split(",")
            return json_response({"result": {pmid: {"uid": pmid, "title": f"Paper {pmid}"} for pmid in ids}})

        mock_http.get.side_effect = _get
        result = fetcher.bulk_fetch(pmids + ["bad"])
        assert mock_http.get.call_count == 2
        assert len(result.successful) == BATCH_SIZE + 5
        assert [f.identifier for f in result.failed] == ["bad"]
        assert sleeps == [0.2]

    def test_bulk_batch_failure_fails_every_id(self, fetcher, mock_http):
        mock_http.get.side_effect = NetworkError("down")
        result = fetcher.bulk_fetch(["12345678", "23456789"])
        assert result.successful == []
        assert all(f.error.kind is ErrorKind.NETWORK_ERROR for f in result.failed)
        assert len(result.failed) == 2

    def test_bulk_missing_ids_not_found(self, fetcher, mock_http, json_response):
        mock_http.get.return_value = json_response({"result": {"12345678": {"uid": "12345678", "title": "A"}}})
        result = fetcher.bulk_fetch(["12345678", "23456789"])
        assert len(result.successful) == 1
        assert result.failed[0].identifier == "23456789"
        assert result.failed[0].error.kind is ErrorKind.NOT_FOUND
