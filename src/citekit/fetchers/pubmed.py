"""PubMed metadata from the NCBI E-utilities (esummary, efetch, esearch)."""

from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable
from typing import Any

from citekit.errors import (
    BulkFailure,
    BulkResult,
    FetchError,
    FetchResult,
    InvalidIdentifier,
    NotFound,
    ParseError,
    SearchHit,
    SearchResult,
)
from citekit.fetchers.base import Fetcher, SourceClient
from citekit.models import Name, Reference
from citekit.utils import (
    EUTILS_API,
    PUBMED_URL,
    clean_str,
    doi_normalize,
    doi_url,
    initials,
    is_pmid,
    parse_pubmed_date,
    pmid_normalize,
    strip_tags,
)

BATCH_SIZE = 20

ESUMMARY_URL = f"{EUTILS_API}/esummary.fcgi"
EFETCH_URL = f"{EUTILS_API}/efetch.fcgi"
ESEARCH_URL = f"{EUTILS_API}/esearch.fcgi"


def pubmed_author(name: str) -> Name | None:
    """Parse an esummary author such as ``"Smith JA"`` into a Name.

    The trailing token is treated as initials when it is short and upper-case.
    """
    name = (name or "").strip()
    if not name:
        return None
    toks = name.split()
    if len(toks) > 1 and re.fullmatch(r"[A-Z]{1,3}", toks[-1]):
        return Name(family=" ".join(toks[:-1]), given=initials(" ".join(toks[-1])))
    if len(toks) == 1:
        return Name(family=toks[0])
    return Name(literal=name)


def parse_efetch_article(root: ET.Element) -> dict[str, Any]:
    """Pull abstract, keywords and DOI out of an efetch PubmedArticleSet."""
    details: dict[str, Any] = {}
    article = root.find(".//PubmedArticle")
    if article is None:
        return details
    abstract = " ".join(
        "".join(node.itertext()).strip() for node in article.findall("./MedlineCitation/Article/Abstract/AbstractText")
    ).strip()
    if abstract:
        details["abstract"] = abstract
    keywords = [
        "".join(k.itertext()).strip() for k in article.findall("./MedlineCitation/KeywordList/Keyword")
    ]
    keywords = [k for k in keywords if k]
    if keywords:
        details["keywords"] = ", ".join(keywords)
    for aid in article.findall("./PubmedData/ArticleIdList/ArticleId"):
        if aid.get("IdType") == "doi" and (aid.text or "").strip():
            details["doi"] = aid.text.strip()
            break
    mesh = [
        (d.text or "").strip()
        for d in article.findall("./MedlineCitation/MeshHeadingList/MeshHeading/DescriptorName")
        if (d.text or "").strip()
    ]
    if mesh:
        details["mesh_terms"] = mesh
    return details


def _article_id(summary: dict[str, Any], id_type: str) -> str | None:
    for aid in summary.get("articleids") or []:
        if aid.get("idtype") == id_type and aid.get("value"):
            return str(aid["value"])
    return None


def first_lang(value: Any) -> str | None:
    """esummary reports languages as a list; keep the first one."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class PubMedFetcher(Fetcher):
    """Resolve PMIDs through NCBI E-utilities."""

    name = "pubmed"

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
        params = {"db": "pubmed", **params}
        if self.api_key:
            params["api_key"] = self.api_key
        return params

    def validate(self, identifier: str) -> bool:
        return is_pmid(identifier)

    def normalize_id(self, identifier: str) -> str | None:
        return pmid_normalize(identifier)

    def _summaries(self, pmids: list[str]) -> dict[str, Any]:
        data = self.client.get_json(ESUMMARY_URL, params=self._params(id=",".join(pmids), retmode="json"))
        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise ParseError("Invalid response from PubMed esummary")
        return result

    def _details(self, pmid: str) -> dict[str, Any]:
        """Best-effort efetch enrichment; failures only get logged."""
        try:
            root = self.client.get_xml(EFETCH_URL, params=self._params(id=pmid, retmode="xml"))
        except FetchError as e:
            self.logger.warning("PubMed efetch failed for %s, using summary only: %s", pmid, e)
            return {}
        return parse_efetch_article(root)

    def fetch(self, identifier: str) -> FetchResult[Reference]:
        pmid = self.normalize_id(identifier)
        if pmid is None:
            return FetchResult.failure(InvalidIdentifier(f"Invalid PMID format: {identifier}"))
        try:
            result = self._summaries([pmid])
            summary = result.get(pmid)
            if not isinstance(summary, dict) or summary.get("error"):
                raise NotFound(f"PMID not found: {pmid}")
        except FetchError as e:
            self.logger.debug("PubMed lookup failed for %s: %s", pmid, e)
            return FetchResult.failure(e)
        details = self._details(pmid)
        # summary fields win; efetch only fills gaps
        merged = {**details, **{k: v for k, v in summary.items() if v not in (None, "", [])}}
        return FetchResult.success(self.normalize(merged))

    def normalize(self, raw: Any) -> Reference:
        pmid = str(raw.get("uid") or raw.get("pmid") or "")
        authors = tuple(
            n for n in (pubmed_author(a.get("name", "")) for a in raw.get("authors") or [] if isinstance(a, dict)) if n
        )
        # the summary articleids DOI wins over the one efetch found
        doi = doi_normalize(_article_id(raw, "doi") or raw.get("doi"))
        return Reference(
            type="article-journal",
            title=strip_tags(raw.get("title")).rstrip() or "",
            author=authors,
            issued=parse_pubmed_date(raw.get("pubdate")),
            container_title=clean_str(raw.get("fulljournalname") or raw.get("source")),
            volume=clean_str(raw.get("volume")),
            issue=clean_str(raw.get("issue")),
            page=clean_str(raw.get("pages")),
            DOI=doi,
            ISSN=clean_str(raw.get("issn") or raw.get("essn")),
            PMID=pmid or None,
            URL=doi_url(doi) if doi else f"{PUBMED_URL}/{pmid}/",
            abstract=clean_str(raw.get("abstract")),
            keyword=clean_str(raw.get("keywords")),
            language=clean_str(first_lang(raw.get("lang"))),
            source="pubmed",
            source_data={
                "pmid": pmid,
                "pmcid": raw.get("pmcid") or _article_id(raw, "pmc") or "",
                "publication_types": raw.get("pubtype") or [],
                "mesh_terms": raw.get("mesh_terms") or [],
                "language": raw.get("lang") or ["eng"],
                "indexed_date": raw.get("entrezdate", ""),
                "sort_date": raw.get("sortdate", ""),
            },
        )

    def search(self, query: str, limit: int = 10, offset: int = 0) -> FetchResult[SearchResult]:
        """Search PubMed and return normalized summaries for the matching PMIDs."""
        retmax = min(limit, 100)
        params = self._params(term=query, retmax=retmax, retstart=offset, retmode="json", sort="relevance")
        try:
            data = self.client.get_json(ESEARCH_URL, params=params)
            esearch = data.get("esearchresult") if isinstance(data, dict) else None
            if not isinstance(esearch, dict):
                raise ParseError("Invalid response from PubMed esearch")
            ids = [str(i) for i in esearch.get("idlist") or []]
            summaries = self._summaries(ids) if ids else {}
        except FetchError as e:
            return FetchResult.failure(e)
        hits = [
            SearchHit(reference=self.normalize(summaries[pmid]))
            for pmid in ids
            if isinstance(summaries.get(pmid), dict)
        ]
        return FetchResult.success(
            SearchResult(items=hits, total_results=int(esearch.get("count", 0)), items_per_page=retmax, query=query)
        )

    def bulk_fetch(self, identifiers: Iterable[str]) -> BulkResult:
        """Fetch summaries in comma-joined batches of 20, pausing between batches.

        Bulk results come from esummary alone; efetch enrichment is skipped.
        """
        result = BulkResult()
        valid: list[tuple[str, str]] = []
        for identifier in identifiers:
            pmid = self.normalize_id(identifier)
            if pmid is None:
                result.failed.append(BulkFailure(identifier, InvalidIdentifier(f"Invalid PMID format: {identifier}")))
            else:
                valid.append((identifier, pmid))

        for start in range(0, len(valid), BATCH_SIZE):
            if start:
                self.sleep(self.settings.bulk_delay)
            batch = valid[start : start + BATCH_SIZE]
            try:
                summaries = self._summaries([pmid for _, pmid in batch])
            except FetchError as e:
                self.logger.debug("PubMed batch failed: %s", e)
                result.failed.extend(BulkFailure(identifier, e) for identifier, _ in batch)
                continue
            for identifier, pmid in batch:
                summary = summaries.get(pmid)
                if isinstance(summary, dict) and not summary.get("error"):
                    result.successful.append(self.normalize(summary))
                else:
                    result.failed.append(BulkFailure(identifier, NotFound(f"PMID not found: {pmid}")))
        return result

    def probe_url(self) -> str:
        return f"{EUTILS_API}/einfo.fcgi?db=pubmed&retmode=json"
