"""citekit - Bibliographic metadata fetching and citation formatting.

This package provides tools for:
- Resolving DOIs, PMIDs and ISBNs against CrossRef, PubMed and Google Books
- Scraping citation metadata from arbitrary web pages
- Normalizing everything into one CSL-style Reference record
- Formatting references and in-text citations (APA, MLA, Chicago)
- Generating document bibliographies that re-render only when citations change

Example usage:
    from citekit import CitationFormatter, CitekitConfig, create_fetchers, detect_source

    fetchers = create_fetchers(CitekitConfig(contact_email="me@example.org"))
    result = fetchers[detect_source("10.1038/nature12373")].fetch("10.1038/nature12373")
    if result.ok:
        print(CitationFormatter().format_reference(result.value, "apa"))
"""

from citekit._version import __version__

# Bibliography
from citekit.bibliography import (
    SORT_ORDERS,
    BibliographyGenerator,
    BibliographyOptions,
    compute_cache_key,
    sort_references,
)

# Cache & rate limiting
from citekit.cache import (
    DEFAULT_LIMITS,
    DEFAULT_TTLS,
    Cache,
    DiskCache,
    MemoryCache,
    RateLimit,
    RateLimiter,
    make_cache_key,
)

# Configuration
from citekit.config import CitekitConfig, SourceSettings, load_config

# Errors and results
from citekit.errors import (
    BulkFailure,
    BulkResult,
    ErrorKind,
    FetchError,
    FetchResult,
    HttpStatusError,
    InvalidIdentifier,
    NetworkError,
    NotFound,
    ParseError,
    PartialFailure,
    RateLimited,
    SearchHit,
    SearchResult,
    SearchUnsupported,
)

# Fetchers
from citekit.fetchers import (
    SOURCE_NAMES,
    DoiFetcher,
    Fetcher,
    IsbnFetcher,
    PubMedFetcher,
    SourceClient,
    UrlScraper,
    create_fetchers,
    detect_source,
)
from citekit.fetchers.html_metadata import extract_metadata, merge_metadata

# Formatting
from citekit.formatter import STYLES, CitationFormatter, FormatOptions
from citekit.http_client import HttpClient, HttpResponse

# Data model
from citekit.models import Bibliography, Citation, Name, Reference
from citekit.storage import InMemoryStore, ReferenceStore

# Shared utilities
from citekit.utils import (
    doi_normalize,
    doi_url,
    extract_authors,
    extract_date,
    extract_doi_from_url,
    extract_isbn_from_text,
    extract_pmid_from_url,
    is_doi,
    is_isbn_shaped,
    is_pmid,
    is_valid_isbn10,
    is_valid_isbn13,
    isbn10_to_isbn13,
    isbn13_to_isbn10,
    isbn_clean,
    parse_author_name,
    parse_date_string,
    parse_pubmed_date,
)

__all__ = [
    "__version__",
    # Bibliography
    "SORT_ORDERS",
    "BibliographyGenerator",
    "BibliographyOptions",
    "compute_cache_key",
    "sort_references",
    # Cache & rate limiting
    "DEFAULT_LIMITS",
    "DEFAULT_TTLS",
    "Cache",
    "DiskCache",
    "MemoryCache",
    "RateLimit",
    "RateLimiter",
    "make_cache_key",
    # Configuration
    "CitekitConfig",
    "SourceSettings",
    "load_config",
    # Errors and results
    "BulkFailure",
    "BulkResult",
    "ErrorKind",
    "FetchError",
    "FetchResult",
    "HttpStatusError",
    "InvalidIdentifier",
    "NetworkError",
    "NotFound",
    "ParseError",
    "PartialFailure",
    "RateLimited",
    "SearchHit",
    "SearchResult",
    "SearchUnsupported",
    # Fetchers
    "SOURCE_NAMES",
    "DoiFetcher",
    "Fetcher",
    "IsbnFetcher",
    "PubMedFetcher",
    "SourceClient",
    "UrlScraper",
    "create_fetchers",
    "detect_source",
    "extract_metadata",
    "merge_metadata",
    # Formatting
    "STYLES",
    "CitationFormatter",
    "FormatOptions",
    # HTTP
    "HttpClient",
    "HttpResponse",
    # Data model
    "Bibliography",
    "Citation",
    "Name",
    "Reference",
    "InMemoryStore",
    "ReferenceStore",
    # Utilities
    "doi_normalize",
    "doi_url",
    "extract_authors",
    "extract_date",
    "extract_doi_from_url",
    "extract_isbn_from_text",
    "extract_pmid_from_url",
    "is_doi",
    "is_isbn_shaped",
    "is_pmid",
    "is_valid_isbn10",
    "is_valid_isbn13",
    "isbn10_to_isbn13",
    "isbn13_to_isbn10",
    "isbn_clean",
    "parse_author_name",
    "parse_date_string",
    "parse_pubmed_date",
]
