"""Shared normalization helpers for citekit.

Includes text cleanup, author-name parsing, partial date parsing, and
DOI/PMID/ISBN handling (including ISBN-10/ISBN-13 checksum math). Every
function here is pure.
"""

from __future__ import annotations

import html
import re
from datetime import date
from typing import Any
from urllib.parse import urlparse

from citekit.models import DateParts, Name

# ------------- Constants & Regex -------------

CROSSREF_API = "https://api.crossref.org/works"
CROSSREF_MEMBERS_API = "https://api.crossref.org/members"
EUTILS_API = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
GOOGLE_BOOKS_API = "https://www.googleapis.com/books/v1/volumes"
PUBMED_URL = "https://pubmed.ncbi.nlm.nih.gov"

DOI_RE = re.compile(r"^(doi:)?10\.\d{4,}/\S+$", re.IGNORECASE)
DOI_PREFIX_RE = re.compile(r"^(?:doi:\s*|https?://(?:dx\.)?doi\.org/)", re.IGNORECASE)
DOI_IN_URL_RE = re.compile(r"(?:doi:|https?://(?:dx\.)?doi\.org/)(10\.\d{4,}/[^\s&]+)", re.IGNORECASE)

PMID_RE = re.compile(r"^(?:pmid:?\s*)?(\d{7,8})$", re.IGNORECASE)
PMID_IN_TEXT_PATTERNS = (
    re.compile(r"pubmed\.ncbi\.nlm\.nih\.gov/(\d{7,8})", re.IGNORECASE),
    re.compile(r"ncbi\.nlm\.nih\.gov/pubmed/(\d{7,8})", re.IGNORECASE),
    re.compile(r"pmid:?\s*(\d{7,8})", re.IGNORECASE),
)

ISBN_PREFIX_RE = re.compile(r"^\s*isbn(?:-1[03])?\s*:?\s*", re.IGNORECASE)
ISBN_CANDIDATE_RE = re.compile(r"(?<![\dXx])(?:97[89][-\s]?)?(?:\d[-\s]?){9}[\dXx](?![\dXx])")

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# ------------- Text Normalization -------------

_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(text: str | None, sep: str = "") -> str:
    """Remove HTML/JATS tags, unescape entities and collapse whitespace."""
    if not text:
        return ""
    t = _TAG_RE.sub(sep, text)
    t = html.unescape(t)
    return re.sub(r"\s+", " ", t).strip()


def first_item(value: Any) -> Any:
    """Return the first element of a list, or the value itself if it is a scalar."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def clean_str(value: Any) -> str | None:
    """Coerce a scalar to a stripped string, mapping empty values to None."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


# ------------- Author Handling -------------

_AUTHOR_SEP_RE = re.compile(r";|\s+\band\b\s+|\s*&\s*", re.IGNORECASE)

FAMILY_KEYS = ("family", "lastName", "last_name", "surname", "lastname", "familyName")
GIVEN_KEYS = ("given", "firstName", "first_name", "forename", "firstname", "givenName")


def split_author_string(value: str) -> list[str]:
    """Split a free-text author list into individual names.

    Names are separated by ``;``, ``and`` or ``&``. A chunk that still holds
    commas is split further only when every comma-separated piece is a
    multi-word name, so ``"Smith, John"`` stays one person while
    ``"John Smith, Jane Doe"`` becomes two.
    """
    if not value:
        return []
    names: list[str] = []
    for chunk in _AUTHOR_SEP_RE.split(value):
        chunk = chunk.strip().strip(",").strip()
        if not chunk:
            continue
        pieces = [p.strip() for p in chunk.split(",") if p.strip()]
        if len(pieces) > 1 and all(len(p.split()) > 1 for p in pieces):
            names.extend(pieces)
        else:
            names.append(chunk)
    return names


def parse_author_name(name: str) -> Name | None:
    """Parse ``"Family, Given"`` or ``"Given Family"`` into a Name."""
    name = re.sub(r"\s+", " ", (name or "").strip())
    if not name:
        return None
    if "," in name:
        family, given = name.split(",", 1)
        return Name(family=family.strip(), given=given.strip())
    toks = name.split(" ")
    if len(toks) == 1:
        return Name(family=toks[0])
    return Name(family=toks[-1], given=" ".join(toks[:-1]))


def author_from_mapping(data: dict[str, Any]) -> Name | None:
    """Build a Name from a dict using the common key aliases of the various APIs."""
    family = next((str(data[k]).strip() for k in FAMILY_KEYS if data.get(k)), "")
    given = next((str(data[k]).strip() for k in GIVEN_KEYS if data.get(k)), "")
    if family or given:
        return Name(family=family, given=given)
    if data.get("literal"):
        return Name(literal=str(data["literal"]).strip())
    if data.get("name"):
        return parse_author_name(str(data["name"]))
    return None


def extract_authors(value: Any) -> tuple[Name, ...]:
    """Normalize any of the author shapes seen in source payloads.

    Accepts a free-text string, a list of strings, a list of dicts, a single
    dict, or Name objects. Order is preserved and duplicates are kept.
    """
    if not value:
        return ()
    if isinstance(value, str):
        parsed = [parse_author_name(n) for n in split_author_string(value)]
        return tuple(n for n in parsed if n)
    if isinstance(value, (Name, dict)):
        value = [value]
    names: list[Name] = []
    for item in value:
        if isinstance(item, Name):
            n: Name | None = item
        elif isinstance(item, dict):
            n = author_from_mapping(item)
        elif isinstance(item, str):
            n = parse_author_name(item)
        else:
            n = None
        if n and not n.is_empty:
            names.append(n)
    return tuple(names)


def family_name(person: Name | str) -> str:
    """Return the family name used as a sort key.

    Uses the comma-split part when present, otherwise the last whitespace
    delimited token.
    """
    if isinstance(person, Name):
        if person.family:
            return person.family
        person = person.literal or person.given
    person = person.strip()
    if "," in person:
        return person.split(",", 1)[0].strip()
    toks = person.split()
    return toks[-1] if toks else ""


def initials(given: str) -> str:
    """Turn given names into initials: ``"John Ronald"`` -> ``"J. R."``."""
    parts = [p for p in re.split(r"[\s.]+", given or "") if p]
    out = []
    for p in parts:
        if "-" in p:
            out.append("-".join(f"{s[0].upper()}." for s in p.split("-") if s))
        else:
            out.append(f"{p[0].upper()}.")
    return " ".join(out)


# ------------- Dates -------------

_ISO_DATE_RE = re.compile(r"^(\d{4})(?:[-/](\d{1,2})(?:[-/](\d{1,2}))?)?(?:$|[T\s])")
_MONTH_DAY_YEAR_RE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})")
_DAY_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]+)\.?,?\s+(\d{4})")
_MONTH_YEAR_RE = re.compile(r"^([A-Za-z]+)\.?,?\s+(\d{4})$")
_PUBMED_DATE_RE = re.compile(r"(\d{4})(?:\s+(\w+))?(?:\s+(\d{1,2}))?")
_YEAR_RE = re.compile(r"\b(1[5-9]\d{2}|2\d{3})\b")


def month_number(token: str | None) -> int | None:
    """Map a month name or abbreviation to 1-12."""
    if not token:
        return None
    return MONTHS.get(token[:3].lower())


def _date_parts(year: int, month: int | None = None, day: int | None = None) -> DateParts:
    if not month or not 1 <= month <= 12:
        return (year,)
    if not day or not 1 <= day <= 31:
        return (year, month)
    return (year, month, day)


def parse_date_string(text: str | None) -> DateParts | None:
    """Parse a loosely formatted date into date-parts with only the known components.

    Handles ISO-like dates (``2020``, ``2020-05``, ``2020-05-12T10:00``),
    ``May 12, 2020``, ``12 May 2020``, ``May 2020`` and PubMed-style
    ``2020 May 12``. Falls back to a bare four-digit year.
    """
    if not text:
        return None
    t = text.strip()
    if re.match(r"^\d{4}\s+[A-Za-z]", t):
        return parse_pubmed_date(t)
    m = _ISO_DATE_RE.match(t)
    if m:
        return _date_parts(int(m.group(1)), int(m.group(2) or 0), int(m.group(3) or 0))
    m = _MONTH_DAY_YEAR_RE.match(t)
    if m and month_number(m.group(1)):
        return _date_parts(int(m.group(3)), month_number(m.group(1)), int(m.group(2)))
    m = _DAY_MONTH_YEAR_RE.match(t)
    if m and month_number(m.group(2)):
        return _date_parts(int(m.group(3)), month_number(m.group(2)), int(m.group(1)))
    m = _MONTH_YEAR_RE.match(t)
    if m and month_number(m.group(1)):
        return _date_parts(int(m.group(2)), month_number(m.group(1)))
    m = _YEAR_RE.search(t)
    if m:
        return (int(m.group(1)),)
    return None


def parse_pubmed_date(text: str | None) -> DateParts | None:
    """Parse PubMed's partial dates: ``2023``, ``2023 Jan``, ``2023 Jan 15``.

    The day is only kept when the month was recognised.
    """
    if not text:
        return None
    m = _PUBMED_DATE_RE.search(text)
    if not m:
        return None
    year = int(m.group(1))
    month = month_number(m.group(2))
    if month is None:
        return (year,)
    if m.group(3):
        return _date_parts(year, month, int(m.group(3)))
    return (year, month)


def extract_date(value: Any) -> DateParts | None:
    """Normalize any date shape (string, CSL dict, list, y/m/d dict) into date-parts."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return (value,)
    if isinstance(value, str):
        return parse_date_string(value)
    if isinstance(value, date):
        return (value.year, value.month, value.day)
    if isinstance(value, dict):
        if "date-parts" in value:
            parts = value.get("date-parts") or []
            return extract_date(parts[0]) if parts else None
        if value.get("year"):
            month = value.get("month")
            if isinstance(month, str) and not month.isdigit():
                month = month_number(month)
            return _date_parts(int(value["year"]), int(month or 0), int(value.get("day") or 0))
        return None
    if isinstance(value, (list, tuple)):
        try:
            ints = [int(p) for p in value if p not in (None, "")]
        except (TypeError, ValueError):
            return None
        if not ints:
            return None
        return _date_parts(*ints[:3])
    return None


def today_parts(today: date) -> DateParts:
    return (today.year, today.month, today.day)


# ------------- DOI & PMID Utilities -------------


def doi_normalize(doi: str | None) -> str | None:
    """Normalize a DOI by removing ``doi:``/URL prefixes and lowercasing."""
    if not doi:
        return None
    d = DOI_PREFIX_RE.sub("", doi.strip()).strip()
    return d.lower() or None


def doi_url(doi: str) -> str:
    """Convert a DOI to a URL."""
    return f"https://doi.org/{doi}"


def extract_doi_from_url(text: str | None) -> str | None:
    """Find a DOI in a ``doi:`` string or a doi.org URL."""
    if not text:
        return None
    m = DOI_IN_URL_RE.search(text)
    return m.group(1).rstrip(".,;").lower() if m else None


def is_doi(text: str | None) -> bool:
    """Syntax check for ``10.NNNN/suffix`` with an optional ``doi:`` prefix."""
    return bool(text) and DOI_RE.match(text.strip()) is not None


def is_pmid(text: str | None) -> bool:
    return bool(text) and PMID_RE.match(text.strip()) is not None


def is_http_url(text: str | None) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not text:
        return False
    parsed = urlparse(text.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def pmid_normalize(pmid: str | None) -> str | None:
    """Return the bare digits of a PMID, or None if it is not one."""
    if not pmid:
        return None
    m = PMID_RE.match(pmid.strip())
    return m.group(1) if m else None


def extract_pmid_from_url(text: str | None) -> str | None:
    """Find a PMID in a PubMed URL or a ``PMID: 12345678`` string."""
    if not text:
        return None
    for pattern in PMID_IN_TEXT_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1)
    return None


# ------------- ISBN Utilities -------------


def isbn_clean(isbn: str | None) -> str:
    """Strip an ``ISBN:`` prefix and everything but digits and ``X``."""
    if not isbn:
        return ""
    s = ISBN_PREFIX_RE.sub("", isbn)
    return re.sub(r"[^0-9X]", "", s.upper())


def is_isbn_shaped(text: str | None) -> bool:
    """Length check only: 10 or 13 characters once everything but ``[0-9X]`` is removed."""
    cleaned = re.sub(r"[^0-9X]", "", (text or "").upper())
    return len(cleaned) in (10, 13)


def _isbn13_check(first12: str) -> str:
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(first12))
    return str((10 - total % 10) % 10)


def _isbn10_check(first9: str) -> str:
    total = sum(int(d) * (10 - i) for i, d in enumerate(first9))
    check = (11 - total % 11) % 11
    return "X" if check == 10 else str(check)


def is_valid_isbn10(isbn: str | None) -> bool:
    """Verify an ISBN-10 checksum."""
    s = isbn_clean(isbn)
    if not re.fullmatch(r"\d{9}[\dX]", s):
        return False
    return _isbn10_check(s[:9]) == s[9]


def is_valid_isbn13(isbn: str | None) -> bool:
    """Verify an ISBN-13 checksum."""
    s = isbn_clean(isbn)
    if not re.fullmatch(r"\d{13}", s):
        return False
    return _isbn13_check(s[:12]) == s[12]


def isbn10_to_isbn13(isbn10: str | None) -> str | None:
    """Convert an ISBN-10 to ISBN-13 with the ``978`` prefix.

    The ISBN-10 check character is discarded and recomputed for the new form.
    """
    s = isbn_clean(isbn10)
    if len(s) != 10 or not s[:9].isdigit():
        return None
    core = "978" + s[:9]
    return core + _isbn13_check(core)


def isbn13_to_isbn10(isbn13: str | None) -> str | None:
    """Convert a ``978``-prefixed ISBN-13 to ISBN-10; ``979`` ISBNs have no ISBN-10."""
    s = isbn_clean(isbn13)
    if len(s) != 13 or not s.isdigit() or not s.startswith("978"):
        return None
    core = s[3:12]
    return core + _isbn10_check(core)


def extract_isbn_from_text(text: str | None) -> str | None:
    """Return the first checksum-valid ISBN found in free text."""
    if not text:
        return None
    for m in ISBN_CANDIDATE_RE.finditer(text):
        candidate = isbn_clean(m.group(0))
        if is_valid_isbn13(candidate) or is_valid_isbn10(candidate):
            return candidate
    return None
