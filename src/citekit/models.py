"""Canonical data model shared by fetchers, the formatter and the bibliography."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

DateParts = tuple[int, ...]

# CSL item types recognised by the formatter and the type tables.
CSL_TYPES = frozenset(
    {
        "article",
        "article-journal",
        "article-magazine",
        "article-newspaper",
        "bill",
        "book",
        "broadcast",
        "chapter",
        "dataset",
        "entry",
        "entry-dictionary",
        "entry-encyclopedia",
        "figure",
        "graphic",
        "interview",
        "legal_case",
        "legislation",
        "manuscript",
        "map",
        "motion_picture",
        "musical_score",
        "pamphlet",
        "paper-conference",
        "patent",
        "periodical",
        "personal_communication",
        "post",
        "post-weblog",
        "report",
        "review",
        "review-book",
        "song",
        "speech",
        "standard",
        "thesis",
        "treaty",
        "webpage",
    }
)

# Key under which each source stores its provenance block in CSL JSON.
SOURCE_DATA_KEYS = {
    "doi": "_crossref_data",
    "pubmed": "_pubmed_data",
    "isbn": "_google_books_data",
    "url_scraper": "_scraping_data",
}

# Python attribute -> CSL JSON key for the scalar fields.
_CSL_FIELD_NAMES = {
    "container_title": "container-title",
    "collection_title": "collection-title",
    "number_of_pages": "number-of-pages",
}


@dataclass(frozen=True)
class Name:
    """A personal name as ``family``/``given`` parts, or a literal for organisations."""

    family: str = ""
    given: str = ""
    literal: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.family or self.given or self.literal)

    def display(self) -> str:
        """Return the name in natural "Given Family" order."""
        if self.literal:
            return self.literal
        return " ".join(p for p in (self.given, self.family) if p)

    def to_dict(self) -> dict[str, str]:
        if self.literal and not self.family:
            return {"literal": self.literal}
        return {"family": self.family, "given": self.given}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Name:
        return cls(
            family=str(data.get("family") or ""),
            given=str(data.get("given") or ""),
            literal=str(data.get("literal") or ""),
        )


@dataclass(frozen=True)
class Reference:
    """A normalized, source-agnostic bibliographic record.

    Instances are immutable; use :func:`dataclasses.replace` to derive an
    augmented copy.
    """

    type: str = "article"
    title: str = ""
    author: tuple[Name, ...] = ()
    editor: tuple[Name, ...] = ()
    issued: DateParts | None = None
    container_title: str | None = None
    volume: str | None = None
    issue: str | None = None
    page: str | None = None
    publisher: str | None = None
    DOI: str | None = None
    ISBN: str | None = None
    ISSN: str | None = None
    PMID: str | None = None
    URL: str | None = None
    abstract: str | None = None
    keyword: str | None = None
    language: str | None = None
    edition: str | None = None
    number_of_pages: str | None = None
    collection_title: str | None = None
    license: str | None = None
    accessed: DateParts | None = None
    source: str | None = None
    source_data: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def year(self) -> int | None:
        return self.issued[0] if self.issued else None

    def to_csl(self) -> dict[str, Any]:
        """Render as a CSL-JSON-like dict, omitting empty optional fields."""
        data: dict[str, Any] = {"type": self.type, "title": self.title}
        if self.author:
            data["author"] = [n.to_dict() for n in self.author]
        if self.editor:
            data["editor"] = [n.to_dict() for n in self.editor]
        if self.issued:
            data["issued"] = {"date-parts": [list(self.issued)]}
        if self.accessed:
            data["accessed"] = {"date-parts": [list(self.accessed)]}
        skip = {"type", "title", "author", "editor", "issued", "accessed", "source", "source_data"}
        for f in fields(self):
            if f.name in skip:
                continue
            value = getattr(self, f.name)
            if value not in (None, ""):
                data[_CSL_FIELD_NAMES.get(f.name, f.name)] = value
        if self.source_data:
            data[SOURCE_DATA_KEYS.get(self.source or "", "_source_data")] = dict(self.source_data)
        return data

    @classmethod
    def from_csl(cls, data: dict[str, Any], source: str | None = None) -> Reference:
        """Build a Reference from a CSL-JSON-like dict (inverse of :meth:`to_csl`)."""
        reverse = {v: k for k, v in _CSL_FIELD_NAMES.items()}
        kwargs: dict[str, Any] = {}
        names = {f.name for f in fields(cls)}
        for key, value in data.items():
            attr = reverse.get(key, key)
            if attr in ("author", "editor"):
                kwargs[attr] = tuple(Name.from_dict(n) for n in value or [])
            elif attr in ("issued", "accessed"):
                kwargs[attr] = _date_parts_from_csl(value)
            elif attr in names and attr not in ("source", "source_data"):
                kwargs[attr] = value
        if source is None:
            for name, key in SOURCE_DATA_KEYS.items():
                if key in data:
                    source = name
                    break
        kwargs["source"] = source
        if source and SOURCE_DATA_KEYS.get(source) in data:
            kwargs["source_data"] = dict(data[SOURCE_DATA_KEYS[source]])
        kwargs.setdefault("title", "")
        return cls(**kwargs)


def _date_parts_from_csl(value: Any) -> DateParts | None:
    if not value:
        return None
    parts = value.get("date-parts") if isinstance(value, dict) else value
    if not parts:
        return None
    first = parts[0] if isinstance(parts[0], (list, tuple)) else parts
    ints = tuple(int(p) for p in first if p not in (None, ""))
    return ints or None


@dataclass(frozen=True)
class Citation:
    """One use of a reference inside a document."""

    reference_id: str
    prefix: str = ""
    suffix: str = ""
    locator: str = ""
    locator_type: str = "page"
    suppress_author: bool = False
    style: str | None = None
    position: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Citation:
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["reference_id"] = str(kwargs["reference_id"])
        return cls(**kwargs)


@dataclass(frozen=True)
class Bibliography:
    """A rendered bibliography together with the key it was rendered for."""

    source_id: str
    style: str
    sort_order: str
    reference_ids: tuple[str, ...]
    cache_key: str
    rendered_html: str
    generated_at: str

    def to_dict(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["reference_ids"] = list(self.reference_ids)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bibliography:
        return cls(
            source_id=str(data["source_id"]),
            style=data["style"],
            sort_order=data["sort_order"],
            reference_ids=tuple(str(r) for r in data.get("reference_ids", [])),
            cache_key=data["cache_key"],
            rendered_html=data.get("rendered_html", ""),
            generated_at=data.get("generated_at", ""),
        )
