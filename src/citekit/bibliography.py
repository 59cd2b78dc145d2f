"""Bibliography generation with cache-key based regeneration.

A bibliography is rendered from the citations of one document. Its cache key
hashes the document id, the style, the sort order and the serialized citation
list; the stored artifact is re-rendered exactly when that key changes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from citekit.formatter import CitationFormatter, FormatOptions, esc
from citekit.models import Bibliography, Citation, Reference
from citekit.storage import ReferenceStore
from citekit.utils import family_name

SORT_ORDERS = ("alphabetical", "chronological", "reverse_chronological", "citation_order")


@dataclass(frozen=True)
class BibliographyOptions:
    """Rendering options for a whole bibliography."""

    title: str = "References"
    include_urls: bool = True
    include_doi: bool = True
    hanging_indent: bool = True


def compute_cache_key(source_id: str, style: str, sort_order: str, citations: Sequence[Citation]) -> str:
    """Deterministic key over the bibliography inputs.

    Any change to any citation field (a prefix, a locator...) changes the key,
    not only changes to the set of referenced ids.
    """
    serialized = json.dumps([c.to_dict() for c in citations], sort_keys=True, separators=(",", ":"))
    citations_hash = hashlib.md5(serialized.encode("utf-8")).hexdigest()
    return hashlib.md5(f"{source_id}{style}{sort_order}{citations_hash}".encode()).hexdigest()


def _sort_name(ref: Reference) -> str:
    if ref.author:
        return family_name(ref.author[0])
    return ref.title


def sort_references(
    references: Sequence[tuple[str, Reference]], order: str = "alphabetical"
) -> list[tuple[str, Reference]]:
    """Sort ``(id, reference)`` pairs.

    ``alphabetical`` keys on first-author family name (the title when there
    are no authors), then year (missing = 0), then title. The chronological
    orders key on year alone, and ``citation_order`` keeps the input order.
    Python's sort is stable, so ties keep their prior relative order.
    """
    items = list(references)
    if order == "citation_order":
        return items
    if order == "chronological":
        return sorted(items, key=lambda item: item[1].year or 0)
    if order == "reverse_chronological":
        return sorted(items, key=lambda item: -(item[1].year or 0))
    return sorted(items, key=lambda item: (_sort_name(item[1]), item[1].year or 0, item[1].title))


class BibliographyGenerator:
    """Collect, sort, render and store document bibliographies."""

    def __init__(
        self,
        store: ReferenceStore,
        formatter: CitationFormatter | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.formatter = formatter or CitationFormatter()
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def collect_references(self, citations: Sequence[Citation]) -> list[tuple[str, Reference]]:
        """Unique references in order of first citation. Missing ids are skipped."""
        seen: set[str] = set()
        collected: list[tuple[str, Reference]] = []
        for citation in sorted(citations, key=lambda c: c.position):
            ref_id = citation.reference_id
            if ref_id in seen:
                continue
            seen.add(ref_id)
            ref = self.store.get_reference(ref_id)
            if ref is None:
                self.logger.warning("Reference %s not found; leaving it out of the bibliography", ref_id)
                continue
            collected.append((ref_id, ref))
        return collected

    def render(
        self,
        references: Sequence[tuple[str, Reference]],
        style: str,
        options: BibliographyOptions | None = None,
    ) -> str:
        """Render sorted references as an ordered HTML list."""
        options = options or BibliographyOptions()
        if not references:
            return ""
        entry_options = FormatOptions(include_doi=options.include_doi, include_urls=options.include_urls)
        classes = "bibliography hanging-indent" if options.hanging_indent else "bibliography"
        out = [f'<div class="{classes}">']
        if options.title:
            out.append(f'<h3 class="bibliography-title">{esc(options.title)}</h3>')
        out.append('<ol class="bibliography-list">')
        for ref_id, ref in references:
            entry = self.formatter.format_reference(ref, style, entry_options)
            out.append(f'<li class="bibliography-item" data-reference-id="{esc(ref_id)}">{entry}</li>')
        out.append("</ol></div>")
        return "".join(out)

    def current_cache_key(self, source_id: str, style: str, sort_order: str) -> str:
        return compute_cache_key(source_id, style, sort_order, self.store.get_citations(source_id))

    def needs_regeneration(self, stored: Bibliography | None) -> bool:
        """True when there is no stored artifact or its key no longer matches the citations."""
        if stored is None:
            return True
        return self.current_cache_key(stored.source_id, stored.style, stored.sort_order) != stored.cache_key

    def generate(
        self,
        source_id: str,
        style: str = "apa",
        sort_order: str = "alphabetical",
        options: BibliographyOptions | None = None,
    ) -> Bibliography:
        """Render the document's bibliography and store the artifact."""
        if sort_order not in SORT_ORDERS:
            self.logger.debug("Unknown sort order %r, sorting alphabetically", sort_order)
        citations = self.store.get_citations(source_id)
        references = sort_references(self.collect_references(citations), sort_order)
        bibliography = Bibliography(
            source_id=source_id,
            style=style,
            sort_order=sort_order,
            reference_ids=tuple(ref_id for ref_id, _ in references),
            cache_key=compute_cache_key(source_id, style, sort_order, citations),
            rendered_html=self.render(references, style, options),
            generated_at=self.clock().isoformat(),
        )
        self.store.save_bibliography(bibliography)
        self.logger.info("Generated %s bibliography for %s with %d entries", style, source_id, len(references))
        return bibliography

    def regenerate_if_needed(
        self,
        source_id: str,
        style: str = "apa",
        sort_order: str = "alphabetical",
        options: BibliographyOptions | None = None,
    ) -> Bibliography:
        """Return the stored artifact, regenerating it only when its key is stale.

        A stored artifact rendered with a different style or sort order is
        treated as stale too.
        """
        stored = self.store.get_bibliography(source_id)
        if stored is not None and (stored.style, stored.sort_order) == (style, sort_order):
            if not self.needs_regeneration(stored):
                self.logger.debug("Bibliography for %s is up to date", source_id)
                return stored
        return self.generate(source_id, style, sort_order, options)
