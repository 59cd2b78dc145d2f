"""Storage boundary: where references, citations and bibliographies live.

Persistence is an external concern. The bibliography generator only needs
the operations on :class:`ReferenceStore`. :class:`InMemoryStore` backs the
CLI and the tests.
"""

from __future__ import annotations

import itertools
import json
from abc import ABC, abstractmethod
from typing import Any

from citekit.models import Bibliography, Citation, Reference


class ReferenceStore(ABC):
    """Operations the core needs from persistent storage."""

    @abstractmethod
    def get_citations(self, document_id: str) -> list[Citation]:
        """Return all citations of a document, in position order."""

    @abstractmethod
    def get_reference(self, reference_id: str) -> Reference | None:
        """Return the reference stored under ``reference_id`` or None if not found."""

    @abstractmethod
    def save_reference(self, reference: Reference) -> str:
        """Persist a reference and return its id."""

    @abstractmethod
    def get_bibliography(self, source_id: str) -> Bibliography | None:
        """Return the stored bibliography artifact of a document, if any."""

    @abstractmethod
    def save_bibliography(self, bibliography: Bibliography) -> None:
        """Store (overwrite) the bibliography artifact of a document."""


class InMemoryStore(ReferenceStore):
    """Dict-backed store, loadable from a JSON document.

    The JSON layout is::

        {
          "references": {"<id>": {<CSL JSON>}, ...},
          "citations": {"<document id>": [{"reference_id": "...", ...}, ...]},
          "bibliographies": {"<document id>": {<Bibliography>}}
        }
    """

    def __init__(self) -> None:
        self.references: dict[str, Reference] = {}
        self.citations: dict[str, list[Citation]] = {}
        self.bibliographies: dict[str, Bibliography] = {}
        self._ids = itertools.count(1)

    def get_citations(self, document_id: str) -> list[Citation]:
        return sorted(self.citations.get(document_id, []), key=lambda c: c.position)

    def add_citation(self, document_id: str, citation: Citation) -> None:
        self.citations.setdefault(document_id, []).append(citation)

    def set_citations(self, document_id: str, citations: list[Citation]) -> None:
        self.citations[document_id] = list(citations)

    def get_reference(self, reference_id: str) -> Reference | None:
        return self.references.get(str(reference_id))

    def save_reference(self, reference: Reference, reference_id: str | None = None) -> str:
        if reference_id is None:
            reference_id = str(next(self._ids))
            while reference_id in self.references:
                reference_id = str(next(self._ids))
        self.references[str(reference_id)] = reference
        return str(reference_id)

    def get_bibliography(self, source_id: str) -> Bibliography | None:
        return self.bibliographies.get(str(source_id))

    def save_bibliography(self, bibliography: Bibliography) -> None:
        self.bibliographies[bibliography.source_id] = bibliography

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryStore:
        store = cls()
        for ref_id, csl in (data.get("references") or {}).items():
            store.save_reference(Reference.from_csl(csl), str(ref_id))
        for doc_id, items in (data.get("citations") or {}).items():
            store.set_citations(
                str(doc_id),
                [Citation.from_dict({"position": i, **item}) for i, item in enumerate(items or [])],
            )
        for doc_id, bib in (data.get("bibliographies") or {}).items():
            store.bibliographies[str(doc_id)] = Bibliography.from_dict({"source_id": doc_id, **bib})
        return store

    def to_dict(self) -> dict[str, Any]:
        return {
            "references": {rid: ref.to_csl() for rid, ref in self.references.items()},
            "citations": {doc: [c.to_dict() for c in cits] for doc, cits in self.citations.items()},
            "bibliographies": {doc: bib.to_dict() for doc, bib in self.bibliographies.items()},
        }

    @classmethod
    def load(cls, path: str) -> InMemoryStore:
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def dump(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
