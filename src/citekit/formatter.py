"""Citation style rules for APA, MLA, Chicago (author-date) and a generic default.

The formatter renders HTML fragments: text is escaped, titles and container
names are wrapped in ``<em>`` where the style italicizes them. It never reads
a reference's provenance block.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from citekit.models import Citation, DateParts, Name, Reference
from citekit.utils import family_name, initials, parse_author_name

STYLES = ("apa", "mla", "chicago", "default")

# Types that are part of a larger container: plain title in APA, quoted in MLA/Chicago.
PART_TYPES = frozenset(
    {
        "article",
        "article-journal",
        "article-magazine",
        "article-newspaper",
        "chapter",
        "paper-conference",
        "entry",
        "entry-dictionary",
        "entry-encyclopedia",
    }
)
WEB_TYPES = frozenset({"webpage", "post", "post-weblog"})
QUOTED_TYPES = PART_TYPES | WEB_TYPES

LOCATOR_LABELS = {
    "page": ("p.", "pp."),
    "chapter": ("chap.", "chaps."),
    "paragraph": ("para.", "paras."),
    "section": ("sec.", "secs."),
    "figure": ("fig.", "figs."),
    "volume": ("vol.", "vols."),
    "line": ("line", "lines"),
}

# "Family, F." or "Family, F. M." already in APA form
_APA_FORMED_RE = re.compile(r"^[^,]+,\s*[A-Z]\.?(\s*[A-Z]\.?)*$")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormatOptions:
    """Per-entry rendering switches."""

    include_doi: bool = True
    include_urls: bool = True
    suppress_author: bool = False


def esc(text: str) -> str:
    return html.escape(text, quote=False)


def _terminate(text: str) -> str:
    """Append a period unless the text already ends in terminal punctuation."""
    text = text.rstrip()
    return text if not text or text[-1] in ".?!" else f"{text}."


def format_access_date(accessed: DateParts) -> str:
    """``Retrieved March 5, 2024``; a missing month or day counts as the first."""
    y, m, d = (tuple(accessed) + (1, 1))[:3]
    return f"Retrieved {date(y, m, d):%B} {d}, {y}"


class CitationFormatter:
    """Render references and in-text citations in one of :data:`STYLES`."""

    def __init__(self, default_style: str = "apa") -> None:
        self.default_style = self.resolve_style(default_style)

    @staticmethod
    def resolve_style(style: str | None) -> str:
        style = (style or "").lower()
        if style in STYLES:
            return style
        if style:
            logger.debug("Unknown citation style %r, using default rules", style)
        return "default"

    # ------------- Names -------------

    def _inverted(self, person: Name | str, style: str) -> str:
        """``Last, F. M.`` for APA/default, ``Last, First`` for MLA/Chicago."""
        if isinstance(person, str):
            text = person.strip()
            if style in ("apa", "default"):
                if _APA_FORMED_RE.match(text):
                    return text
            if "," in text:
                return text
            parsed = parse_author_name(text)
            if parsed is None or not parsed.given:
                return text
            person = parsed
        if person.literal and not person.family:
            return person.literal
        if not person.given:
            return person.family
        if style in ("apa", "default"):
            return f"{person.family}, {initials(person.given)}"
        return f"{person.family}, {person.given}"

    @staticmethod
    def _natural(person: Name | str) -> str:
        if isinstance(person, str):
            return person.strip()
        return person.display()

    def format_authors(self, names: Sequence[Name | str], style: str | None = None) -> str:
        """Join an author list according to the style's rules.

        APA (and default): 1 name alone, 2 joined by ``", & "``, 3 to 7 comma
        separated with a final ``", & "``, 8 or more as the first six, then
        ``", ... "``, then the last. MLA: ``"a, and b"`` for two, ``"a, et al."``
        for three or more. Chicago: ``"a and b"`` for two, a serial ``", and "``
        list otherwise.
        """
        style = self.resolve_style(style or self.default_style)
        names = [n for n in names if (n.strip() if isinstance(n, str) else not n.is_empty)]
        if not names:
            return ""
        count = len(names)
        first = self._inverted(names[0], style)

        if style == "mla":
            if count == 1:
                return first
            if count == 2:
                return f"{first}, and {self._natural(names[1])}"
            return f"{first}, et al."

        if style == "chicago":
            if count == 1:
                return first
            rest = [self._natural(n) for n in names[1:]]
            if count == 2:
                return f"{first} and {rest[0]}"
            return ", ".join([first, *rest[:-1]]) + f", and {rest[-1]}"

        formatted = [self._inverted(n, style) for n in names]
        if count == 1:
            return formatted[0]
        if count == 2:
            return f"{formatted[0]}, & {formatted[1]}"
        if count <= 7:
            return ", ".join(formatted[:-1]) + f", & {formatted[-1]}"
        return ", ".join(formatted[:6]) + f", ... {formatted[-1]}"

    # ------------- Reference entries -------------

    def _title(self, ref: Reference, style: str) -> str:
        title = ref.title.strip()
        if not title:
            return ""
        if style in ("mla", "chicago") and ref.type in QUOTED_TYPES:
            return f"“{esc(_terminate(title))}”"
        if style in ("apa", "default") and ref.type in PART_TYPES:
            return esc(_terminate(title))
        if title[-1] in ".?!":
            return f"<em>{esc(title)}</em>"
        return f"<em>{esc(title)}</em>."

    def _container(self, ref: Reference, style: str) -> str:
        if not ref.container_title:
            return esc(_terminate(ref.publisher)) if ref.publisher else ""
        out = f"<em>{esc(ref.container_title)}</em>"
        if style == "mla":
            if ref.volume:
                out += f", vol. {esc(ref.volume)}"
            if ref.issue:
                out += f", no. {esc(ref.issue)}"
            if ref.page:
                out += f", pp. {esc(ref.page)}"
        elif style == "chicago":
            if ref.volume:
                out += f" {esc(ref.volume)}"
            if ref.issue:
                out += f", no. {esc(ref.issue)}"
            if ref.page:
                out += f": {esc(ref.page)}"
        else:
            if ref.volume:
                out += f", <em>{esc(ref.volume)}</em>"
            if ref.issue:
                out += f"({esc(ref.issue)})"
            if ref.page:
                out += f", {esc(ref.page)}"
        return f"{out}."

    def format_reference(self, ref: Reference, style: str | None = None, options: FormatOptions | None = None) -> str:
        """Render one bibliography entry.

        Parts, in order: authors, year, title, container (or publisher),
        then the DOI as a URL or the plain URL, then the access date for web
        pages. Missing parts are dropped together with their punctuation.
        """
        style = self.resolve_style(style or self.default_style)
        options = options or FormatOptions()
        parts: list[str] = []

        if not options.suppress_author and ref.author:
            parts.append(esc(_terminate(self.format_authors(ref.author, style))))
        if ref.year:
            parts.append(f"({ref.year})." if style == "apa" else f"{ref.year}.")
        title = self._title(ref, style)
        if title:
            parts.append(title)
        container = self._container(ref, style)
        if container:
            parts.append(container)
        if options.include_doi and ref.DOI:
            parts.append(esc(f"https://doi.org/{ref.DOI}"))
        elif options.include_urls and ref.URL:
            parts.append(esc(ref.URL))
        if ref.type in WEB_TYPES and ref.accessed:
            parts.append(format_access_date(ref.accessed))
        return " ".join(parts)

    # ------------- In-text citations -------------

    def _short_authors(self, ref: Reference, style: str) -> str:
        families = [family_name(n) for n in ref.author]
        families = [f for f in families if f]
        if not families:
            return esc(ref.title.strip())
        if len(families) == 1:
            return esc(families[0])
        if len(families) == 2:
            joiner = " & " if style in ("apa", "default") else " and "
            return esc(families[0] + joiner + families[1])
        return esc(f"{families[0]} et al.")

    @staticmethod
    def _locator(citation: Citation, bare_pages: bool) -> str:
        loc = citation.locator.strip()
        if not loc:
            return ""
        ltype = citation.locator_type or "page"
        if ltype == "page" and bare_pages:
            return esc(loc)
        singular, plural = LOCATOR_LABELS.get(ltype, (ltype, ltype))
        label = plural if re.search(r"[-–,]", loc) else singular
        return esc(f"{label} {loc}")

    def format_citation(self, ref: Reference, citation: Citation, style: str | None = None) -> str:
        """Render the in-text form, e.g. ``(Smith & Jones, 2020, p. 4)``."""
        style = self.resolve_style(style or citation.style or self.default_style)
        author = "" if citation.suppress_author else self._short_authors(ref, style)
        year = str(ref.year) if ref.year else ""

        if style == "mla":
            body = " ".join(p for p in (author, self._locator(citation, bare_pages=True)) if p)
        elif style == "chicago":
            head = " ".join(p for p in (author, year) if p)
            body = ", ".join(p for p in (head, self._locator(citation, bare_pages=True)) if p)
        else:
            body = ", ".join(p for p in (author, year, self._locator(citation, bare_pages=False)) if p)

        inner = " ".join(p for p in (esc(citation.prefix.strip()), body, esc(citation.suffix.strip())) if p)
        return f"({inner})" if inner else ""
