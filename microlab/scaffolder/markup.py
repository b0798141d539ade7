"""Idempotent insertions into an HTML document.

A :class:`MarkupDocument` keeps the original text untouched except at four
named insertion points (just after ``<head>``, just before ``</head>``, just
after ``<body>``, just before ``</body>``).  Each :class:`Insertion` names
the element it adds as a :class:`Marker` (tag plus attribute patterns).  The
document is parsed with BeautifulSoup, and an insertion is applied only when
no element matching its marker exists yet, so applying the same insertion
again is a no-op.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from bs4 import BeautifulSoup

from microlab.errors import MarkupError


class InsertionPoint(str, Enum):
    HEAD_OPEN = "head_open"
    HEAD_CLOSE = "head_close"
    BODY_OPEN = "body_open"
    BODY_CLOSE = "body_close"


_ANCHORS: dict[InsertionPoint, re.Pattern[str]] = {
    InsertionPoint.HEAD_OPEN: re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE),
    InsertionPoint.HEAD_CLOSE: re.compile(r"</head\s*>", re.IGNORECASE),
    InsertionPoint.BODY_OPEN: re.compile(r"<body(\s[^>]*)?>", re.IGNORECASE),
    InsertionPoint.BODY_CLOSE: re.compile(r"</body\s*>", re.IGNORECASE),
}


@dataclass(frozen=True)
class Marker:
    """Identifies the element an insertion produces.

    ``attrs`` values are either exact strings or compiled patterns; multi-valued
    attributes such as ``rel`` match when any of their values matches.
    """

    tag: str | None
    attrs: dict[str, str | re.Pattern[str]] = field(default_factory=dict, hash=False)

    def present_in(self, soup: BeautifulSoup) -> bool:
        if self.tag is None:
            return soup.find(attrs=dict(self.attrs)) is not None
        return soup.find(self.tag, attrs=dict(self.attrs)) is not None


@dataclass(frozen=True)
class Insertion:
    """One snippet to place at an insertion point unless its marker exists."""

    key: str
    point: InsertionPoint
    snippet: str
    marker: Marker


class MarkupDocument:
    """An HTML document with tracked, idempotent insertions."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._soup = BeautifulSoup(text, "html.parser")
        self.applied: set[str] = set()

    @classmethod
    def parse(cls, text: str) -> "MarkupDocument":
        return cls(text)

    @property
    def text(self) -> str:
        return self._text

    def has(self, marker: Marker) -> bool:
        """Return ``True`` if an element matching *marker* is in the document."""
        return marker.present_in(self._soup)

    def apply(self, insertion: Insertion) -> bool:
        """Apply *insertion* if its marker is absent.

        Returns:
            ``True`` if the document changed.

        Raises:
            MarkupError: If the insertion point cannot be found.
        """
        if insertion.key in self.applied or self.has(insertion.marker):
            self.applied.add(insertion.key)
            return False

        pattern = _ANCHORS[insertion.point]
        match = pattern.search(self._text)
        if match is None:
            raise MarkupError(
                f"Cannot insert '{insertion.key}': no {insertion.point.value} "
                "insertion point in document"
            )

        if insertion.point in (InsertionPoint.HEAD_OPEN, InsertionPoint.BODY_OPEN):
            at = match.end()
            piece = f"\n  {insertion.snippet}"
        else:
            at = match.start()
            piece = f"  {insertion.snippet}\n"
        self._text = self._text[:at] + piece + self._text[at:]
        self._soup = BeautifulSoup(self._text, "html.parser")
        self.applied.add(insertion.key)
        return True

    def apply_all(self, insertions: Iterable[Insertion]) -> list[str]:
        """Apply every insertion in order; return the keys that changed the text."""
        return [ins.key for ins in insertions if self.apply(ins)]


def apply_insertions(text: str, insertions: Iterable[Insertion]) -> str:
    """Convenience wrapper: parse *text*, apply *insertions*, return the result."""
    document = MarkupDocument.parse(text)
    document.apply_all(insertions)
    return document.text


# ---------------------------------------------------------------------------
# Insertion factories
# ---------------------------------------------------------------------------


def meta(key: str, name: str, content: str, point: InsertionPoint = InsertionPoint.HEAD_CLOSE) -> Insertion:
    return Insertion(
        key=key,
        point=point,
        snippet=f'<meta name="{name}" content="{content}">',
        marker=Marker("meta", {"name": name}),
    )


def link(
    key: str,
    rel: str,
    href: str,
    match_href: bool = True,
) -> Insertion:
    """A ``<link>`` in the head; with ``match_href=False`` any link of that rel counts."""
    attrs: dict[str, str | re.Pattern[str]] = {"rel": rel}
    if match_href:
        attrs["href"] = href
    return Insertion(
        key=key,
        point=InsertionPoint.HEAD_CLOSE,
        snippet=f'<link rel="{rel}" href="{href}">',
        marker=Marker("link", attrs),
    )


def element_with_id(key: str, tag: str, element_id: str) -> Insertion:
    return Insertion(
        key=key,
        point=InsertionPoint.BODY_OPEN,
        snippet=f'<{tag} id="{element_id}"></{tag}>',
        marker=Marker(None, {"id": element_id}),
    )


def module_script(key: str, src: str) -> Insertion:
    """A module script before ``</body>``; any script whose src ends the same way counts."""
    tail = src.lstrip("./")
    return Insertion(
        key=key,
        point=InsertionPoint.BODY_CLOSE,
        snippet=f'<script type="module" src="{src}"></script>',
        marker=Marker("script", {"src": re.compile(re.escape(tail) + r"$")}),
    )
