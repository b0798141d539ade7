"""Render a registry as a static ``index.html`` page of project cards.

Usage::

    microlab-index                 # reads ./registry.json, writes ./index.html
    microlab-index ~/engine -o site/index.html
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from microlab.scaffolder.templates import TemplateRenderer, write_file
from microlab.utils import parse_timestamp, print_error, print_success, resolve_home

from .store import RegistryCorrupt, RegistryEntry, RegistryStore

_TEMPLATE_DIR = Path(__file__).parent / "templates"
INDEX_FILENAME = "index.html"

_renderer: TemplateRenderer | None = None


def _get_renderer() -> TemplateRenderer:
    global _renderer
    if _renderer is None:
        _renderer = TemplateRenderer(_TEMPLATE_DIR, autoescape=("html.j2",))
    return _renderer


def sort_entries(entries: Sequence[RegistryEntry]) -> list[RegistryEntry]:
    """Newest first; ties keep registry order, unparseable timestamps go last."""
    floor = datetime.min.replace(tzinfo=timezone.utc)

    def key(entry: RegistryEntry) -> tuple[bool, datetime]:
        moment = parse_timestamp(entry.updated)
        return (moment is not None, moment or floor)

    return sorted(entries, key=key, reverse=True)


def format_date(value: str | None) -> str:
    """``2026-10-19T08:00:00Z`` -> ``Oct 19, 2026``; empty when unparseable."""
    moment = parse_timestamp(value)
    if moment is None:
        return ""
    return f"{moment:%b} {moment.day}, {moment.year}"


def _card(entry: RegistryEntry) -> dict[str, Any]:
    return {
        "href": entry.proxy or entry.base or "#",
        "title": entry.title or entry.slug,
        "desc": entry.desc or "",
        "slug": entry.slug,
        "tags": list(entry.tags or []),
        "date": format_date(entry.updated),
    }


def render_index(entries: Sequence[RegistryEntry], heading: str = "Labs") -> str:
    """Render *entries* as a complete HTML document.

    All registry values are HTML-escaped.  An empty sequence renders a
    ``0 projects`` header over an empty grid.
    """
    cards = [_card(e) for e in sort_entries(entries)]
    return _get_renderer().render("index.html.j2", {"heading": heading, "cards": cards})


def write_index(directory: str | Path, output: str | Path | None = None) -> Path:
    """Render the registry kept in *directory* to ``index.html``.

    Raises:
        RegistryCorrupt: If ``registry.json`` cannot be read as a catalog.
    """
    store = RegistryStore(directory)
    entries = store.read()
    out = Path(output) if output else store.directory / INDEX_FILENAME
    write_file(out, render_index(entries))
    return out


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point for ``microlab-index``."""
    parser = argparse.ArgumentParser(
        prog="microlab-index",
        description="Render registry.json as a static index page",
    )
    parser.add_argument(
        "directory", nargs="?", default=".", help="Directory holding registry.json (default: .)"
    )
    parser.add_argument("--output", "-o", default=None, help="Output file (default: <directory>/index.html)")
    args = parser.parse_args(argv)

    directory = resolve_home(args.directory) or Path(".")
    try:
        out = write_index(directory, resolve_home(args.output))
        count = len(RegistryStore(directory).read())
    except (RegistryCorrupt, OSError) as exc:
        print_error(str(exc))
        sys.exit(1)
    print_success(f"Wrote {out} with {count} projects")


if __name__ == "__main__":
    main()
