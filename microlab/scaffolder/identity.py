"""Project identity: slug, display title, and the URLs derived from them."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

from microlab.config import DEFAULT_PROXY_ROOT
from microlab.errors import InvalidNameError

OWNER_PLACEHOLDER = "<owner>"


class ProjectIdentity(BaseModel):
    """Canonical names for one scaffolding run."""

    model_config = ConfigDict(frozen=True)

    raw_name: str = Field(..., description="Name exactly as supplied by the user")
    slug: str = Field(..., description="Directory name and registry key")
    display_title: str = Field(..., description="Human-readable title")


class ProjectUrls(BaseModel):
    """Where a generated project is expected to be reachable."""

    model_config = ConfigDict(frozen=True)

    owner: str
    pages_base: str = Field(..., description="Direct GitHub Pages URL")
    proxy_base: str = Field(..., description="Reverse-proxied canonical URL")
    repo: str = Field(..., description="Repository URL")


def slugify(text: str) -> str:
    """Convert text to a URL/filename-safe slug (hyphenated).

    ``slugify(slugify(x)) == slugify(x)`` for every input.
    """
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower().strip())
    return slug.strip("-")


def display_title(text: str) -> str:
    """Turn ``my-cool_app`` into ``My Cool App``.

    Only the first letter of each word is touched, so ``3d Cube`` stays as is.
    """
    spaced = re.sub(r"[-_]+", " ", text).strip()
    words = re.sub(r"\s+", " ", spaced).split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


def resolve_identity(raw_name: str) -> ProjectIdentity:
    """Derive the :class:`ProjectIdentity` for *raw_name*.

    Raises:
        InvalidNameError: If the name is blank or has no alphanumerics.
    """
    if not raw_name or not raw_name.strip():
        raise InvalidNameError(raw_name or "")
    slug = slugify(raw_name)
    if not slug:
        raise InvalidNameError(raw_name)
    return ProjectIdentity(
        raw_name=raw_name,
        slug=slug,
        display_title=display_title(raw_name) or slug,
    )


def derive_urls(
    identity: ProjectIdentity,
    owner: str | None,
    proxy_root: str = DEFAULT_PROXY_ROOT,
) -> ProjectUrls:
    """Build the pages, proxy and repository URLs for *identity*."""
    owner = owner or OWNER_PLACEHOLDER
    slug = identity.slug
    return ProjectUrls(
        owner=owner,
        pages_base=f"https://{owner}.github.io/{slug}",
        proxy_base=f"{proxy_root.rstrip('/')}/{slug}",
        repo=f"https://github.com/{owner}/{slug}",
    )
