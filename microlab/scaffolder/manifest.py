"""Patch the ``package.json`` written by ``npm create vite``.

Only the fields this tool owns are touched; everything else the scaffolder
wrote is preserved as-is.  Applying the patch twice gives the same document as
applying it once.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Hashable
from pathlib import Path
from typing import Any

from microlab.errors import IOFailure, ManifestParseError
from microlab.utils import dump_json

DEV_FLAGS = "--strictPort --port 5173"
PREVIEW_SCRIPT = "vite preview --strictPort --port 5173"
POSTBUILD_STEPS: tuple[str, ...] = (
    "cp dist/index.html dist/404.html",
    "cp lab.json dist/lab.json",
    "cp thumbnail.svg dist/thumbnail.svg",
)
PWA_POSTBUILD_STEP = "cp manifest.webmanifest dist/manifest.webmanifest"
KEYWORDS: tuple[str, ...] = ("micro", "labs", "vite", "tailwind")


def postbuild_script(pwa: bool) -> str:
    steps = list(POSTBUILD_STEPS)
    if pwa:
        steps.append(PWA_POSTBUILD_STEP)
    return " && ".join(steps)


def merge_keywords(existing: list[Any], extra: tuple[str, ...]) -> list[Any]:
    """Append *extra* to *existing*, dropping repeated hashable items."""
    seen: set[Any] = set()
    merged = []
    for item in [*existing, *extra]:
        if isinstance(item, Hashable):
            if item in seen:
                continue
            seen.add(item)
        merged.append(item)
    return merged


def patch_manifest(document: dict[str, Any], *, pwa: bool) -> dict[str, Any]:
    """Return a patched copy of *document*.

    * ``scripts.dev`` gets ``--strictPort --port 5173`` appended, once, and
      only if a dev script exists;
    * ``scripts.preview`` is always overwritten;
    * ``scripts.postbuild`` copies the 404 page and metadata into ``dist``
      (plus the web manifest when *pwa*);
    * ``keywords`` gains the fixed keywords, de-duplicated, first occurrence
      wins.  Items that cannot be compared (nested objects) are kept as they
      are, and a non-list value is left untouched.
    """
    patched = copy.deepcopy(document)
    scripts = patched.get("scripts")
    if not isinstance(scripts, dict):
        scripts = {}
    patched["scripts"] = scripts

    dev = scripts.get("dev")
    if isinstance(dev, str) and dev and "--strictPort" not in dev:
        scripts["dev"] = f"{dev} {DEV_FLAGS}"
    scripts["preview"] = PREVIEW_SCRIPT
    scripts["postbuild"] = postbuild_script(pwa)

    existing = patched.get("keywords")
    if existing is None:
        existing = []
    if isinstance(existing, list):
        patched["keywords"] = merge_keywords(existing, KEYWORDS)
    return patched


class ManifestPatcher:
    """Loads, patches and rewrites a ``package.json`` on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        """Read the manifest.

        Raises:
            ManifestParseError: If the file is missing, unreadable, not UTF-8 JSON
                or not an object.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ManifestParseError(self.path, "file not found") from exc
        except UnicodeDecodeError as exc:
            raise ManifestParseError(self.path, "not valid UTF-8") from exc
        except OSError as exc:
            raise ManifestParseError(self.path, exc.strerror or str(exc)) from exc
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(self.path, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
        if not isinstance(data, dict):
            raise ManifestParseError(self.path, "top-level value is not an object")
        return data

    def apply(self, *, pwa: bool) -> dict[str, Any]:
        """Patch the manifest in place and return the new document."""
        patched = patch_manifest(self.load(), pwa=pwa)
        try:
            self.path.write_text(dump_json(patched), encoding="utf-8")
        except OSError as exc:
            raise IOFailure(self.path, exc.strerror or str(exc)) from exc
        return patched
