"""Main scaffolding orchestrator for the project tree.

Takes a :class:`ProjectIdentity`, a :class:`FeatureSet` and the derived
:class:`ProjectUrls` and materializes the Vite + Tailwind micro-site on top of
what ``npm create vite`` left in the project directory: build config, styles,
the entry file and its add-on demo blocks, metadata files and docs.
"""

from __future__ import annotations

import asyncio
import html
import re
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from microlab.config import Addon, FeatureSet
from microlab.errors import AlreadyExistsError, IOFailure
from microlab.utils import dump_json, utc_timestamp

from .identity import ProjectIdentity, ProjectUrls
from .markup import (
    Insertion,
    InsertionPoint,
    MarkupDocument,
    element_with_id,
    link,
    meta,
    module_script,
)
from .templates import TemplateRenderer, write_file


THEME_COLOR = "#0a0a0b"
LAB_VERSION = "0.1.0"

# Template name -> output path for files rendered verbatim from context.
_STATIC_TEMPLATES: list[tuple[str, str]] = [
    ("gitignore.j2", ".gitignore"),
    ("postcss.config.cjs.j2", "postcss.config.cjs"),
    ("tailwind.config.cjs.j2", "tailwind.config.cjs"),
    ("vite.config.ts.j2", "vite.config.ts"),
    ("style.css.j2", "src/style.css"),
]

_DOC_TEMPLATES: list[tuple[str, str]] = [
    ("thumbnail.svg.j2", "thumbnail.svg"),
    ("github/pages.yml.j2", ".github/workflows/pages.yml"),
    ("editorconfig.j2", ".editorconfig"),
    ("README.md.j2", "README.md"),
    ("COMMANDS.md.j2", "COMMANDS.md"),
    ("TEMPLATE_CHECKLIST.md.j2", "TEMPLATE_CHECKLIST.md"),
    ("LICENSE.j2", "LICENSE"),
]

# Add-on -> (template, comment label) for entry-file demo blocks.
_ADDON_BLOCKS: dict[Addon, tuple[str, str]] = {
    Addon.THREE: ("addons/three.ts.j2", "three demo"),
    Addon.D3: ("addons/d3.ts.j2", "d3 demo"),
    Addon.CHARTS: ("addons/charts.ts.j2", "chart.js demo"),
}

_STRICT_MODE_BLOCK = re.compile(r"<(?:React\.)?StrictMode>[\s\S]*</(?:React\.)?StrictMode>")
_REACT_IMPORT = re.compile(r"^import React\b", re.MULTILINE)

MANIFEST_LINK = link("pwa-manifest", "manifest", "./manifest.webmanifest", match_href=False)


@contextmanager
def _io_guard(path: Path) -> Iterator[None]:
    """Re-raise filesystem faults under *path* as :class:`IOFailure`."""
    try:
        yield
    except OSError as exc:
        raise IOFailure(path, exc.strerror or str(exc)) from exc


class ProjectGenerator:
    """Writes and patches the files of one micro-site project.

    Every write below the project root overwrites unconditionally: the tree is
    freshly created by :meth:`create_project_dir`, which is the only place that
    refuses to touch existing files.
    """

    def __init__(
        self,
        identity: ProjectIdentity,
        features: FeatureSet,
        urls: ProjectUrls,
        description: str,
        author: str = "",
        renderer: TemplateRenderer | None = None,
        project_root: Path | None = None,
    ) -> None:
        self.identity = identity
        self.features = features
        self.urls = urls
        self.description = description
        self.author = author or urls.owner
        self.renderer = renderer or TemplateRenderer()
        self.project_root = project_root

    # -- Public API --------------------------------------------------------

    def create_project_dir(self, output_root: Path) -> Path:
        """Create ``<output_root>/<slug>`` and remember it as the project root.

        Raises:
            AlreadyExistsError: If the directory is already there; it is left
                untouched.
            IOFailure: If the directories cannot be created.
        """
        folder = Path(output_root) / self.identity.slug
        with _io_guard(folder):
            Path(output_root).mkdir(parents=True, exist_ok=True)
            if folder.exists():
                raise AlreadyExistsError(folder)
            folder.mkdir()
        self.project_root = folder
        return folder

    async def generate(self) -> list[Path]:
        """Materialize the full project tree.

        Returns:
            Paths written or patched, in write order.

        Raises:
            IOFailure: On any filesystem fault.  Files already written stay.
        """
        root = self._root()
        context = self.build_context()
        written: list[Path] = []

        # 1. Build config and base styles
        for template_name, output_name in _STATIC_TEMPLATES:
            written.append(await self._render(template_name, output_name, context))

        # 2. Markup head/body
        written.append(await self._prepare_markup(context))

        # 3. Entry file and add-on demos
        written.append(await self._write_entry(context))
        for addon in self.features.entry_addons:
            written.append(await self.append_entry_script(addon, context))

        # 4. Web app manifest
        if self.features.has(Addon.PWA):
            written.append(await self.write_static_file(
                "manifest.webmanifest", dump_json(self.webmanifest())
            ))
            await self.mutate_markup("index.html", [MANIFEST_LINK])

        # 5. Metadata
        written.append(await self.write_static_file("lab.json", dump_json(self.lab_metadata())))

        # 6. Thumbnail, workflow, docs
        for template_name, output_name in _DOC_TEMPLATES:
            written.append(await self._render(template_name, output_name, context))

        # 7. Tooling config
        if not (root / "tsconfig.json").exists():
            written.append(await self.write_static_file("tsconfig.json", dump_json(_TSCONFIG)))
        written.append(await self.write_static_file(".prettierrc", dump_json(_PRETTIERRC)))

        return written

    async def write_static_file(self, relative_path: str, content: str) -> Path:
        """Write *content* to *relative_path* under the project root."""
        out = self._root() / relative_path
        with _io_guard(out):
            await asyncio.to_thread(write_file, out, content)
        return out

    async def mutate_markup(self, relative_path: str, insertions: list[Insertion]) -> list[str]:
        """Apply *insertions* to an existing markup file.

        Returns:
            Keys of the insertions that changed the file.  Running the same
            insertions again returns an empty list and leaves the file as is.
        """
        path = self._root() / relative_path
        with _io_guard(path):
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        document = MarkupDocument.parse(text)
        changed = document.apply_all(insertions)
        if changed:
            await self.write_static_file(relative_path, document.text)
        return changed

    async def append_entry_script(self, addon: Addon, context: dict[str, Any] | None = None) -> Path:
        """Append the demo block of *addon* to the entry file.

        Each block is self-contained; a run appends each enabled add-on once.
        """
        template_name, label = _ADDON_BLOCKS[addon]
        snippet = self.renderer.render(template_name, context or self.build_context())
        block = f"\n// {label}\n{snippet.rstrip()}\n"
        path = self._root() / self.entry_path
        with _io_guard(path):
            await asyncio.to_thread(_append_text, path, block)
        return path

    # -- Context building --------------------------------------------------

    @property
    def entry_path(self) -> str:
        return "src/main.tsx" if self.features.use_react else "src/main.ts"

    def build_context(self) -> dict[str, Any]:
        """Build the Jinja2 template context."""
        return {
            "project_name": self.identity.raw_name,
            "slug": self.identity.slug,
            "title": self.identity.display_title,
            "description": self.description,
            "owner": self.urls.owner,
            "author": self.author,
            "pages_base": self.urls.pages_base,
            "proxy_base": self.urls.proxy_base,
            "repo_url": self.urls.repo,
            "use_react": self.features.use_react,
            "plugins_enabled": self.features.plugins_enabled,
            "addons": sorted(a.value for a in self.features.addons),
            "pwa": self.features.has(Addon.PWA),
            "visibility": self.features.visibility,
            "year": datetime.now(timezone.utc).year,
        }

    def markup_insertions(self) -> list[Insertion]:
        """Head/body insertions for ``index.html``, in application order."""
        description = html.escape(self.description, quote=True)
        insertions = [
            meta(
                "viewport",
                "viewport",
                "width=device-width, initial-scale=1",
                point=InsertionPoint.HEAD_OPEN,
            ),
            meta("description", "description", description),
            meta("theme-color", "theme-color", THEME_COLOR),
            link("canonical", "canonical", f"{self.urls.proxy_base}/", match_href=False),
            link("icon", "icon", "./thumbnail.svg"),
            link("stylesheet", "stylesheet", "./src/style.css"),
        ]
        if not self.features.use_react:
            insertions.append(element_with_id("app-root", "div", "app"))
            insertions.append(module_script("entry-script", "./src/main.ts"))
        return insertions

    def lab_metadata(self) -> dict[str, Any]:
        """Content of ``lab.json``."""
        return {
            "slug": self.identity.slug,
            "title": self.identity.raw_name,
            "summary": self.description,
            "version": LAB_VERSION,
            "author": self.author,
            "tags": [],
            "thumbnail": "./thumbnail.svg",
            "entry": "./index.html",
            "repo": self.urls.repo,
            "updated": utc_timestamp(),
        }

    def webmanifest(self) -> dict[str, Any]:
        """Content of ``manifest.webmanifest``."""
        return {
            "name": self.identity.raw_name,
            "short_name": self.identity.slug,
            "description": self.description,
            "start_url": ".",
            "display": "standalone",
            "background_color": THEME_COLOR,
            "theme_color": THEME_COLOR,
            "icons": [{"src": "./thumbnail.svg", "sizes": "512x512", "type": "image/svg+xml"}],
        }

    # -- Internals ---------------------------------------------------------

    def _root(self) -> Path:
        if self.project_root is None:
            raise RuntimeError("create_project_dir() must run before writing files")
        return self.project_root

    async def _render(self, template_name: str, output_name: str, context: dict[str, Any]) -> Path:
        out = self._root() / output_name
        with _io_guard(out):
            return await self.renderer.render_to_file(template_name, out, context)

    async def _prepare_markup(self, context: dict[str, Any]) -> Path:
        """Seed ``index.html`` if the scaffolder left none, then patch it."""
        path = self._root() / "index.html"
        if not path.exists():
            await self._render("index.html.j2", "index.html", context)
        await self.mutate_markup("index.html", self.markup_insertions())
        return path

    async def _write_entry(self, context: dict[str, Any]) -> Path:
        if not self.features.use_react:
            return await self._render("entry/main.ts.j2", "src/main.ts", context)

        block = self.renderer.render("entry/react_block.tsx.j2", context).rstrip()
        path = self._root() / "src" / "main.tsx"
        if not path.exists():
            return await self._render("entry/main.tsx.j2", "src/main.tsx", {**context, "react_block": block})

        with _io_guard(path):
            source = await asyncio.to_thread(path.read_text, encoding="utf-8")
        if "./style.css" not in source:
            source = 'import "./style.css";\n' + source
        source, replaced = _STRICT_MODE_BLOCK.subn(lambda _: block, source, count=1)
        if replaced and not _REACT_IMPORT.search(source):
            source = 'import React from "react";\n' + source
        return await self.write_static_file("src/main.tsx", source)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_TSCONFIG: dict[str, Any] = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "ESNext",
        "moduleResolution": "Bundler",
        "strict": True,
        "skipLibCheck": True,
        "esModuleInterop": True,
        "jsx": "react-jsx",
    },
    "include": ["src"],
}

_PRETTIERRC: dict[str, Any] = {"semi": True, "singleQuote": False, "printWidth": 100}


def _append_text(path: Path, text: str) -> None:
    with path.open("a", encoding="utf-8") as fh:
        fh.write(text)
