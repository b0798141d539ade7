"""microlab configuration.

Typed, immutable configuration for a scaffolding run.  Settings are pydantic
v2 models validated at construction time and frozen afterwards: a run
resolves its :class:`Config` exactly once, from environment defaults and the
command line, and never mutates it.

Command-line handling is a two-stage pure pipeline::

    argv -> expand_presets(argv) -> parse_args(...) -> Config
"""

from __future__ import annotations

import argparse
import os
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from microlab.utils import resolve_home


class Addon(str, Enum):
    """Optional feature blocks that can be added to a project."""

    THREE = "three"
    D3 = "d3"
    CHARTS = "charts"
    PWA = "pwa"


DEFAULT_PROXY_ROOT = "https://velcrafting.com/labs"

# Order in which demo blocks are appended to the entry file.
ENTRY_ADDONS: tuple[Addon, ...] = (Addon.THREE, Addon.D3, Addon.CHARTS)

# Preset name -> (flags, key/value pairs) it stands for.
PRESETS: dict[str, tuple[tuple[str, ...], tuple[tuple[str, str], ...]]] = {
    "react-tool": ((), (("template", "react"),)),
    "react-three": (("three",), (("template", "react"),)),
    "vanilla-tool": ((), (("template", "vanilla"),)),
}

# Long option -> short alias, for options that have one.
_SHORT_ALIASES: dict[str, str] = {
    "name": "n",
    "template": "t",
    "desc": "d",
    "preset": "p",
}


class FeatureSet(BaseModel):
    """What to generate: template kind, add-ons, visibility and destination."""

    model_config = ConfigDict(frozen=True)

    template: Literal["vanilla", "react"] = Field(default="vanilla")
    addons: frozenset[Addon] = Field(default_factory=frozenset)
    plugins_enabled: bool = Field(default=True, description="Tailwind style plugins")
    visibility: Literal["public", "private"] = Field(default="public")
    output_dir: Path = Field(default=Path("micros"))
    owner: str | None = Field(default=None, description="GitHub user or org")
    tags: tuple[str, ...] = Field(default=())

    @property
    def use_react(self) -> bool:
        return self.template == "react"

    @property
    def vite_template(self) -> str:
        """Template id passed to ``npm create vite``."""
        return "react-ts" if self.use_react else "vanilla-ts"

    def has(self, addon: Addon) -> bool:
        return addon in self.addons

    @property
    def entry_addons(self) -> list[Addon]:
        """Enabled add-ons that contribute a block to the entry file, in order."""
        return [a for a in ENTRY_ADDONS if a in self.addons]

    @property
    def registry_tags(self) -> list[str]:
        """Tags recorded in the registry: explicit ones or a template default."""
        if self.tags:
            return list(self.tags)
        return ["react", "tailwind"] if self.use_react else ["vanilla", "tailwind"]


class Config(BaseModel):
    """Global configuration for one scaffolding run."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="", description="Free-form project name")
    description: str = Field(default="", description="Empty means 'Tiny demo <slug>'")
    push: bool = Field(default=False, description="Create the GitHub repo and push")
    engine_path: Path | None = Field(default=None, description="Secondary registry directory")
    proxy_root: str = Field(default=DEFAULT_PROXY_ROOT)
    author: str = Field(default="", description="lab.json / LICENSE author; defaults to owner")
    cwd: Path = Field(default_factory=Path.cwd, description="Primary registry directory")
    features: FeatureSet = Field(default_factory=FeatureSet)

    def description_for(self, slug: str) -> str:
        return self.description or f"Tiny demo {slug}"

    def author_for(self, owner: str) -> str:
        return self.author or self.features.owner or owner

    @property
    def output_root(self) -> Path:
        """Absolute directory under which project folders are created."""
        out = self.features.output_dir
        return out if out.is_absolute() else self.cwd / out


# ---------------------------------------------------------------------------
# Stage 1: preset expansion
# ---------------------------------------------------------------------------


def _has_option(args: Sequence[str], name: str) -> bool:
    names = {f"--{name}"}
    if name in _SHORT_ALIASES:
        names.add(f"-{_SHORT_ALIASES[name]}")
    return any(a in names or a.startswith(f"--{name}=") for a in args)


def _option_value(args: Sequence[str], name: str) -> str:
    names = {f"--{name}"}
    if name in _SHORT_ALIASES:
        names.add(f"-{_SHORT_ALIASES[name]}")
    for i, arg in enumerate(args):
        if arg.startswith(f"--{name}="):
            return arg.split("=", 1)[1]
        if arg in names and i + 1 < len(args):
            return args[i + 1]
    return ""


def expand_presets(argv: Sequence[str]) -> tuple[str, ...]:
    """Return *argv* with any ``--preset`` replaced by the flags it implies.

    Flags and options already present are left alone, so expansion is
    idempotent.  Unknown presets expand to nothing.
    """
    args = tuple(argv)
    preset = _option_value(args, "preset").lower()
    if preset not in PRESETS:
        return args

    flags, pairs = PRESETS[preset]
    extra: list[str] = []
    for key, value in pairs:
        if not _has_option(args, key):
            extra.extend([f"--{key}", value])
    for flag in flags:
        if not _has_option(args, flag):
            extra.append(f"--{flag}")
    return args + tuple(extra)


# ---------------------------------------------------------------------------
# Stage 2: parsing
# ---------------------------------------------------------------------------


def _normalize_template(value: str) -> str:
    return "react" if value.strip().lower().startswith("react") else "vanilla"


def _split_tags(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(t.strip() for t in value.split(",") if t.strip())


def build_parser() -> argparse.ArgumentParser:
    """Create the ``microlab`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="microlab",
        description="Scaffold a Vite + Tailwind micro-site and register it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  microlab --name poster\n"
            "  microlab --name 3d-cube --template react --three --push\n"
            "  microlab --name viz --d3 --owner velcrafting --private --push\n"
            "  microlab -n widget -p react-three\n"
        ),
    )
    parser.add_argument("--name", "-n", default="", help="Project name (prompted if omitted)")
    parser.add_argument(
        "--template", "-t",
        default="vanilla",
        type=_normalize_template,
        help="vanilla (default) or react",
    )
    parser.add_argument("--desc", "-d", default="", help="Short description")
    parser.add_argument("--three", action="store_true", help="Add a three.js demo")
    parser.add_argument("--d3", action="store_true", help="Add a d3 demo")
    parser.add_argument("--charts", action="store_true", help="Add a chart.js demo")
    parser.add_argument("--pwa", action="store_true", help="Add a web app manifest")
    parser.add_argument(
        "--no-plugins", action="store_true", help="Skip the Tailwind typography/forms/aspect-ratio plugins"
    )
    parser.add_argument("--push", action="store_true", help="Create the GitHub repo and push")
    parser.add_argument("--owner", default=None, help="GitHub user or organisation")
    parser.add_argument("--private", action="store_true", help="Create a private repository")
    parser.add_argument("--out-dir", default=None, help="Parent directory (default: micros)")
    parser.add_argument("--engine-path", default=None, help="Secondary registry directory")
    parser.add_argument("--tags", default=None, help="Comma-separated registry tags")
    parser.add_argument(
        "--preset", "-p",
        default=None,
        help="react-tool, react-three or vanilla-tool",
    )
    return parser


def parse_args(
    argv: Sequence[str],
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> Config:
    """Turn an already preset-expanded argument list into a :class:`Config`.

    Recognised environment variables (all optional, flags win):
        MICROLAB_OWNER, MICROLAB_OUT_DIR, MICROLAB_ENGINE_PATH,
        MICROLAB_PROXY_ROOT, MICROLAB_AUTHOR.
    """
    env = os.environ if env is None else env
    args = build_parser().parse_args(list(argv))

    addons = {
        addon
        for addon, enabled in (
            (Addon.THREE, args.three),
            (Addon.D3, args.d3),
            (Addon.CHARTS, args.charts),
            (Addon.PWA, args.pwa),
        )
        if enabled
    }

    features = FeatureSet(
        template=args.template,
        addons=frozenset(addons),
        plugins_enabled=not args.no_plugins,
        visibility="private" if args.private else "public",
        output_dir=Path(args.out_dir or env.get("MICROLAB_OUT_DIR") or "micros"),
        owner=args.owner or env.get("MICROLAB_OWNER") or None,
        tags=_split_tags(args.tags),
    )

    return Config(
        name=args.name,
        description=args.desc,
        push=args.push,
        engine_path=resolve_home(args.engine_path or env.get("MICROLAB_ENGINE_PATH")),
        proxy_root=env.get("MICROLAB_PROXY_ROOT") or DEFAULT_PROXY_ROOT,
        author=env.get("MICROLAB_AUTHOR", ""),
        cwd=cwd or Path.cwd(),
        features=features,
    )


def load_config(
    argv: Sequence[str],
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> Config:
    """Expand presets and parse *argv* in one call."""
    return parse_args(expand_presets(argv), env=env, cwd=cwd)
