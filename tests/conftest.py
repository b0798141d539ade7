"""Shared pytest fixtures for the microlab test suite.

Provides reusable fixtures for:
- Project directories as ``npm create vite`` leaves them (react-ts / vanilla-ts)
- Identities, feature sets and generators built from them
- Registry directories and sample entries
- Mocked external commands (npm, git, gh, node)
"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from microlab.config import Addon, FeatureSet
from microlab.registry import RegistryEntry
from microlab.scaffolder import ProjectGenerator, derive_urls, resolve_identity


# ---------------------------------------------------------------------------
# Scaffolder output as Vite writes it
# ---------------------------------------------------------------------------

VITE_REACT_INDEX = textwrap.dedent("""\
    <!doctype html>
    <html lang="en">
      <head>
        <meta charset="UTF-8" />
        <link rel="icon" type="image/svg+xml" href="/vite.svg" />
        <meta name="viewport" content="width=device-width, initial-scale=1.0" />
        <title>Vite + React + TS</title>
      </head>
      <body>
        <div id="root"></div>
        <script type="module" src="/src/main.tsx"></script>
      </body>
    </html>
""")

VITE_VANILLA_INDEX = textwrap.dedent("""\
    <!doctype html>
    <html lang="en">
      <head>
        <meta charset="UTF-8" />
        <link rel="icon" type="image/svg+xml" href="/vite.svg" />
        <meta name="viewport" content="width=device-width, initial-scale=1.0" />
        <title>Vite + TS</title>
      </head>
      <body>
        <div id="app"></div>
        <script type="module" src="/src/main.ts"></script>
      </body>
    </html>
""")

VITE_REACT_MAIN = textwrap.dedent("""\
    import { StrictMode } from 'react'
    import { createRoot } from 'react-dom/client'
    import './index.css'
    import App from './App.tsx'

    createRoot(document.getElementById('root')!).render(
      <StrictMode>
        <App />
      </StrictMode>,
    )
""")

VITE_PACKAGE_JSON: dict[str, Any] = {
    "name": "scaffolded",
    "private": True,
    "version": "0.0.0",
    "type": "module",
    "scripts": {
        "dev": "vite",
        "build": "tsc -b && vite build",
        "lint": "eslint .",
        "preview": "vite preview",
    },
    "devDependencies": {"typescript": "~5.6.2", "vite": "^6.0.1"},
}


def write_vite_output(folder: Path, template: str = "react") -> Path:
    """Populate *folder* with the files ``npm create vite`` would leave."""
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "src").mkdir(exist_ok=True)
    if template == "react":
        (folder / "index.html").write_text(VITE_REACT_INDEX, encoding="utf-8")
        (folder / "src" / "main.tsx").write_text(VITE_REACT_MAIN, encoding="utf-8")
    else:
        (folder / "index.html").write_text(VITE_VANILLA_INDEX, encoding="utf-8")
        (folder / "src" / "main.ts").write_text("console.log('vite')\n", encoding="utf-8")
    (folder / "tsconfig.json").write_text('{"files": []}\n', encoding="utf-8")
    (folder / "package.json").write_text(json.dumps(VITE_PACKAGE_JSON, indent=2), encoding="utf-8")
    return folder


@pytest.fixture
def vite_react_project(tmp_path: Path) -> Path:
    """A react-ts project directory straight out of the Vite scaffolder."""
    return write_vite_output(tmp_path / "micros" / "3d-cube", "react")


@pytest.fixture
def vite_vanilla_project(tmp_path: Path) -> Path:
    """A vanilla-ts project directory straight out of the Vite scaffolder."""
    return write_vite_output(tmp_path / "micros" / "poster", "vanilla")


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def make_generator(
    name: str,
    features: FeatureSet,
    project_root: Path | None = None,
    owner: str = "velcrafting",
    description: str = "",
) -> ProjectGenerator:
    identity = resolve_identity(name)
    return ProjectGenerator(
        identity,
        features,
        derive_urls(identity, owner),
        description=description or f"Tiny demo {identity.slug}",
        project_root=project_root,
    )


@pytest.fixture
def react_three_features() -> FeatureSet:
    return FeatureSet(template="react", addons=frozenset({Addon.THREE}))


@pytest.fixture
def vanilla_features() -> FeatureSet:
    return FeatureSet(template="vanilla")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_entry() -> RegistryEntry:
    return RegistryEntry(
        slug="3d-cube",
        title="3d Cube",
        desc="A spinning cube",
        owner="velcrafting",
        base="https://velcrafting.github.io/3d-cube",
        proxy="https://velcrafting.com/labs/3d-cube",
        updated="2026-10-19T08:00:00.000000Z",
        tags=["react", "tailwind"],
    )


@pytest.fixture
def registry_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "registry-home"
    directory.mkdir()
    return directory


# ---------------------------------------------------------------------------
# External commands
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_commands():
    """Patch every external command a run issues.

    ``run_checked`` succeeds and records its calls, ``try_command`` reports
    success, ``command_output`` answers ``gh api user`` with ``octocat`` and
    ``node --version`` with ``v20.11.1``.  Adjust the mocks in a test to
    simulate failures::

        def test_something(mock_commands):
            mock_commands["run_checked"].side_effect = CommandError("boom")
    """

    async def fake_output(cmd, cwd=None):
        if cmd[:2] == ["gh", "api"]:
            return "octocat"
        if cmd[:2] == ["node", "--version"]:
            return "v20.11.1"
        return ""

    run_checked = AsyncMock(return_value=None)
    try_command = AsyncMock(return_value=True)
    command_output = AsyncMock(side_effect=fake_output)

    with (
        patch("microlab.pipeline.run_checked", run_checked),
        patch("microlab.pipeline.try_command", try_command),
        patch("microlab.pipeline.command_output", command_output),
        patch("microlab.registry.store.try_command", AsyncMock(return_value=True)) as store_try,
    ):
        yield {
            "run_checked": run_checked,
            "try_command": try_command,
            "command_output": command_output,
            "registry_commit": store_try,
        }


def issued(mock: AsyncMock) -> list[list[str]]:
    """Command argument lists a mocked command helper was called with."""
    return [c.args[0] for c in mock.call_args_list]
