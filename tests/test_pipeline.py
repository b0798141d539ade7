"""Unit tests for the run orchestrator (microlab.pipeline).

External commands are mocked; ``npm create vite`` is simulated by writing the
files the real scaffolder leaves behind.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import issued, write_vite_output
from microlab.config import Addon, Config, FeatureSet
from microlab.errors import AlreadyExistsError, CommandError, InvalidNameError
from microlab.outcomes import WarningKind
from microlab.pipeline import Pipeline, main, node_major
from microlab.registry.store import REGISTRY_FILENAME, RegistryStore

pytestmark = pytest.mark.unit


def _vite(fail_on: tuple[str, ...] | None = None):
    """``run_checked`` stand-in: scaffolds on ``npm create``, optionally fails a command."""

    async def side_effect(cmd, cwd=None):
        if fail_on is not None and tuple(cmd[: len(fail_on)]) == fail_on:
            raise CommandError(f"Command failed (exit 1): {' '.join(cmd)}", command=" ".join(cmd), returncode=1)
        if cmd[:3] == ["npm", "create", "vite@latest"]:
            write_vite_output(Path(cwd), "react" if cmd[-1] == "react-ts" else "vanilla")

    return side_effect


def _config(tmp_path: Path, name: str = "poster", push: bool = False, **features) -> Config:
    features.setdefault("owner", "velcrafting")
    return Config(name=name, push=push, cwd=tmp_path, features=FeatureSet(**features))


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestRun:
    async def test_vanilla_run(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        summary = await Pipeline(_config(tmp_path)).run()

        folder = tmp_path / "micros" / "poster"
        assert summary.slug == "poster"
        assert summary.project_path == str(folder)
        assert summary.warnings == []
        assert issued(mock_commands["run_checked"]) == [
            ["npm", "create", "vite@latest", ".", "--", "--template", "vanilla-ts"],
            ["npm", "i"],
            ["npm", "i", "-D", "tailwindcss", "postcss", "autoprefixer", "@types/node"],
            ["npm", "i", "-D", "@tailwindcss/typography", "@tailwindcss/forms", "@tailwindcss/aspect-ratio"],
            ["git", "init", "-b", "main"],
            ["git", "add", "-A"],
            ["git", "commit", "-m", "init"],
        ]
        assert all(c.kwargs["cwd"] == folder for c in mock_commands["run_checked"].call_args_list)

    async def test_files_and_manifest(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        await Pipeline(_config(tmp_path)).run()
        folder = tmp_path / "micros" / "poster"
        assert (folder / "lab.json").exists()
        package = json.loads((folder / "package.json").read_text(encoding="utf-8"))
        assert package["scripts"]["dev"] == "vite --strictPort --port 5173"
        assert "manifest.webmanifest" not in package["scripts"]["postbuild"]

    async def test_registry_entry(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        await Pipeline(_config(tmp_path, name="My Poster", tags=("print",))).run()
        (entry,) = RegistryStore(tmp_path).read()
        assert entry.slug == "my-poster"
        assert entry.title == "My Poster"
        assert entry.desc == "Tiny demo my-poster"
        assert entry.owner == "velcrafting"
        assert entry.base == "https://velcrafting.github.io/my-poster"
        assert entry.proxy == "https://velcrafting.com/labs/my-poster"
        assert entry.tags == ["print"]
        assert list(json.loads((tmp_path / REGISTRY_FILENAME).read_text(encoding="utf-8"))[0]) == [
            "slug", "title", "desc", "owner", "base", "proxy", "updated", "tags",
        ]

    async def test_engine_registry(self, tmp_path: Path, mock_commands):
        engine = tmp_path / "engine"
        engine.mkdir()
        mock_commands["run_checked"].side_effect = _vite()
        config = Config(name="poster", cwd=tmp_path, engine_path=engine, features=FeatureSet(owner="o"))
        await Pipeline(config).run()
        assert len(RegistryStore(engine).read()) == 1
        assert len(RegistryStore(tmp_path).read()) == 1

    async def test_addon_installs(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        config = _config(
            tmp_path,
            template="react",
            plugins_enabled=False,
            addons=frozenset({Addon.CHARTS, Addon.THREE, Addon.D3}),
        )
        await Pipeline(config).run()
        commands = issued(mock_commands["run_checked"])
        assert commands[0][-1] == "react-ts"
        npm = [c for c in commands if c[:2] == ["npm", "i"]]
        assert npm == [
            ["npm", "i"],
            ["npm", "i", "-D", "tailwindcss", "postcss", "autoprefixer", "@types/node"],
            ["npm", "i", "three"],
            ["npm", "i", "d3"],
            ["npm", "i", "chart.js"],
        ]


# ---------------------------------------------------------------------------
# Owner resolution and name prompt
# ---------------------------------------------------------------------------


class TestOwner:
    async def test_flag_wins(self, tmp_path: Path, mock_commands):
        assert await Pipeline(_config(tmp_path, owner="org")).resolve_owner() == "org"
        mock_commands["try_command"].assert_not_called()

    async def test_gh_login(self, tmp_path: Path, mock_commands):
        assert await Pipeline(_config(tmp_path, owner=None)).resolve_owner() == "octocat"
        assert issued(mock_commands["command_output"]) == [["gh", "api", "user", "-q", ".login"]]

    async def test_placeholder_without_gh(self, tmp_path: Path, mock_commands):
        mock_commands["try_command"].return_value = False
        assert await Pipeline(_config(tmp_path, owner=None)).resolve_owner() == "<owner>"
        mock_commands["command_output"].assert_not_called()


class TestNamePrompt:
    async def test_prompted_when_missing(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        with patch("microlab.pipeline.Prompt.ask", return_value="Prompted Name") as ask:
            summary = await Pipeline(_config(tmp_path, name="")).run()
        ask.assert_called_once()
        assert summary.slug == "prompted-name"

    async def test_blank_answer_is_fatal(self, tmp_path: Path, mock_commands):
        with patch("microlab.pipeline.Prompt.ask", return_value="   "):
            with pytest.raises(InvalidNameError, match="Name is required"):
                await Pipeline(_config(tmp_path, name="")).run()
        mock_commands["run_checked"].assert_not_called()

    async def test_closed_stdin(self, tmp_path: Path, mock_commands):
        with patch("microlab.pipeline.Prompt.ask", side_effect=EOFError):
            assert Pipeline(_config(tmp_path, name="")).prompt_name() == ""


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFatal:
    async def test_existing_folder(self, tmp_path: Path, mock_commands):
        (tmp_path / "micros" / "poster").mkdir(parents=True)
        with pytest.raises(AlreadyExistsError):
            await Pipeline(_config(tmp_path)).run()
        mock_commands["run_checked"].assert_not_called()
        assert not (tmp_path / REGISTRY_FILENAME).exists()

    async def test_scaffolder_failure(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite(fail_on=("npm", "create"))
        with pytest.raises(CommandError):
            await Pipeline(_config(tmp_path)).run()
        assert not (tmp_path / REGISTRY_FILENAME).exists()

    async def test_git_failure(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite(fail_on=("git", "commit"))
        with pytest.raises(CommandError):
            await Pipeline(_config(tmp_path)).run()
        # The registry was already updated; no rollback.
        assert (tmp_path / REGISTRY_FILENAME).exists()


class TestWarnings:
    async def test_install_failure_continues(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite(fail_on=("npm", "i", "-D"))
        pipeline = Pipeline(_config(tmp_path))
        summary = await pipeline.run()
        assert pipeline.install_failed is True
        (warning,) = summary.warnings
        assert warning.kind == WarningKind.DEPENDENCY_INSTALL
        assert warning.remediation == "cd micros/poster && npm ci (or npm i)"
        commands = issued(mock_commands["run_checked"])
        # The plugin install after the failing command is not attempted.
        assert ["npm", "i", "-D", "@tailwindcss/typography", "@tailwindcss/forms", "@tailwindcss/aspect-ratio"] not in commands
        assert (tmp_path / "micros" / "poster" / "lab.json").exists()
        assert ["git", "commit", "-m", "init"] in commands

    async def test_old_node(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()

        async def old_node(cmd, cwd=None):
            return "v18.19.0" if cmd[0] == "node" else ""

        mock_commands["command_output"].side_effect = old_node
        summary = await Pipeline(_config(tmp_path)).run()
        assert summary.has(WarningKind.RUNTIME_VERSION)
        assert "nvm install 20" in summary.warnings[0].remediation

    async def test_registry_commit_failure(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        mock_commands["registry_commit"].return_value = False
        summary = await Pipeline(_config(tmp_path)).run()
        assert [w.kind for w in summary.warnings] == [WarningKind.COMMIT_FAILURE]
        assert len(RegistryStore(tmp_path).read()) == 1


# ---------------------------------------------------------------------------
# Remote creation
# ---------------------------------------------------------------------------


class TestPush:
    async def test_creates_repo(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        config = _config(tmp_path, push=True, visibility="private")
        summary = await Pipeline(config).run()
        folder = tmp_path / "micros" / "poster"
        assert issued(mock_commands["run_checked"])[-1] == [
            "gh", "repo", "create", "velcrafting/poster", "--private", f"--source={folder}", "--push",
        ]
        assert summary.warnings == []

    async def test_placeholder_owner_not_used(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        mock_commands["command_output"].side_effect = None
        mock_commands["command_output"].return_value = ""
        await Pipeline(_config(tmp_path, push=True, owner=None)).run()
        create = issued(mock_commands["run_checked"])[-1]
        assert create[:4] == ["gh", "repo", "create", "poster"]
        assert create[4] == "--public"

    async def test_gh_missing(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite()
        mock_commands["try_command"].return_value = False
        summary = await Pipeline(_config(tmp_path, push=True)).run()
        (warning,) = summary.warnings
        assert warning.kind == WarningKind.REMOTE_CREATE
        assert warning.remediation.startswith("gh repo create velcrafting/poster --public --source=")
        assert not any(c[:2] == ["gh", "repo"] for c in issued(mock_commands["run_checked"]))

    async def test_gh_create_fails(self, tmp_path: Path, mock_commands):
        mock_commands["run_checked"].side_effect = _vite(fail_on=("gh", "repo", "create"))
        summary = await Pipeline(_config(tmp_path, push=True)).run()
        (warning,) = summary.warnings
        assert warning.kind == WarningKind.REMOTE_CREATE
        assert warning.remediation == "cd micros/poster && gh repo create velcrafting/poster --public --source=. --push"


# ---------------------------------------------------------------------------
# Helpers and CLI
# ---------------------------------------------------------------------------


class TestNodeMajor:
    @pytest.mark.parametrize(
        "version, expected",
        [("v20.11.1", 20), ("18.0.0", 18), (" v22.1.0\n", 22), ("", 0), ("node: not found", 0)],
    )
    def test_parse(self, version: str, expected: int):
        assert node_major(version) == expected


class TestMain:
    def test_invalid_name_exits_1(self, capsys: pytest.CaptureFixture[str]):
        with pytest.raises(SystemExit) as exc_info:
            main(["--name", "!!!"])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert err.startswith("Error:")
        assert len(err.strip().splitlines()) == 1

    def test_success(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, mock_commands):
        monkeypatch.chdir(tmp_path)
        mock_commands["run_checked"].side_effect = _vite()
        main(["-n", "cube", "-p", "react-three", "--owner", "velcrafting"])
        source = (tmp_path / "micros" / "cube" / "src" / "main.tsx").read_text(encoding="utf-8")
        assert "// three demo" in source
