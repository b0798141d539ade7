"""microlab run orchestrator.

One run creates exactly one micro-site project:

1. Resolve the project identity from ``--name`` (or an interactive prompt).
2. Resolve the GitHub owner (``--owner``, else the ``gh`` login, else a
   placeholder) and derive the project URLs.
3. Create ``<out-dir>/<slug>`` and scaffold it with ``npm create vite``.
4. Install dependencies (best effort).
5. Generate the project tree and patch ``package.json``.
6. Upsert the project into the local and optional engine registries.
7. ``git init`` + first commit, then optionally create and push the remote.

Fatal problems raise :class:`~microlab.errors.ScaffoldError`; everything else
is collected as :class:`~microlab.outcomes.Outcome` values and reported once
in a summary at the end.

Usage::

    microlab --name poster
    microlab --name 3d-cube --template react --three --push
"""

from __future__ import annotations

import asyncio
import re
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.prompt import Prompt

from microlab.config import Addon, Config, load_config
from microlab.errors import CommandError, ScaffoldError
from microlab.outcomes import Outcome, RunSummary, WarningKind
from microlab.registry import RegistryEntry, upsert_registries
from microlab.scaffolder import ProjectGenerator, ProjectUrls, derive_urls, resolve_identity
from microlab.scaffolder.identity import OWNER_PLACEHOLDER, ProjectIdentity
from microlab.scaffolder.manifest import ManifestPatcher
from microlab.utils import (
    command_output,
    console,
    print_error,
    print_note,
    print_panel,
    print_step,
    print_success,
    print_summary_table,
    print_warning,
    relative_to_cwd,
    run_checked,
    try_command,
    utc_timestamp,
)

MIN_NODE_MAJOR = 20

_ADDON_PACKAGES: dict[Addon, str] = {
    Addon.THREE: "three",
    Addon.D3: "d3",
    Addon.CHARTS: "chart.js",
}

_TAILWIND_PLUGINS = ["@tailwindcss/typography", "@tailwindcss/forms", "@tailwindcss/aspect-ratio"]


class Pipeline:
    """Drives one scaffolding run from a resolved :class:`Config`.

    Attributes:
        config: The frozen run configuration.
        summary: Outcomes collected so far.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.summary = RunSummary()
        self.install_failed = False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> RunSummary:
        """Execute the run.

        Raises:
            ScaffoldError: On any fatal problem.  Files written so far stay.
        """
        config = self.config
        features = config.features

        identity = resolve_identity(config.name or self.prompt_name())
        self.summary.slug = identity.slug

        owner = await self.resolve_owner()
        urls = derive_urls(identity, owner, config.proxy_root)
        description = config.description_for(identity.slug)

        generator = ProjectGenerator(
            identity,
            features,
            urls,
            description=description,
            author=config.author_for(owner),
        )
        folder = generator.create_project_dir(config.output_root)
        self.summary.project_path = str(folder)

        print_step(f"Scaffolding Vite in {folder}")
        await run_checked(
            ["npm", "create", "vite@latest", ".", "--", "--template", features.vite_template],
            cwd=folder,
        )

        print_step("Installing deps")
        self.summary.add(await self.install_dependencies(folder))

        print_step("Generating project files")
        written = await generator.generate()
        ManifestPatcher(folder / "package.json").apply(pwa=features.has(Addon.PWA))
        self.summary.add(Outcome.success("files", f"{len(written)} files written, package.json patched"))

        print_step("Updating registries")
        entry = self.registry_entry(identity, urls, description)
        for result in await upsert_registries(entry, config.cwd, config.engine_path):
            self.summary.extend(result.outcomes)

        print_step("Initializing git")
        await run_checked(["git", "init", "-b", "main"], cwd=folder)
        await run_checked(["git", "add", "-A"], cwd=folder)
        await run_checked(["git", "commit", "-m", "init"], cwd=folder)
        self.summary.add(Outcome.success("git", "initialized on main"))

        if config.push:
            self.summary.add(await self.create_remote(identity, folder, owner))

        node_outcome = await self.check_runtime(folder)
        if node_outcome is not None:
            self.summary.add(node_outcome)

        self.report(identity, folder)
        return self.summary

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def prompt_name(self) -> str:
        """Ask for a project name on the terminal; blank if none is given."""
        try:
            return Prompt.ask("Project name", console=console, default="", show_default=False)
        except EOFError:
            return ""

    async def resolve_owner(self) -> str:
        """``--owner``, else the logged-in ``gh`` user, else ``<owner>``."""
        if self.config.features.owner:
            return self.config.features.owner
        if await try_command(["gh", "--version"]):
            login = await command_output(["gh", "api", "user", "-q", ".login"])
            if login:
                return login
        return OWNER_PLACEHOLDER

    def install_commands(self) -> list[list[str]]:
        """npm invocations for the base toolchain, plugins and add-ons."""
        features = self.config.features
        commands = [
            ["npm", "i"],
            ["npm", "i", "-D", "tailwindcss", "postcss", "autoprefixer", "@types/node"],
        ]
        if features.plugins_enabled:
            commands.append(["npm", "i", "-D", *_TAILWIND_PLUGINS])
        for addon, package in _ADDON_PACKAGES.items():
            if features.has(addon):
                commands.append(["npm", "i", package])
        return commands

    async def install_dependencies(self, folder: Path) -> Outcome:
        """Run the install commands; a failure is reported, not raised."""
        for cmd in self.install_commands():
            try:
                await run_checked(cmd, cwd=folder)
            except CommandError as exc:
                self.install_failed = True
                print_warning(f"dependency install failed ({exc}). Continuing to scaffold files.")
                rel = relative_to_cwd(folder, self.config.cwd)
                return Outcome.warning(
                    "install",
                    WarningKind.DEPENDENCY_INSTALL,
                    str(exc),
                    remediation=f"cd {rel} && npm ci (or npm i)",
                )
        return Outcome.success("install", "dependencies installed")

    def registry_entry(
        self, identity: ProjectIdentity, urls: ProjectUrls, description: str
    ) -> RegistryEntry:
        return RegistryEntry(
            slug=identity.slug,
            title=identity.display_title,
            desc=description,
            owner=urls.owner,
            base=urls.pages_base,
            proxy=urls.proxy_base,
            updated=utc_timestamp(),
            tags=self.config.features.registry_tags,
        )

    async def create_remote(self, identity: ProjectIdentity, folder: Path, owner: str) -> Outcome:
        """Create the GitHub repository from *folder* and push ``main``."""
        features = self.config.features
        visibility = f"--{features.visibility}"
        prefix = f"{owner}/" if owner and owner != OWNER_PLACEHOLDER else ""
        repo = f"{prefix}{identity.slug}"

        if not await try_command(["gh", "--version"]):
            message = "GitHub CLI not available; skipped repository creation"
            remediation = f"gh repo create {repo} {visibility} --source={folder} --push"
            print_note(f"{message}. Install GitHub CLI or run:\n  {remediation}")
            return Outcome.warning("remote", WarningKind.REMOTE_CREATE, message, remediation)

        print_step(f"Creating GitHub repo {repo} ({features.visibility})")
        try:
            await run_checked(
                ["gh", "repo", "create", repo, visibility, f"--source={folder}", "--push"],
                cwd=folder,
            )
        except CommandError as exc:
            rel = relative_to_cwd(folder, self.config.cwd)
            remediation = f"cd {rel} && gh repo create {repo} {visibility} --source=. --push"
            print_warning(f"Failed to create via gh. Manual steps:\n  {remediation}")
            return Outcome.warning("remote", WarningKind.REMOTE_CREATE, str(exc), remediation)
        return Outcome.success("remote", f"https://github.com/{repo}")

    async def check_runtime(self, folder: Path) -> Outcome | None:
        """Note when Node.js is older than the version Vite needs."""
        version = await command_output(["node", "--version"])
        if node_major(version) >= MIN_NODE_MAJOR:
            return None
        rel = relative_to_cwd(folder, self.config.cwd)
        message = (
            f"Node.js {version or 'unknown'}; Vite and modern tooling often require "
            f"Node >= {MIN_NODE_MAJOR}"
        )
        remediation = (
            f"Install Node {MIN_NODE_MAJOR}+ (e.g. nvm install {MIN_NODE_MAJOR} && "
            f"nvm use {MIN_NODE_MAJOR}), then in {rel}: npm ci (or npm i) to finish installing."
        )
        print_note(f"{message}.\n- {remediation}")
        return Outcome.warning("node", WarningKind.RUNTIME_VERSION, message, remediation)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def report(self, identity: ProjectIdentity, folder: Path) -> None:
        """Print the outcome table and next steps."""
        print_summary_table(self.summary.as_table(), title=f"microlab: {identity.slug}")

        rel = relative_to_cwd(folder, self.config.cwd)
        lines = ["Next:", f"  cd {rel}", "  npm run dev"]
        if not self.config.push:
            owner = self.config.features.owner
            prefix = f"{owner}/" if owner else ""
            lines += [
                "",
                "Push to GitHub:",
                f"  gh repo create {prefix}{identity.slug} --public --source=. --push",
                "  # In the repo Settings -> Pages -> Source = GitHub Actions",
            ]
        for warning in self.summary.warnings:
            if warning.remediation:
                lines += ["", f"{warning.step}: {warning.remediation}"]
        print_panel("\n".join(lines), title=f"Created micro {identity.slug}", style="green")
        print_success(f"Created micro {identity.slug}")


def node_major(version: str) -> int:
    """``"v20.11.1"`` -> ``20``; ``0`` when the version is unknown."""
    match = re.match(r"v?(\d+)", version.strip())
    return int(match.group(1)) if match else 0


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point for ``microlab`` / ``python -m microlab.pipeline``."""
    config = load_config(sys.argv[1:] if argv is None else argv)
    try:
        asyncio.run(Pipeline(config).run())
    except ScaffoldError as exc:
        print_error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
