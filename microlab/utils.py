"""Shared utility functions for microlab.

Provides async command execution in the two modes a run needs (inherit output
and fail hard, or capture output and report a boolean), JSON formatting, path
helpers, and Rich-based console reporting.
"""

from __future__ import annotations

import asyncio
import json
import os
import shlex
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from microlab.errors import CommandError

console = Console()
err_console = Console(stderr=True)

# ---------------------------------------------------------------------------
# Async command execution
# ---------------------------------------------------------------------------


async def run_command(
    cmd: list[str],
    cwd: str | Path | None = None,
    capture: bool = True,
) -> tuple[int, str, str]:
    """Run a command asynchronously and wait for it to exit.

    Args:
        cmd: Executable followed by its arguments.
        cwd: Working directory for the child process.
        capture: Whether to capture stdout/stderr (if ``False`` they inherit
            the parent's streams).

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.

    Raises:
        FileNotFoundError: If the executable does not exist.
    """
    pipe = asyncio.subprocess.PIPE if capture else None
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=pipe,
        stderr=pipe,
        cwd=str(cwd) if cwd else None,
    )
    stdout_bytes, stderr_bytes = await process.communicate()

    stdout_str = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
    return (process.returncode or 0, stdout_str, stderr_str)


async def run_checked(cmd: list[str], cwd: str | Path | None = None) -> None:
    """Run *cmd* with inherited output; any failure aborts the run.

    Raises:
        CommandError: If the command exits non-zero or cannot be started.
    """
    cmd_str = shlex.join(cmd)
    try:
        returncode, _, _ = await run_command(cmd, cwd=cwd, capture=False)
    except OSError as exc:
        raise CommandError(f"Cannot run {cmd_str}: {exc}", command=cmd_str) from exc
    if returncode != 0:
        raise CommandError(
            f"Command failed (exit {returncode}): {cmd_str}",
            command=cmd_str,
            returncode=returncode,
        )


async def try_command(cmd: list[str], cwd: str | Path | None = None) -> bool:
    """Run *cmd* with captured output and report whether it succeeded."""
    try:
        returncode, _, _ = await run_command(cmd, cwd=cwd, capture=True)
    except OSError:
        return False
    return returncode == 0


async def command_output(cmd: list[str], cwd: str | Path | None = None) -> str:
    """Return the stripped stdout of *cmd*, or ``""`` if it fails."""
    try:
        returncode, stdout, _ = await run_command(cmd, cwd=cwd, capture=True)
    except OSError:
        return ""
    if returncode != 0:
        return ""
    return stdout


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def dump_json(data: Any) -> str:
    """Serialise *data* as pretty-printed JSON with a trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_timestamp(moment: datetime | None = None) -> str:
    """Format *moment* (default: now) as an ISO-8601 UTC string ending in ``Z``."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp; return ``None`` for anything unparseable.

    Naive values are taken to be UTC.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def resolve_home(path: str | Path | None) -> Path | None:
    """Expand a leading ``~`` in *path*; empty values become ``None``."""
    if path is None or str(path) == "":
        return None
    return Path(path).expanduser()


def relative_to_cwd(path: Path, cwd: Path) -> str:
    """Return *path* relative to *cwd* when possible, for display."""
    try:
        rel = os.path.relpath(path, cwd)
    except ValueError:
        return str(path)
    return rel or "."


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_step(message: str) -> None:
    """Print a step heading."""
    console.print()
    console.print(f"[bold cyan]{escape(message)}[/bold cyan]")


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(escape(key), escape(str(value)))

    console.print(table)
    console.print()


def print_panel(body: str, title: str, style: str = "bright_cyan") -> None:
    """Print *body* inside a titled panel."""
    console.print(Panel(escape(body), title=f"[bold]{escape(title)}[/bold]", border_style=style))


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{escape(message)}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message to stderr."""
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {escape(message)}")


def print_note(message: str) -> None:
    """Print a dim informational note."""
    console.print(f"[dim]Note: {escape(message)}[/dim]")
