"""Fatal error taxonomy for a scaffolding run.

Every exception here aborts the run.  They unwind to ``microlab.pipeline.main``
which prints a single diagnostic line and exits non-zero.  Recoverable
conditions are not exceptions: see :mod:`microlab.outcomes`.
"""

from __future__ import annotations

from pathlib import Path


class ScaffoldError(Exception):
    """Base class for every fatal scaffolding error."""


class InvalidNameError(ScaffoldError):
    """Raised when a project name is empty or normalizes to an empty slug."""

    def __init__(self, raw_name: str) -> None:
        self.raw_name = raw_name
        if not raw_name.strip():
            message = "Name is required"
        else:
            message = f"Name '{raw_name}' does not contain any usable characters"
        super().__init__(message)


class AlreadyExistsError(ScaffoldError):
    """Raised when the target project directory is already present."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Folder already exists: {path}")


class IOFailure(ScaffoldError):
    """Raised when writing the project tree fails (permissions, disk full...)."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write {path}: {reason}")


class ManifestParseError(ScaffoldError):
    """Raised when ``package.json`` is missing or is not a JSON object."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read manifest {path}: {reason}")


class MarkupError(ScaffoldError):
    """Raised when a markup document lacks a required insertion point."""


class CommandError(ScaffoldError):
    """Raised when a blocking external command fails."""

    def __init__(self, message: str, command: str = "", returncode: int | None = None) -> None:
        self.command = command
        self.returncode = returncode
        super().__init__(message)
