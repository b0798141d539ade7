"""Non-fatal step outcomes and the run summary that aggregates them.

Best-effort collaborator calls (dependency installs, registry commits, remote
repository creation...) never raise.  They return an :class:`Outcome` which
the pipeline collects into a :class:`RunSummary` and prints once at the end.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class WarningKind(str, Enum):
    """Categories of recoverable problems."""

    DEPENDENCY_INSTALL = "dependency_install"
    REGISTRY_CORRUPT = "registry_corrupt"
    REGISTRY_LOCATION_MISSING = "registry_location_missing"
    REGISTRY_WRITE = "registry_write"
    COMMIT_FAILURE = "commit_failure"
    REMOTE_CREATE = "remote_create"
    RUNTIME_VERSION = "runtime_version"


class Outcome(BaseModel):
    """Result of one step of a run."""

    step: str = Field(..., description="Short step name, e.g. 'install'")
    ok: bool = Field(default=True)
    kind: WarningKind | None = Field(default=None, description="Set when ok is False")
    message: str = Field(default="")
    remediation: str = Field(default="", description="What the user can do about it")

    @classmethod
    def success(cls, step: str, message: str = "") -> "Outcome":
        return cls(step=step, ok=True, message=message)

    @classmethod
    def warning(
        cls,
        step: str,
        kind: WarningKind,
        message: str,
        remediation: str = "",
    ) -> "Outcome":
        return cls(step=step, ok=False, kind=kind, message=message, remediation=remediation)


class RunSummary(BaseModel):
    """Everything a finished run has to report."""

    slug: str = Field(default="")
    project_path: str = Field(default="")
    outcomes: list[Outcome] = Field(default_factory=list)

    def add(self, outcome: Outcome) -> Outcome:
        self.outcomes.append(outcome)
        return outcome

    def extend(self, outcomes: list[Outcome]) -> None:
        self.outcomes.extend(outcomes)

    @property
    def warnings(self) -> list[Outcome]:
        return [o for o in self.outcomes if not o.ok]

    def has(self, kind: WarningKind) -> bool:
        """Return ``True`` if any collected warning is of *kind*."""
        return any(o.kind == kind for o in self.warnings)

    def as_table(self) -> dict[str, str]:
        """Flatten outcomes to a ``{step: status}`` mapping for display."""
        rows: dict[str, str] = {}
        for outcome in self.outcomes:
            status = "ok" if outcome.ok else f"warning: {outcome.message}"
            if outcome.ok and outcome.message:
                status = outcome.message
            rows[outcome.step] = status
        return rows
