"""The ``registry.json`` catalog of generated projects.

A registry is an ordered JSON array of :class:`RegistryEntry` objects keyed by
``slug``.  Upserts replace a matching entry in place or append a new one; no
entry is ever removed.  The same catalog may live in several directories
(the working directory and an optional "engine" checkout); each copy is
updated independently and there is no locking, so the last writer wins.
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from microlab.outcomes import Outcome, WarningKind
from microlab.utils import (
    dump_json,
    parse_timestamp,
    print_note,
    print_success,
    print_warning,
    try_command,
    utc_timestamp,
)

REGISTRY_FILENAME = "registry.json"


class RegistryEntry(BaseModel):
    """One generated project as recorded in the catalog.

    Fields are declared in the on-disk key order.  Keys written by other tools
    are kept and written back after the known ones.
    """

    model_config = ConfigDict(extra="allow")

    slug: str = Field(..., min_length=1)
    title: str | None = Field(default=None)
    desc: str | None = Field(default=None)
    owner: str | None = Field(default=None)
    base: str | None = Field(default=None, description="GitHub Pages URL")
    proxy: str | None = Field(default=None, description="Canonical proxied URL")
    updated: str | None = Field(default=None, description="ISO-8601 UTC timestamp")
    tags: list[str] | None = Field(default=None)

    def to_json(self) -> dict[str, Any]:
        """Serialise for disk.

        Known optional keys that were never set are left out; explicit
        ``null`` values, and every key written by other tools, are kept.
        """
        data = self.model_dump(mode="json")
        return {
            key: value
            for key, value in data.items()
            if value is not None or key in self.model_fields_set or key not in type(self).model_fields
        }


class UpsertResult(BaseModel):
    """What happened to one registry location."""

    label: str
    status: Literal["inserted", "updated", "skipped", "failed"]
    path: str = Field(default="")
    position: int | None = Field(default=None, description="Index of the entry after upsert")
    count: int = Field(default=0, description="Number of entries after upsert")
    committed: bool = Field(default=False)
    outcomes: list[Outcome] = Field(default_factory=list)


class RegistryCorrupt(ValueError):
    """The registry file exists but is not a JSON array."""


class RegistryStore:
    """Reads and writes the catalog kept in one directory.

    Array elements that do not validate as :class:`RegistryEntry` (written by
    another tool, say) are carried through upserts untouched.
    """

    def __init__(self, directory: str | Path, label: str = "registry") -> None:
        self.directory = Path(directory)
        self.label = label

    @property
    def path(self) -> Path:
        return self.directory / REGISTRY_FILENAME

    # -- Reading -----------------------------------------------------------

    def read_items(self) -> list[Any]:
        """Return the raw array elements; an empty list if the file is missing.

        Raises:
            RegistryCorrupt: If the content is not a JSON array.
            OSError: If the file exists but cannot be read.
        """
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RegistryCorrupt(f"invalid JSON in {self.path}") from exc
        if not isinstance(data, list):
            raise RegistryCorrupt(f"{self.path} does not contain a JSON array")
        return data

    def read(self) -> list[RegistryEntry]:
        """Load the catalog strictly, as validated entries.

        Elements that are not valid entries are left out of the result but
        never removed from the file.

        Raises:
            RegistryCorrupt: If the content is not a JSON array.
        """
        entries = []
        for item in self.read_items():
            try:
                entries.append(RegistryEntry.model_validate(item))
            except ValidationError:
                continue
        return entries

    def load(self) -> tuple[list[Any], list[Outcome]]:
        """Load the raw elements, recovering from corruption with an empty list."""
        try:
            return self.read_items(), []
        except RegistryCorrupt as exc:
            print_warning(f"{exc}. Recreating as empty list.")
            return [], [
                Outcome.warning(
                    f"{self.label}",
                    WarningKind.REGISTRY_CORRUPT,
                    str(exc),
                    remediation="Previous content was discarded; restore it from version control if needed.",
                )
            ]

    # -- Writing -----------------------------------------------------------

    def save(self, entries: list[Any]) -> Path:
        """Overwrite the catalog with *entries*, pretty-printed.

        Elements that are not :class:`RegistryEntry` are written as they are.
        """
        items = [e.to_json() if isinstance(e, RegistryEntry) else e for e in entries]
        self.path.write_text(dump_json(items), encoding="utf-8")
        return self.path

    async def upsert(self, entry: RegistryEntry, commit: bool = True) -> UpsertResult:
        """Insert *entry* or replace the entry with the same slug.

        ``updated`` is stamped with the current time; a replaced entry always
        ends up with a timestamp strictly later than the one it had.  When
        *commit* is set, the file is committed with git on a best-effort basis.
        """
        if not self.directory.is_dir():
            message = f"{self.label} path does not exist: {self.directory}. Skipping."
            print_note(message)
            return UpsertResult(
                label=self.label,
                status="skipped",
                outcomes=[
                    Outcome.warning(self.label, WarningKind.REGISTRY_LOCATION_MISSING, message)
                ],
            )

        try:
            items, outcomes = self.load()
        except OSError as exc:
            return self._failed(exc, [])
        index = next((i for i, item in enumerate(items) if _slug_of(item) == entry.slug), None)

        if index is None:
            stamped = entry.model_copy(update={"updated": utc_timestamp()})
            items.append(stamped)
            position = len(items) - 1
            status: Literal["inserted", "updated"] = "inserted"
        else:
            stamped = entry.model_copy(update={"updated": _later_than(items[index].get("updated"))})
            items[index] = stamped
            position = index
            status = "updated"

        try:
            self.save(items)
        except OSError as exc:
            return self._failed(exc, outcomes)
        print_success(f"Updated {self.label} at {self.path}")

        committed = False
        if commit:
            committed = await self._commit(entry.slug)
            if not committed:
                outcomes.append(
                    Outcome.warning(
                        f"{self.label} commit",
                        WarningKind.COMMIT_FAILURE,
                        f"could not commit {REGISTRY_FILENAME} in {self.directory}",
                        remediation=f"cd {self.directory} && git add {REGISTRY_FILENAME} && git commit",
                    )
                )

        outcomes.append(Outcome.success(self.label, f"{status} ({len(items)} entries)"))
        return UpsertResult(
            label=self.label,
            status=status,
            path=str(self.path),
            position=position,
            count=len(items),
            committed=committed,
            outcomes=outcomes,
        )

    def _failed(self, exc: OSError, outcomes: list[Outcome]) -> UpsertResult:
        message = f"Failed to update {self.label}: {exc.strerror or exc}"
        print_warning(message)
        outcomes.append(Outcome.warning(self.label, WarningKind.REGISTRY_WRITE, message))
        return UpsertResult(label=self.label, status="failed", path=str(self.path), outcomes=outcomes)

    async def _commit(self, slug: str) -> bool:
        if not await try_command(["git", "add", REGISTRY_FILENAME], cwd=self.directory):
            return False
        return await try_command(
            ["git", "commit", "-m", f"Add/update micro: {slug}"], cwd=self.directory
        )


async def upsert_registries(
    entry: RegistryEntry,
    primary: Path,
    secondary: Path | None = None,
    commit: bool = True,
) -> list[UpsertResult]:
    """Upsert *entry* into the primary registry and, if distinct, the secondary.

    The two writes are independent: a failure or skip in one does not affect
    the other.
    """
    results = [await RegistryStore(primary, "local registry").upsert(entry, commit=commit)]
    if secondary is not None and Path(secondary).resolve() != Path(primary).resolve():
        results.append(
            await RegistryStore(secondary, "engine registry").upsert(entry, commit=commit)
        )
    return results


def _later_than(previous: object) -> str:
    """Current timestamp, bumped past *previous* if the clock has not moved on."""
    now = utc_timestamp()
    prev = parse_timestamp(previous)
    current = parse_timestamp(now)
    if prev is not None and current is not None and current <= prev:
        return utc_timestamp(prev + timedelta(microseconds=1))
    return now


def _slug_of(item: Any) -> Any:
    return item.get("slug") if isinstance(item, dict) else None
