"""microlab registry -- the cross-project ``registry.json`` catalog."""

from microlab.registry.index import render_index, write_index
from microlab.registry.store import (
    REGISTRY_FILENAME,
    RegistryCorrupt,
    RegistryEntry,
    RegistryStore,
    UpsertResult,
    upsert_registries,
)

__all__ = [
    "REGISTRY_FILENAME",
    "RegistryCorrupt",
    "RegistryEntry",
    "RegistryStore",
    "UpsertResult",
    "render_index",
    "upsert_registries",
    "write_index",
]
