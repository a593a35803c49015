"""State persistence for the land-lease registry."""

from .backend import RegistryBackend
from .store import (
    FileSystemRegistryBackend,
    RegistrySeed,
    SQLiteRegistryBackend,
    StateBackendKind,
    StateBackendSelectionError,
    StateStoreError,
    create_state_backend,
    resolve_state_backend,
)

__all__ = [
    "FileSystemRegistryBackend",
    "RegistryBackend",
    "RegistrySeed",
    "SQLiteRegistryBackend",
    "StateBackendKind",
    "StateBackendSelectionError",
    "StateStoreError",
    "create_state_backend",
    "resolve_state_backend",
]
