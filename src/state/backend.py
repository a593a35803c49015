from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable


@runtime_checkable
class RegistryBackend(Protocol):
    """Persistence abstraction for the lease registry document and its event log."""

    root: Path
    registry_path: Path
    events_path: Path

    def load_registry(self) -> dict[str, Any]: ...

    def save_registry(self, document: Mapping[str, Any]) -> dict[str, Any]: ...

    def append_event(
        self,
        *,
        event_type: str,
        severity: str,
        principal: str | None,
        block: int | None,
        lease_id: int | None,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]: ...

    def list_events(self, *, limit: int | None = None) -> list[dict[str, Any]]: ...
