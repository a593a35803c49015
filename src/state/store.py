from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import json
from pathlib import Path
import sqlite3
from typing import Any, Mapping
from uuid import uuid4

from leasing.models import (
    DEFAULT_CREATION_FEE,
    DEFAULT_MAX_LEASES,
    SCHEMA_VERSION,
    default_registry_document,
)

from .backend import RegistryBackend


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _copy_json(value: Any) -> Any:
    return json.loads(json.dumps(value))


_COUNTER_FIELDS = ("next_lease_id", "max_leases")
_MAPPING_FIELDS = ("leases", "lease_updates", "leases_by_land_id")


class StateStoreError(RuntimeError):
    """Raised when persisted registry state cannot be read or written safely."""


@dataclass(frozen=True)
class RegistrySeed:
    """Capacity and fee written into a registry document the first time a backend creates it."""

    max_leases: int = DEFAULT_MAX_LEASES
    creation_fee: int = DEFAULT_CREATION_FEE

    def document(self) -> dict[str, Any]:
        return default_registry_document(max_leases=self.max_leases, creation_fee=self.creation_fee)


def validate_registry_document(payload: Any, *, source: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise StateStoreError(f"{source}: registry root must be a JSON object")
    if payload.get("schema_version", SCHEMA_VERSION) != SCHEMA_VERSION:
        raise StateStoreError(f"{source}: registry schema_version must be '{SCHEMA_VERSION}'")
    for field in _COUNTER_FIELDS:
        value = payload.get(field)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise StateStoreError(f"{source}: registry field '{field}' must be a non-negative integer")
    fee = payload.get("creation_fee")
    if isinstance(fee, bool) or not isinstance(fee, int):
        raise StateStoreError(f"{source}: registry field 'creation_fee' must be an integer")
    for field in _MAPPING_FIELDS:
        if not isinstance(payload.get(field), dict):
            raise StateStoreError(f"{source}: registry field '{field}' must be a JSON object")
    authority = payload.get("authority_contract")
    if authority is not None and not isinstance(authority, str):
        raise StateStoreError(f"{source}: registry field 'authority_contract' must be a string or null")
    normalized = dict(payload)
    normalized["schema_version"] = SCHEMA_VERSION
    normalized.setdefault("updated_at", _utc_now())
    return normalized


def _new_event(
    *,
    event_type: str,
    severity: str,
    principal: str | None,
    block: int | None,
    lease_id: int | None,
    payload: Mapping[str, Any],
) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "event_id": f"evt_{uuid4().hex}",
        "event_type": event_type,
        "severity": severity,
        "principal": principal,
        "block": block,
        "lease_id": lease_id,
        "timestamp": _utc_now(),
        "payload": _copy_json(dict(payload)),
    }


class FileSystemRegistryBackend(RegistryBackend):
    """File-backed registry document with an append-only JSONL event log."""

    def __init__(self, root: Path, *, seed: RegistrySeed | None = None) -> None:
        self.root = Path(root)
        self.registry_path = self.root / "registry.json"
        self.events_path = self.root / "events.jsonl"
        self.seed = seed or RegistrySeed()
        self._ensure_layout()

    def _ensure_layout(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        if self.registry_path.exists() and not self.registry_path.is_file():
            raise StateStoreError(f"expected registry file at '{self.registry_path}'")
        if not self.registry_path.exists():
            self.registry_path.write_text(
                json.dumps(self.seed.document(), indent=2) + "\n",
                encoding="utf-8",
            )
        if not self.events_path.exists():
            self.events_path.write_text("", encoding="utf-8")

    def load_registry(self) -> dict[str, Any]:
        try:
            payload = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"registry is not valid JSON: {self.registry_path}") from exc
        return validate_registry_document(payload, source=str(self.registry_path))

    def save_registry(self, document: Mapping[str, Any]) -> dict[str, Any]:
        payload = validate_registry_document(_copy_json(dict(document)), source="save_registry")
        payload["updated_at"] = _utc_now()
        temp_path = self.registry_path.with_suffix(".json.tmp")
        temp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        temp_path.replace(self.registry_path)
        return payload

    def append_event(
        self,
        *,
        event_type: str,
        severity: str,
        principal: str | None,
        block: int | None,
        lease_id: int | None,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        event = _new_event(
            event_type=event_type,
            severity=severity,
            principal=principal,
            block=block,
            lease_id=lease_id,
            payload=payload,
        )
        with self.events_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, separators=(",", ":")) + "\n")
        return event

    def list_events(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        for line in self.events_path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError as exc:
                raise StateStoreError("event log contains invalid JSON line") from exc
            if not isinstance(parsed, dict):
                raise StateStoreError("event log entries must be objects")
            events.append(parsed)
        if limit is not None:
            return events[-max(limit, 1):]
        return events


class SQLiteRegistryBackend(RegistryBackend):
    """SQLite-backed registry with the same read/write semantics as the file backend."""

    def __init__(self, root: Path, *, seed: RegistrySeed | None = None) -> None:
        self.root = Path(root)
        self.db_path = self.root / "state.sqlite3"
        self.registry_path = self.root / "registry.json"
        self.events_path = self.root / "events.jsonl"
        self.seed = seed or RegistrySeed()
        self._ensure_layout()

    def _ensure_layout(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            self._ensure_schema(conn)
            self._seed_defaults(conn)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=FULL")
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS registry (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                registry_json TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                schema_version TEXT NOT NULL,
                event_id TEXT NOT NULL UNIQUE,
                event_type TEXT NOT NULL,
                severity TEXT NOT NULL,
                principal TEXT,
                block INTEGER,
                lease_id INTEGER,
                timestamp TEXT NOT NULL,
                payload_json TEXT NOT NULL
            )
            """
        )

    def _seed_defaults(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("SELECT 1 FROM registry WHERE id = 1").fetchone()
        if row is not None:
            return
        seeded = self._load_seed_from_file() or self.seed.document()
        conn.execute(
            "INSERT INTO registry(id, registry_json) VALUES (1, ?)",
            (json.dumps(seeded, separators=(",", ":")),),
        )

    def _load_seed_from_file(self) -> dict[str, Any] | None:
        if not self.registry_path.is_file():
            return None
        try:
            payload = json.loads(self.registry_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        try:
            return validate_registry_document(payload, source=str(self.registry_path))
        except StateStoreError:
            return None

    def load_registry(self) -> dict[str, Any]:
        with self._connect() as conn:
            row = conn.execute("SELECT registry_json FROM registry WHERE id = 1").fetchone()
        if row is None:
            return self.seed.document()
        try:
            payload = json.loads(str(row["registry_json"]))
        except json.JSONDecodeError as exc:
            raise StateStoreError("registry is not valid JSON in sqlite store") from exc
        return validate_registry_document(payload, source=str(self.db_path))

    def save_registry(self, document: Mapping[str, Any]) -> dict[str, Any]:
        payload = validate_registry_document(_copy_json(dict(document)), source="save_registry")
        payload["updated_at"] = _utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO registry(id, registry_json) VALUES (1, ?)
                ON CONFLICT(id) DO UPDATE SET registry_json = excluded.registry_json
                """,
                (json.dumps(payload, separators=(",", ":")),),
            )
        return payload

    def append_event(
        self,
        *,
        event_type: str,
        severity: str,
        principal: str | None,
        block: int | None,
        lease_id: int | None,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        event = _new_event(
            event_type=event_type,
            severity=severity,
            principal=principal,
            block=block,
            lease_id=lease_id,
            payload=payload,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO events(
                    schema_version, event_id, event_type, severity, principal,
                    block, lease_id, timestamp, payload_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event["schema_version"],
                    event["event_id"],
                    event["event_type"],
                    event["severity"],
                    event["principal"],
                    event["block"],
                    event["lease_id"],
                    event["timestamp"],
                    json.dumps(event["payload"], separators=(",", ":")),
                ),
            )
        return event

    def list_events(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT schema_version, event_id, event_type, severity, principal,
                       block, lease_id, timestamp, payload_json
                FROM events ORDER BY seq ASC
                """
            ).fetchall()
        events: list[dict[str, Any]] = []
        for row in rows:
            try:
                payload = json.loads(str(row["payload_json"]))
            except json.JSONDecodeError as exc:
                raise StateStoreError("event payload is not valid JSON in sqlite store") from exc
            events.append(
                {
                    "schema_version": row["schema_version"],
                    "event_id": row["event_id"],
                    "event_type": row["event_type"],
                    "severity": row["severity"],
                    "principal": row["principal"],
                    "block": row["block"],
                    "lease_id": row["lease_id"],
                    "timestamp": row["timestamp"],
                    "payload": payload,
                }
            )
        if limit is not None:
            return events[-max(limit, 1):]
        return events


ENV_STATE_BACKEND = "LANDLEASE_STATE_BACKEND"
# Settings-file locations consulted after the explicit choice and the environment.
CONFIG_STATE_BACKEND_PATHS = (
    ("state", "backend"),
    ("registry", "state_backend"),
)


class StateBackendKind(str, Enum):
    FILESYSTEM = "filesystem"
    SQLITE = "sqlite"


class StateBackendSelectionError(ValueError):
    """Raised when state backend selection is invalid."""


_BACKEND_ALIASES = {
    "filesystem": StateBackendKind.FILESYSTEM,
    "fs": StateBackendKind.FILESYSTEM,
    "file": StateBackendKind.FILESYSTEM,
    "file-system": StateBackendKind.FILESYSTEM,
    "file_system": StateBackendKind.FILESYSTEM,
    "sqlite": StateBackendKind.SQLITE,
    "sqlite3": StateBackendKind.SQLITE,
}

_BACKEND_TYPES: dict[StateBackendKind, type[FileSystemRegistryBackend] | type[SQLiteRegistryBackend]] = {
    StateBackendKind.FILESYSTEM: FileSystemRegistryBackend,
    StateBackendKind.SQLITE: SQLiteRegistryBackend,
}


def resolve_state_backend(
    *,
    explicit_backend: str | None = None,
    env: Mapping[str, str] | None = None,
    config: Mapping[str, Any] | None = None,
) -> StateBackendKind:
    """Pick the registry backend: explicit choice, then environment, then settings file."""
    choice = explicit_backend
    if choice is None and env is not None:
        choice = env.get(ENV_STATE_BACKEND)
    if choice is None:
        choice = _configured_backend(config)
    if choice is None:
        return StateBackendKind.FILESYSTEM

    normalized = choice.strip().lower()
    try:
        return _BACKEND_ALIASES[normalized]
    except KeyError as exc:
        raise StateBackendSelectionError(
            f"unsupported state backend '{normalized}'. Supported values: filesystem, sqlite."
        ) from exc


def create_state_backend(
    root: Path,
    *,
    seed: RegistrySeed | None = None,
    explicit_backend: str | None = None,
    env: Mapping[str, str] | None = None,
    config: Mapping[str, Any] | None = None,
) -> RegistryBackend:
    kind = resolve_state_backend(explicit_backend=explicit_backend, env=env, config=config)
    return _BACKEND_TYPES[kind](root, seed=seed)


def _configured_backend(config: Mapping[str, Any] | None) -> str | None:
    if not isinstance(config, Mapping):
        return None
    for section_name, key in CONFIG_STATE_BACKEND_PATHS:
        section = config.get(section_name)
        if isinstance(section, Mapping) and isinstance(section.get(key), str):
            return section[key]
    return None
