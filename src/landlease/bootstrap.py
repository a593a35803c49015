from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import json

from leasing.models import default_registry_document

from .settings import SETTINGS_FILE, default_settings_document

REQUIRED_DIRECTORIES = ("state",)


@dataclass
class InitResult:
    created: list[str]
    skipped: list[str]


class RepositoryInitError(RuntimeError):
    """Raised when initialization cannot satisfy the required repository shape."""


def _default_state_documents() -> dict[str, str]:
    return {
        "state/registry.json": json.dumps(default_registry_document(), indent=2) + "\n",
        "state/events.jsonl": "",
        SETTINGS_FILE.as_posix(): json.dumps(default_settings_document(), indent=2) + "\n",
    }


def _record(result: InitResult, rel_path: str, was_created: bool) -> None:
    if was_created:
        result.created.append(rel_path)
    else:
        result.skipped.append(rel_path)


def _write_if_missing(path: Path, content: str) -> bool:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x", encoding="utf-8") as handle:
            handle.write(content)
        return True
    except FileExistsError:
        return False


def _ensure_directory(path: Path) -> bool:
    if path.exists():
        if not path.is_dir():
            raise RepositoryInitError(f"expected directory at '{path}', found non-directory entry")
        return False
    path.mkdir(parents=True, exist_ok=True)
    return True


def _ensure_file_target(path: Path) -> None:
    if path.exists() and not path.is_file():
        raise RepositoryInitError(f"expected file at '{path}', found non-file entry")


def initialize_repository(root: Path) -> InitResult:
    root = root.resolve()
    if root.exists() and not root.is_dir():
        raise RepositoryInitError(f"target root '{root}' is not a directory")

    result = InitResult(created=[], skipped=[])

    for relative in REQUIRED_DIRECTORIES:
        _record(result, relative, _ensure_directory(root / relative))

    for relative, content in _default_state_documents().items():
        file_path = root / relative
        _ensure_file_target(file_path)
        _record(result, relative, _write_if_missing(file_path, content))

    return result
