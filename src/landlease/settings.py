from __future__ import annotations

from dataclasses import dataclass, field
import json
import os
from pathlib import Path
from typing import Any, Mapping

from leasing.models import DEFAULT_CREATION_FEE, DEFAULT_MAX_LEASES

SETTINGS_FILE = Path("state") / "registry_settings.json"

ENV_MAX_LEASES = "LANDLEASE_MAX_LEASES"
ENV_CREATION_FEE = "LANDLEASE_CREATION_FEE"


class SettingsError(ValueError):
    """Raised when registry settings cannot be parsed."""


@dataclass(frozen=True)
class RegistrySettings:
    max_leases: int = DEFAULT_MAX_LEASES
    creation_fee: int = DEFAULT_CREATION_FEE
    authorities: tuple[str, ...] = ()
    balances: dict[str, int] | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def default_settings_document() -> dict[str, Any]:
    return {
        "registry": {
            "max_leases": DEFAULT_MAX_LEASES,
            "creation_fee": DEFAULT_CREATION_FEE,
            "authorities": [],
        },
        "state": {"backend": "filesystem"},
    }


def load_registry_settings(root: Path, *, env: Mapping[str, str] | None = None) -> RegistrySettings:
    environment = os.environ if env is None else env
    raw = _load_optional_settings_file(Path(root) / SETTINGS_FILE)
    section = raw.get("registry", {})
    if not isinstance(section, dict):
        raise SettingsError("settings field 'registry' must be a JSON object")

    max_leases = _expect_non_negative_int(
        environment.get(ENV_MAX_LEASES, section.get("max_leases", DEFAULT_MAX_LEASES)),
        name="max_leases",
    )
    creation_fee = _expect_non_negative_int(
        environment.get(ENV_CREATION_FEE, section.get("creation_fee", DEFAULT_CREATION_FEE)),
        name="creation_fee",
    )

    authorities = section.get("authorities", [])
    if not isinstance(authorities, list) or not all(
        isinstance(item, str) and item.strip() for item in authorities
    ):
        raise SettingsError("settings field 'registry.authorities' must be a list of principals")

    balances = section.get("balances")
    if balances is not None:
        if not isinstance(balances, dict):
            raise SettingsError("settings field 'registry.balances' must be a JSON object")
        balances = {
            str(principal): _expect_non_negative_int(amount, name=f"balances.{principal}")
            for principal, amount in balances.items()
        }

    return RegistrySettings(
        max_leases=max_leases,
        creation_fee=creation_fee,
        authorities=tuple(authorities),
        balances=balances,
        raw=raw,
    )


def _load_optional_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    if not path.is_file():
        raise SettingsError(f"settings path is not a file: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SettingsError(f"{path}: invalid JSON") from exc
    if not isinstance(payload, dict):
        raise SettingsError(f"{path}: expected JSON object")
    return payload


def _expect_non_negative_int(value: Any, *, name: str) -> int:
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError as exc:
            raise SettingsError(f"{name} must be an integer") from exc
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SettingsError(f"{name} must be a non-negative integer")
    return value
