from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

SCHEMA_VERSION = "1.0.0"

MAX_LEASE_DURATION = 52560
MAX_CROP_SHARE_PERCENTAGE = 100
MAX_GRACE_PERIOD = 30
MAX_LOCATION_LENGTH = 100

DEFAULT_MAX_LEASES = 1000
DEFAULT_CREATION_FEE = 1000

BURN_ADDRESS = "SP000000000000000000002Q6VF78"


class CropType(str, Enum):
    WHEAT = "wheat"
    CORN = "corn"
    SOYBEAN = "soybean"


class Currency(str, Enum):
    STX = "STX"
    USD = "USD"
    BTC = "BTC"


class LeaseRecordError(ValueError):
    """Raised when a persisted lease record cannot be decoded."""


@dataclass(frozen=True)
class Lease:
    land_id: int
    landowner: str
    farmer: str
    start_block: int
    duration: int
    rent_amount: int
    payment_frequency: int
    crop_share_percentage: int
    crop_type: CropType
    termination_fee: int
    grace_period: int
    location: str
    currency: Currency
    is_active: bool
    min_rent: int
    max_duration: int

    @property
    def end_block(self) -> int:
        return self.start_block + self.duration

    def with_terms(self, *, duration: int, rent_amount: int, start_block: int) -> "Lease":
        return replace(self, duration=duration, rent_amount=rent_amount, start_block=start_block)

    def deactivated(self) -> "Lease":
        return replace(self, is_active=False)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["crop_type"] = self.crop_type.value
        payload["currency"] = self.currency.value
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Lease":
        try:
            return cls(
                land_id=int(payload["land_id"]),
                landowner=str(payload["landowner"]),
                farmer=str(payload["farmer"]),
                start_block=int(payload["start_block"]),
                duration=int(payload["duration"]),
                rent_amount=int(payload["rent_amount"]),
                payment_frequency=int(payload["payment_frequency"]),
                crop_share_percentage=int(payload["crop_share_percentage"]),
                crop_type=CropType(payload["crop_type"]),
                termination_fee=int(payload["termination_fee"]),
                grace_period=int(payload["grace_period"]),
                location=str(payload["location"]),
                currency=Currency(payload["currency"]),
                is_active=bool(payload["is_active"]),
                min_rent=int(payload["min_rent"]),
                max_duration=int(payload["max_duration"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LeaseRecordError(f"invalid lease record: {exc}") from exc


@dataclass(frozen=True)
class LeaseUpdate:
    update_duration: int
    update_rent_amount: int
    update_timestamp: int
    updater: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LeaseUpdate":
        try:
            return cls(
                update_duration=int(payload["update_duration"]),
                update_rent_amount=int(payload["update_rent_amount"]),
                update_timestamp=int(payload["update_timestamp"]),
                updater=str(payload["updater"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise LeaseRecordError(f"invalid lease update record: {exc}") from exc


def default_registry_document(
    *,
    max_leases: int = DEFAULT_MAX_LEASES,
    creation_fee: int = DEFAULT_CREATION_FEE,
) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "next_lease_id": 0,
        "max_leases": max_leases,
        "creation_fee": creation_fee,
        "authority_contract": None,
        "leases": {},
        "lease_updates": {},
        "leases_by_land_id": {},
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
