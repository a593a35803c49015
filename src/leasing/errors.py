from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class LeaseErrorCode(IntEnum):
    NOT_AUTHORIZED = 100
    INVALID_LAND_ID = 101
    INVALID_FARMER = 102
    INVALID_DURATION = 103
    INVALID_RENT_AMOUNT = 104
    INVALID_PAYMENT_FREQUENCY = 105
    INVALID_CROP_SHARE = 106
    LEASE_ALREADY_EXISTS = 107
    LEASE_NOT_FOUND = 108
    LEASE_NOT_EXPIRED = 109
    # Declared for numeric stability; premature termination reports LEASE_NOT_EXPIRED.
    LEASE_EXPIRED = 110
    LEASE_NOT_ACTIVE = 111
    INVALID_UPDATE_PARAM = 112
    MAX_LEASES_EXCEEDED = 113
    INVALID_CROP_TYPE = 114
    INVALID_TERMINATION_FEE = 115
    INVALID_GRACE_PERIOD = 116
    INVALID_LOCATION = 117
    INVALID_CURRENCY = 118
    TRANSFER_FAILED = 119
    AUTHORITY_NOT_VERIFIED = 120
    INVALID_MIN_RENT = 121
    INVALID_MAX_DURATION = 122
    INVALID_AUTHORITY_PRINCIPAL = 123
    AUTHORITY_ALREADY_SET = 124

    @property
    def label(self) -> str:
        return f"E_{self.name}"


class LeaseOperationError(RuntimeError):
    """Raised by ``RegistryResult.unwrap`` when a registry operation was rejected."""

    def __init__(self, code: LeaseErrorCode, *, operation: str | None = None) -> None:
        self.code = code
        self.operation = operation
        subject = operation or "registry operation"
        super().__init__(f"{code.label} ({int(code)}): {subject} rejected")


@dataclass(frozen=True)
class RegistryResult:
    """Outcome of one registry operation: a value on success, an error code otherwise."""

    ok: bool
    value: Any = None
    error: LeaseErrorCode | None = None
    operation: str | None = None

    @classmethod
    def success(cls, value: Any, *, operation: str | None = None) -> "RegistryResult":
        return cls(ok=True, value=value, error=None, operation=operation)

    @classmethod
    def failure(cls, error: LeaseErrorCode, *, operation: str | None = None) -> "RegistryResult":
        return cls(ok=False, value=None, error=error, operation=operation)

    def unwrap(self) -> Any:
        if not self.ok:
            assert self.error is not None
            raise LeaseOperationError(self.error, operation=self.operation)
        return self.value

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok, "operation": self.operation}
        if self.ok:
            payload["value"] = self.value
        else:
            assert self.error is not None
            payload["error"] = {"code": int(self.error), "name": self.error.name}
        return payload
