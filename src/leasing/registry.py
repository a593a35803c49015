from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .collaborators import AuthorityOracle, ValueTransfer
from .errors import LeaseErrorCode, RegistryResult
from .models import BURN_ADDRESS, Lease, LeaseUpdate
from .validation import (
    LeaseTerms,
    find_failing_rule,
    is_integer,
    parse_crop_type,
    parse_currency,
    validate_update_terms,
)

if TYPE_CHECKING:
    from state.backend import RegistryBackend


class LeaseRegistryError(ValueError):
    """Raised when a registry call is malformed (missing caller, bad block marker)."""


class LeaseRegistry:
    """Land-lease lifecycle manager over a persisted registry document.

    Each public operation loads the document, runs its checks, applies the
    change in memory and persists it as one step. Rejections return a failed
    ``RegistryResult`` and leave the document untouched; the creation fee is
    transferred before anything is written, so a refused transfer aborts the
    whole creation, and a failed write refunds the fee before the error
    propagates.
    """

    def __init__(
        self,
        *,
        backend: RegistryBackend,
        authority_oracle: AuthorityOracle,
        value_transfer: ValueTransfer,
        block_provider: Callable[[], int] | None = None,
    ) -> None:
        self.backend = backend
        self.authority_oracle = authority_oracle
        self.value_transfer = value_transfer
        self._block_provider = block_provider or (lambda: 0)
        self._lock = threading.RLock()

    def create_lease(
        self,
        *,
        caller: str,
        land_id: int,
        farmer: str,
        duration: int,
        rent_amount: int,
        payment_frequency: int,
        crop_share_percentage: int,
        crop_type: str,
        termination_fee: int,
        grace_period: int,
        location: str,
        currency: str,
        min_rent: int,
        max_duration: int,
        at_block: int | None = None,
    ) -> RegistryResult:
        caller = self._expect_principal(caller)
        terms = LeaseTerms(
            land_id=land_id,
            farmer=farmer,
            duration=duration,
            rent_amount=rent_amount,
            payment_frequency=payment_frequency,
            crop_share_percentage=crop_share_percentage,
            crop_type=crop_type,
            termination_fee=termination_fee,
            grace_period=grace_period,
            location=location,
            currency=currency,
            min_rent=min_rent,
            max_duration=max_duration,
        )

        with self._lock:
            block = self._current_block(at_block)
            document = self.backend.load_registry()

            if document["next_lease_id"] >= document["max_leases"]:
                return self._reject("create_lease", LeaseErrorCode.MAX_LEASES_EXCEEDED, caller=caller, block=block)

            failing_rule = find_failing_rule(terms, caller=caller)
            if failing_rule is not None:
                return self._reject(
                    "create_lease",
                    failing_rule.code,
                    caller=caller,
                    block=block,
                    detail={"field": failing_rule.field_name},
                )
            if not self.authority_oracle.is_verified_authority(caller):
                return self._reject("create_lease", LeaseErrorCode.NOT_AUTHORIZED, caller=caller, block=block)
            if str(land_id) in document["leases_by_land_id"]:
                return self._reject(
                    "create_lease",
                    LeaseErrorCode.LEASE_ALREADY_EXISTS,
                    caller=caller,
                    block=block,
                    detail={"land_id": land_id},
                )
            authority = document["authority_contract"]
            if authority is None:
                return self._reject("create_lease", LeaseErrorCode.AUTHORITY_NOT_VERIFIED, caller=caller, block=block)

            fee = document["creation_fee"]
            if not self.value_transfer.transfer(fee, caller, authority):
                return self._reject(
                    "create_lease",
                    LeaseErrorCode.TRANSFER_FAILED,
                    caller=caller,
                    block=block,
                    detail={"amount": fee, "recipient": authority},
                )

            lease_id = document["next_lease_id"]
            lease = Lease(
                land_id=land_id,
                landowner=caller,
                farmer=farmer,
                start_block=block,
                duration=duration,
                rent_amount=rent_amount,
                payment_frequency=payment_frequency,
                crop_share_percentage=crop_share_percentage,
                crop_type=parse_crop_type(crop_type),
                termination_fee=termination_fee,
                grace_period=grace_period,
                location=location,
                currency=parse_currency(currency),
                is_active=True,
                min_rent=min_rent,
                max_duration=max_duration,
            )
            document["leases"][str(lease_id)] = lease.to_dict()
            document["leases_by_land_id"][str(land_id)] = lease_id
            document["next_lease_id"] = lease_id + 1
            try:
                self.backend.save_registry(document)
            except Exception:
                # The lease was never stored, so the fee goes back to the caller.
                self.value_transfer.transfer(fee, authority, caller)
                raise

            self._record(
                "FEE_TRANSFERRED",
                caller=caller,
                block=block,
                lease_id=lease_id,
                payload={"amount": fee, "sender": caller, "recipient": authority},
            )
            self._record(
                "LEASE_CREATED",
                caller=caller,
                block=block,
                lease_id=lease_id,
                payload={"land_id": land_id, "farmer": farmer, "duration": duration},
            )
            return RegistryResult.success(lease_id, operation="create_lease")

    def update_lease(
        self,
        lease_id: int,
        *,
        caller: str,
        update_duration: int,
        update_rent_amount: int,
        at_block: int | None = None,
    ) -> RegistryResult:
        caller = self._expect_principal(caller)
        with self._lock:
            block = self._current_block(at_block)
            document = self.backend.load_registry()

            lease = self._find_lease(document, lease_id)
            if lease is None:
                return self._reject("update_lease", LeaseErrorCode.LEASE_NOT_FOUND, caller=caller, block=block)
            if lease.landowner != caller:
                return self._reject(
                    "update_lease",
                    LeaseErrorCode.NOT_AUTHORIZED,
                    caller=caller,
                    block=block,
                    lease_id=lease_id,
                )
            error = validate_update_terms(update_duration, update_rent_amount)
            if error is not None:
                return self._reject("update_lease", error, caller=caller, block=block, lease_id=lease_id)

            updated = lease.with_terms(
                duration=update_duration,
                rent_amount=update_rent_amount,
                start_block=block,
            )
            record = LeaseUpdate(
                update_duration=update_duration,
                update_rent_amount=update_rent_amount,
                update_timestamp=block,
                updater=caller,
            )
            document["leases"][str(lease_id)] = updated.to_dict()
            document["lease_updates"][str(lease_id)] = record.to_dict()
            self.backend.save_registry(document)

            self._record("LEASE_UPDATED", caller=caller, block=block, lease_id=lease_id, payload=record.to_dict())
            return RegistryResult.success(True, operation="update_lease")

    def terminate_lease(
        self,
        lease_id: int,
        *,
        caller: str,
        at_block: int | None = None,
    ) -> RegistryResult:
        caller = self._expect_principal(caller)
        with self._lock:
            block = self._current_block(at_block)
            document = self.backend.load_registry()

            lease = self._find_lease(document, lease_id)
            if lease is None:
                return self._reject("terminate_lease", LeaseErrorCode.LEASE_NOT_FOUND, caller=caller, block=block)
            if caller not in {lease.landowner, lease.farmer}:
                return self._reject(
                    "terminate_lease",
                    LeaseErrorCode.NOT_AUTHORIZED,
                    caller=caller,
                    block=block,
                    lease_id=lease_id,
                )
            if not lease.is_active:
                return self._reject(
                    "terminate_lease",
                    LeaseErrorCode.LEASE_NOT_ACTIVE,
                    caller=caller,
                    block=block,
                    lease_id=lease_id,
                )
            if block < lease.end_block:
                return self._reject(
                    "terminate_lease",
                    LeaseErrorCode.LEASE_NOT_EXPIRED,
                    caller=caller,
                    block=block,
                    lease_id=lease_id,
                    detail={"end_block": lease.end_block},
                )

            document["leases"][str(lease_id)] = lease.deactivated().to_dict()
            document["leases_by_land_id"].pop(str(lease.land_id), None)
            self.backend.save_registry(document)

            self._record(
                "LEASE_TERMINATED",
                caller=caller,
                block=block,
                lease_id=lease_id,
                payload={"land_id": lease.land_id},
            )
            return RegistryResult.success(True, operation="terminate_lease")

    def set_authority_contract(
        self,
        principal: str,
        *,
        caller: str | None = None,
        at_block: int | None = None,
    ) -> RegistryResult:
        with self._lock:
            block = self._current_block(at_block)
            document = self.backend.load_registry()

            if not isinstance(principal, str) or not principal.strip() or principal == BURN_ADDRESS:
                return self._reject(
                    "set_authority_contract",
                    LeaseErrorCode.INVALID_AUTHORITY_PRINCIPAL,
                    caller=caller,
                    block=block,
                )
            if document["authority_contract"] is not None:
                return self._reject(
                    "set_authority_contract",
                    LeaseErrorCode.AUTHORITY_ALREADY_SET,
                    caller=caller,
                    block=block,
                )

            document["authority_contract"] = principal
            self.backend.save_registry(document)
            self._record(
                "AUTHORITY_CONTRACT_SET",
                caller=caller,
                block=block,
                payload={"authority_contract": principal},
            )
            return RegistryResult.success(True, operation="set_authority_contract")

    def set_creation_fee(
        self,
        amount: int,
        *,
        caller: str | None = None,
        at_block: int | None = None,
    ) -> RegistryResult:
        if not is_integer(amount):
            raise LeaseRegistryError("creation fee must be an integer amount")
        with self._lock:
            block = self._current_block(at_block)
            document = self.backend.load_registry()

            if document["authority_contract"] is None:
                return self._reject(
                    "set_creation_fee",
                    LeaseErrorCode.AUTHORITY_NOT_VERIFIED,
                    caller=caller,
                    block=block,
                )

            # Any amount is accepted; a fee the payer cannot cover fails at creation.
            previous = document["creation_fee"]
            document["creation_fee"] = amount
            self.backend.save_registry(document)
            self._record(
                "CREATION_FEE_SET",
                caller=caller,
                block=block,
                payload={"previous": previous, "creation_fee": amount},
            )
            return RegistryResult.success(True, operation="set_creation_fee")

    def get_lease(self, lease_id: int) -> Lease | None:
        return self._find_lease(self.backend.load_registry(), lease_id)

    def get_lease_update(self, lease_id: int) -> LeaseUpdate | None:
        if not is_integer(lease_id):
            return None
        raw = self.backend.load_registry()["lease_updates"].get(str(lease_id))
        if not isinstance(raw, Mapping):
            return None
        return LeaseUpdate.from_dict(raw)

    def get_lease_count(self) -> int:
        return int(self.backend.load_registry()["next_lease_id"])

    def check_lease_existence(self, land_id: int) -> bool:
        if not is_integer(land_id):
            return False
        return str(land_id) in self.backend.load_registry()["leases_by_land_id"]

    def list_leases(self, *, active_only: bool = False) -> list[tuple[int, Lease]]:
        document = self.backend.load_registry()
        entries = sorted(
            ((int(key), Lease.from_dict(raw)) for key, raw in document["leases"].items()),
            key=lambda item: item[0],
        )
        if active_only:
            return [(lease_id, lease) for lease_id, lease in entries if lease.is_active]
        return entries

    def summary(self) -> dict[str, Any]:
        document = self.backend.load_registry()
        return {
            "lease_count": document["next_lease_id"],
            "active_leases": len(document["leases_by_land_id"]),
            "max_leases": document["max_leases"],
            "creation_fee": document["creation_fee"],
            "authority_contract": document["authority_contract"],
        }

    def _find_lease(self, document: Mapping[str, Any], lease_id: Any) -> Lease | None:
        if not is_integer(lease_id):
            return None
        raw = document["leases"].get(str(lease_id))
        if not isinstance(raw, Mapping):
            return None
        return Lease.from_dict(raw)

    def _current_block(self, at_block: int | None) -> int:
        block = self._block_provider() if at_block is None else at_block
        if not is_integer(block) or block < 0:
            raise LeaseRegistryError("block marker must be a non-negative integer")
        return block

    def _expect_principal(self, value: str) -> str:
        if not isinstance(value, str):
            raise LeaseRegistryError("caller must be a string principal")
        if not value.strip():
            raise LeaseRegistryError("caller must be non-empty")
        return value

    def _reject(
        self,
        operation: str,
        code: LeaseErrorCode,
        *,
        caller: str | None,
        block: int,
        lease_id: int | None = None,
        detail: Mapping[str, Any] | None = None,
    ) -> RegistryResult:
        payload: dict[str, Any] = {
            "operation": operation,
            "code": int(code),
            "reason": code.name,
        }
        if detail:
            payload.update(detail)
        self.backend.append_event(
            event_type="OPERATION_REJECTED",
            severity="WARN",
            principal=caller,
            block=block,
            lease_id=lease_id if is_integer(lease_id) else None,
            payload=payload,
        )
        return RegistryResult.failure(code, operation=operation)

    def _record(
        self,
        event_type: str,
        *,
        caller: str | None,
        block: int,
        lease_id: int | None = None,
        payload: Mapping[str, Any],
    ) -> None:
        self.backend.append_event(
            event_type=event_type,
            severity="INFO",
            principal=caller,
            block=block,
            lease_id=lease_id,
            payload=payload,
        )
