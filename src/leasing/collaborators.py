from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Protocol, runtime_checkable


@runtime_checkable
class AuthorityOracle(Protocol):
    """Answers whether a principal is a verified registry authority."""

    def is_verified_authority(self, principal: str) -> bool: ...


@runtime_checkable
class ValueTransfer(Protocol):
    """Moves a fee between principals; returns False when the transfer cannot happen."""

    def transfer(self, amount: int, sender: str, recipient: str) -> bool: ...


class StaticAuthorityOracle:
    """Allow-list authority oracle."""

    def __init__(self, principals: Iterable[str] = ()) -> None:
        self._principals = {principal for principal in principals if principal}

    @property
    def principals(self) -> frozenset[str]:
        return frozenset(self._principals)

    def grant(self, principal: str) -> None:
        self._principals.add(principal)

    def revoke(self, principal: str) -> None:
        self._principals.discard(principal)

    def is_verified_authority(self, principal: str) -> bool:
        return principal in self._principals


@dataclass(frozen=True)
class TransferRecord:
    amount: int
    sender: str
    recipient: str


class BalanceLedger:
    """In-memory value transfer.

    Without configured balances every transfer succeeds and is only recorded.
    With balances, a sender holding less than the amount is refused and no
    balance moves.
    """

    def __init__(self, balances: Mapping[str, int] | None = None) -> None:
        self._balances: dict[str, int] | None = dict(balances) if balances is not None else None
        self.transfers: list[TransferRecord] = []

    def balance_of(self, principal: str) -> int | None:
        if self._balances is None:
            return None
        return self._balances.get(principal, 0)

    def apply(self, record: TransferRecord) -> None:
        """Move balances for a transfer accepted in an earlier session; no checks, not re-recorded."""
        if self._balances is None:
            return
        self._balances[record.sender] = self._balances.get(record.sender, 0) - record.amount
        self._balances[record.recipient] = self._balances.get(record.recipient, 0) + record.amount

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            return False
        if self._balances is not None:
            available = self._balances.get(sender, 0)
            if available < amount:
                return False
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self.transfers.append(TransferRecord(amount=amount, sender=sender, recipient=recipient))
        return True
