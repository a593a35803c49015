from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping

from leasing.collaborators import (
    AuthorityOracle,
    BalanceLedger,
    StaticAuthorityOracle,
    TransferRecord,
    ValueTransfer,
)
from leasing.registry import LeaseRegistry
from state.backend import RegistryBackend
from state.store import RegistrySeed, StateStoreError, create_state_backend

from .settings import load_registry_settings


def open_registry(
    root: Path,
    *,
    env: Mapping[str, str] | None = None,
    explicit_backend: str | None = None,
    authority_oracle: AuthorityOracle | None = None,
    value_transfer: ValueTransfer | None = None,
    block_provider: Callable[[], int] | None = None,
) -> LeaseRegistry:
    """Build a registry for the repository at ``root`` from its settings file and environment."""
    root = Path(root)
    settings = load_registry_settings(root, env=env)
    backend = create_state_backend(
        root / "state",
        seed=RegistrySeed(max_leases=settings.max_leases, creation_fee=settings.creation_fee),
        explicit_backend=explicit_backend,
        env=env,
        config=settings.raw,
    )
    return LeaseRegistry(
        backend=backend,
        authority_oracle=authority_oracle or StaticAuthorityOracle(settings.authorities),
        value_transfer=value_transfer or restore_balance_ledger(settings.balances, backend),
        block_provider=block_provider,
    )


def restore_balance_ledger(balances: Mapping[str, int] | None, backend: RegistryBackend) -> BalanceLedger:
    """Start from the configured opening balances and replay every recorded fee transfer."""
    ledger = BalanceLedger(balances)
    if balances is None:
        return ledger
    for event in backend.list_events():
        if event.get("event_type") != "FEE_TRANSFERRED":
            continue
        payload = event.get("payload")
        try:
            record = TransferRecord(
                amount=int(payload["amount"]),
                sender=str(payload["sender"]),
                recipient=str(payload["recipient"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StateStoreError(f"fee transfer event {event.get('event_id')} is malformed") from exc
        ledger.apply(record)
    return ledger
