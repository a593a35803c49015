"""Land-lease lifecycle: creation validation, update, termination and fee gating."""

from .collaborators import (
    AuthorityOracle,
    BalanceLedger,
    StaticAuthorityOracle,
    TransferRecord,
    ValueTransfer,
)
from .errors import LeaseErrorCode, LeaseOperationError, RegistryResult
from .models import BURN_ADDRESS, CropType, Currency, Lease, LeaseRecordError, LeaseUpdate
from .registry import LeaseRegistry, LeaseRegistryError

__all__ = [
    "AuthorityOracle",
    "BURN_ADDRESS",
    "BalanceLedger",
    "CropType",
    "Currency",
    "Lease",
    "LeaseErrorCode",
    "LeaseOperationError",
    "LeaseRecordError",
    "LeaseRegistry",
    "LeaseRegistryError",
    "LeaseUpdate",
    "RegistryResult",
    "StaticAuthorityOracle",
    "TransferRecord",
    "ValueTransfer",
]
