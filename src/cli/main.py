from __future__ import annotations

import argparse
from dataclasses import dataclass
import json
import os
from pathlib import Path
import sys
from typing import Any, Sequence

from landlease.bootstrap import RepositoryInitError, initialize_repository
from landlease.factory import open_registry
from landlease.settings import SettingsError
from leasing.errors import LeaseOperationError, RegistryResult
from leasing.models import CropType, Currency, LeaseRecordError
from leasing.registry import LeaseRegistry, LeaseRegistryError
from state.store import StateBackendSelectionError, StateStoreError


@dataclass(frozen=True)
class CliCommandError(Exception):
    code: str
    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="landlease",
        description="Land-lease registry operator commands",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize registry state files")
    init_parser.add_argument("--root", default=".", help="Repository root path")

    create_parser = subparsers.add_parser("create", help="Register a new lease")
    _add_transaction_arguments(create_parser)
    create_parser.add_argument("--land-id", type=int, required=True)
    create_parser.add_argument("--farmer", required=True)
    create_parser.add_argument("--duration", type=int, required=True)
    create_parser.add_argument("--rent-amount", type=int, required=True)
    create_parser.add_argument("--payment-frequency", type=int, required=True)
    create_parser.add_argument("--crop-share", type=int, default=0, help="Crop share percentage (0-100)")
    create_parser.add_argument(
        "--crop-type",
        required=True,
        help=f"One of: {', '.join(item.value for item in CropType)}",
    )
    create_parser.add_argument("--termination-fee", type=int, default=0)
    create_parser.add_argument("--grace-period", type=int, default=0)
    create_parser.add_argument("--location", required=True)
    create_parser.add_argument(
        "--currency",
        required=True,
        help=f"One of: {', '.join(item.value for item in Currency)}",
    )
    create_parser.add_argument("--min-rent", type=int, required=True)
    create_parser.add_argument("--max-duration", type=int, required=True)

    update_parser = subparsers.add_parser("update", help="Change duration and rent of a lease")
    _add_transaction_arguments(update_parser)
    update_parser.add_argument("lease_id", type=int)
    update_parser.add_argument("--duration", type=int, required=True)
    update_parser.add_argument("--rent-amount", type=int, required=True)

    terminate_parser = subparsers.add_parser("terminate", help="Terminate an expired lease")
    _add_transaction_arguments(terminate_parser)
    terminate_parser.add_argument("lease_id", type=int)

    show_parser = subparsers.add_parser("show", help="Show a lease and its latest update")
    show_parser.add_argument("--root", default=".", help="Repository root path")
    show_parser.add_argument("lease_id", type=int)

    count_parser = subparsers.add_parser("count", help="Print the number of leases ever created")
    count_parser.add_argument("--root", default=".", help="Repository root path")

    exists_parser = subparsers.add_parser("exists", help="Check whether a land parcel is actively leased")
    exists_parser.add_argument("--root", default=".", help="Repository root path")
    exists_parser.add_argument("land_id", type=int)

    authority_parser = subparsers.add_parser("set-authority", help="Register the fee-receiving authority once")
    _add_transaction_arguments(authority_parser, caller_required=False)
    authority_parser.add_argument("principal")

    fee_parser = subparsers.add_parser("set-fee", help="Change the lease creation fee")
    _add_transaction_arguments(fee_parser, caller_required=False)
    fee_parser.add_argument("amount", type=int)

    status_parser = subparsers.add_parser("status", help="Show registry summary")
    status_parser.add_argument("--root", default=".", help="Repository root path")
    status_parser.add_argument("--active-only", action="store_true", help="List only active leases")

    log_parser = subparsers.add_parser("log", help="Print recent registry events")
    log_parser.add_argument("--root", default=".", help="Repository root path")
    log_parser.add_argument("--limit", type=int, default=20)
    log_parser.add_argument("--json", action="store_true", help="Print JSON payload")

    return parser


def _add_transaction_arguments(parser: argparse.ArgumentParser, *, caller_required: bool = True) -> None:
    parser.add_argument("--root", default=".", help="Repository root path")
    parser.add_argument("--caller", required=caller_required, help="Principal submitting the operation")
    parser.add_argument("--block", type=int, default=0, help="Current block marker")
    parser.add_argument("--backend", help="State backend override (filesystem or sqlite)")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "init": _cmd_init,
        "create": _cmd_create,
        "update": _cmd_update,
        "terminate": _cmd_terminate,
        "show": _cmd_show,
        "count": _cmd_count,
        "exists": _cmd_exists,
        "set-authority": _cmd_set_authority,
        "set-fee": _cmd_set_fee,
        "status": _cmd_status,
        "log": _cmd_log,
    }

    try:
        return handlers[args.command](args)
    except CliCommandError as exc:
        print(str(exc), file=sys.stderr)
        return exc.exit_code
    except KeyboardInterrupt:
        print("E_INTERRUPTED: interrupted by user", file=sys.stderr)
        return 130


def _cmd_init(args: argparse.Namespace) -> int:
    root = Path(args.root).resolve()
    try:
        result = initialize_repository(root)
    except RepositoryInitError as exc:
        raise CliCommandError("E_INIT_FAILED", str(exc)) from exc

    print(f"Initialized land-lease registry at: {root}")
    if result.created:
        print("Created:")
        for item in result.created:
            print(f"  + {item}")
    if result.skipped:
        print("Unchanged:")
        for item in result.skipped:
            print(f"  = {item}")
    return 0


def _cmd_create(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_CREATE_FAILED")
    result = _run_operation(
        lambda: registry.create_lease(
            caller=args.caller,
            land_id=args.land_id,
            farmer=args.farmer,
            duration=args.duration,
            rent_amount=args.rent_amount,
            payment_frequency=args.payment_frequency,
            crop_share_percentage=args.crop_share,
            crop_type=args.crop_type,
            termination_fee=args.termination_fee,
            grace_period=args.grace_period,
            location=args.location,
            currency=args.currency,
            min_rent=args.min_rent,
            max_duration=args.max_duration,
            at_block=args.block,
        ),
        code="E_CREATE_FAILED",
    )
    lease_id = _unwrap(result)
    print(json.dumps({"lease_id": lease_id, "lease": registry.get_lease(lease_id).to_dict()}, indent=2))
    return 0


def _cmd_update(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_UPDATE_FAILED")
    result = _run_operation(
        lambda: registry.update_lease(
            args.lease_id,
            caller=args.caller,
            update_duration=args.duration,
            update_rent_amount=args.rent_amount,
            at_block=args.block,
        ),
        code="E_UPDATE_FAILED",
    )
    _unwrap(result)
    print(json.dumps(_lease_payload(registry, args.lease_id), indent=2))
    return 0


def _cmd_terminate(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_TERMINATE_FAILED")
    result = _run_operation(
        lambda: registry.terminate_lease(args.lease_id, caller=args.caller, at_block=args.block),
        code="E_TERMINATE_FAILED",
    )
    _unwrap(result)
    print(json.dumps(_lease_payload(registry, args.lease_id), indent=2))
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_SHOW_FAILED")
    payload = _run_operation(lambda: _lease_payload(registry, args.lease_id), code="E_SHOW_FAILED")
    if payload["lease"] is None:
        raise CliCommandError("E_LEASE_NOT_FOUND", f"lease {args.lease_id} does not exist")
    print(json.dumps(payload, indent=2))
    return 0


def _cmd_count(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_COUNT_FAILED")
    count = _run_operation(registry.get_lease_count, code="E_COUNT_FAILED")
    print(json.dumps({"lease_count": count}))
    return 0


def _cmd_exists(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_EXISTS_FAILED")
    exists = _run_operation(lambda: registry.check_lease_existence(args.land_id), code="E_EXISTS_FAILED")
    print(json.dumps({"land_id": args.land_id, "active_lease": exists}))
    return 0


def _cmd_set_authority(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_SET_AUTHORITY_FAILED")
    result = _run_operation(
        lambda: registry.set_authority_contract(args.principal, caller=args.caller, at_block=args.block),
        code="E_SET_AUTHORITY_FAILED",
    )
    _unwrap(result)
    print(json.dumps({"authority_contract": args.principal}))
    return 0


def _cmd_set_fee(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_SET_FEE_FAILED")
    result = _run_operation(
        lambda: registry.set_creation_fee(args.amount, caller=args.caller, at_block=args.block),
        code="E_SET_FEE_FAILED",
    )
    _unwrap(result)
    print(json.dumps({"creation_fee": args.amount}))
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_STATUS_FAILED")

    def _collect() -> dict[str, Any]:
        payload = registry.summary()
        payload["leases"] = [
            {"lease_id": lease_id, **lease.to_dict()}
            for lease_id, lease in registry.list_leases(active_only=args.active_only)
        ]
        return payload

    print(json.dumps(_run_operation(_collect, code="E_STATUS_FAILED"), indent=2))
    return 0


def _cmd_log(args: argparse.Namespace) -> int:
    registry = _open_registry(args, code="E_LOG_FAILED")
    limit = max(args.limit, 1)
    entries = _run_operation(lambda: registry.backend.list_events(limit=limit), code="E_LOG_FAILED")

    if args.json:
        print(json.dumps(entries, indent=2))
        return 0

    if not entries:
        print("No events recorded.")
        return 0

    for entry in entries:
        payload = entry.get("payload") if isinstance(entry.get("payload"), dict) else {}
        print(
            " ".join(
                [
                    str(entry.get("timestamp") or "-"),
                    str(entry.get("event_type") or "UNKNOWN"),
                    f"lease={entry.get('lease_id') if entry.get('lease_id') is not None else '-'}",
                    f"principal={entry.get('principal') or '-'}",
                    f"block={entry.get('block') if entry.get('block') is not None else '-'}",
                    f"reason={payload.get('reason') or '-'}",
                ]
            )
        )
    return 0


def _open_registry(args: argparse.Namespace, *, code: str) -> LeaseRegistry:
    root = Path(args.root).resolve()
    try:
        return open_registry(
            root,
            env=os.environ,
            explicit_backend=getattr(args, "backend", None),
        )
    except (SettingsError, StateStoreError, StateBackendSelectionError) as exc:
        raise CliCommandError(code, str(exc)) from exc


def _run_operation(operation: Any, *, code: str) -> Any:
    try:
        return operation()
    except (LeaseRegistryError, LeaseRecordError, StateStoreError) as exc:
        raise CliCommandError(code, str(exc)) from exc


def _unwrap(result: RegistryResult) -> Any:
    try:
        return result.unwrap()
    except LeaseOperationError as exc:
        raise CliCommandError(
            f"{exc.code.label} ({int(exc.code)})",
            f"{exc.operation} rejected",
        ) from exc


def _lease_payload(registry: LeaseRegistry, lease_id: int) -> dict[str, Any]:
    lease = registry.get_lease(lease_id)
    update = registry.get_lease_update(lease_id)
    return {
        "lease_id": lease_id,
        "lease": lease.to_dict() if lease is not None else None,
        "latest_update": update.to_dict() if update is not None else None,
    }
