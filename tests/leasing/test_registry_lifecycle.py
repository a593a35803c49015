from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Any
import unittest

from leasing.collaborators import BalanceLedger, StaticAuthorityOracle, TransferRecord
from leasing.errors import LeaseErrorCode, LeaseOperationError
from leasing.models import BURN_ADDRESS, LeaseUpdate
from leasing.registry import LeaseRegistry, LeaseRegistryError
from state.store import FileSystemRegistryBackend

LANDOWNER = "ST1TEST"
FARMER = "ST3FARMER"
AUTHORITY = "ST2TEST"
STRANGER = "ST9STRANGER"


class _BlockClock:
    def __init__(self, start: int = 0) -> None:
        self.current = start

    def now(self) -> int:
        return self.current


def _lease_terms(**overrides: Any) -> dict[str, Any]:
    terms: dict[str, Any] = {
        "land_id": 1,
        "farmer": FARMER,
        "duration": 100,
        "rent_amount": 500,
        "payment_frequency": 10,
        "crop_share_percentage": 20,
        "crop_type": "wheat",
        "termination_fee": 100,
        "grace_period": 5,
        "location": "FarmLocation",
        "currency": "STX",
        "min_rent": 200,
        "max_duration": 1000,
    }
    terms.update(overrides)
    return terms


class LeaseLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = tempfile.TemporaryDirectory()
        self.clock = _BlockClock()
        self.ledger = BalanceLedger()
        self.backend = FileSystemRegistryBackend(Path(self._tmpdir.name) / "state")
        self.registry = LeaseRegistry(
            backend=self.backend,
            authority_oracle=StaticAuthorityOracle([LANDOWNER]),
            value_transfer=self.ledger,
            block_provider=self.clock.now,
        )

    def tearDown(self) -> None:
        self._tmpdir.cleanup()

    def _create_active_lease(self, **overrides: Any) -> int:
        if self.registry.summary()["authority_contract"] is None:
            self.registry.set_authority_contract(AUTHORITY)
        return self.registry.create_lease(caller=LANDOWNER, **_lease_terms(**overrides)).unwrap()

    def test_update_overwrites_terms_and_restarts_term(self) -> None:
        lease_id = self._create_active_lease()
        self.clock.current = 40

        result = self.registry.update_lease(
            lease_id,
            caller=LANDOWNER,
            update_duration=150,
            update_rent_amount=600,
        )

        self.assertTrue(result.ok)
        self.assertIs(result.value, True)
        lease = self.registry.get_lease(lease_id)
        assert lease is not None
        self.assertEqual(lease.duration, 150)
        self.assertEqual(lease.rent_amount, 600)
        self.assertEqual(lease.start_block, 40)
        self.assertEqual(lease.landowner, LANDOWNER)
        self.assertEqual(
            self.registry.get_lease_update(lease_id),
            LeaseUpdate(update_duration=150, update_rent_amount=600, update_timestamp=40, updater=LANDOWNER),
        )

    def test_second_update_replaces_the_single_update_record(self) -> None:
        lease_id = self._create_active_lease()
        self.registry.update_lease(lease_id, caller=LANDOWNER, update_duration=150, update_rent_amount=600)
        self.clock.current = 75

        self.registry.update_lease(lease_id, caller=LANDOWNER, update_duration=90, update_rent_amount=700)

        document = self.backend.load_registry()
        self.assertEqual(list(document["lease_updates"]), [str(lease_id)])
        self.assertEqual(
            self.registry.get_lease_update(lease_id),
            LeaseUpdate(update_duration=90, update_rent_amount=700, update_timestamp=75, updater=LANDOWNER),
        )

    def test_update_charges_no_fee(self) -> None:
        lease_id = self._create_active_lease()

        self.registry.update_lease(lease_id, caller=LANDOWNER, update_duration=150, update_rent_amount=600)

        self.assertEqual(len(self.ledger.transfers), 1)

    def test_update_rejections(self) -> None:
        lease_id = self._create_active_lease()
        cases = [
            (99, LANDOWNER, 150, 600, LeaseErrorCode.LEASE_NOT_FOUND),
            (99, STRANGER, 0, 0, LeaseErrorCode.LEASE_NOT_FOUND),
            (lease_id, "ST3FAKE", 150, 600, LeaseErrorCode.NOT_AUTHORIZED),
            (lease_id, FARMER, 150, 600, LeaseErrorCode.NOT_AUTHORIZED),
            (lease_id, STRANGER, 0, 0, LeaseErrorCode.NOT_AUTHORIZED),
            (lease_id, LANDOWNER, 0, 600, LeaseErrorCode.INVALID_UPDATE_PARAM),
            (lease_id, LANDOWNER, 52561, 600, LeaseErrorCode.INVALID_UPDATE_PARAM),
            (lease_id, LANDOWNER, 150, 0, LeaseErrorCode.INVALID_UPDATE_PARAM),
        ]
        for target, caller, duration, rent, expected in cases:
            with self.subTest(target=target, caller=caller, duration=duration, rent=rent):
                result = self.registry.update_lease(
                    target,
                    caller=caller,
                    update_duration=duration,
                    update_rent_amount=rent,
                )
                self.assertFalse(result.ok)
                self.assertEqual(result.error, expected)

        lease = self.registry.get_lease(lease_id)
        assert lease is not None
        self.assertEqual((lease.duration, lease.rent_amount), (100, 500))
        self.assertIsNone(self.registry.get_lease_update(lease_id))

    def test_termination_after_term_by_landowner(self) -> None:
        lease_id = self._create_active_lease()
        self.clock.current = 100

        result = self.registry.terminate_lease(lease_id, caller=LANDOWNER)

        self.assertTrue(result.ok)
        lease = self.registry.get_lease(lease_id)
        assert lease is not None
        self.assertFalse(lease.is_active)
        self.assertFalse(self.registry.check_lease_existence(1))
        self.assertEqual(self.registry.get_lease_count(), 1)

    def test_termination_after_term_by_farmer(self) -> None:
        lease_id = self._create_active_lease()

        result = self.registry.terminate_lease(lease_id, caller=FARMER, at_block=250)

        self.assertTrue(result.ok)

    def test_termination_before_term_is_rejected_for_any_caller(self) -> None:
        lease_id = self._create_active_lease()
        self.clock.current = 50

        for caller in (LANDOWNER, FARMER):
            with self.subTest(caller=caller):
                result = self.registry.terminate_lease(lease_id, caller=caller)
                self.assertFalse(result.ok)
                self.assertEqual(result.error, LeaseErrorCode.LEASE_NOT_EXPIRED)

        result = self.registry.terminate_lease(lease_id, caller=LANDOWNER, at_block=99)
        self.assertEqual(result.error, LeaseErrorCode.LEASE_NOT_EXPIRED)
        self.assertTrue(self.registry.check_lease_existence(1))

    def test_third_party_cannot_terminate(self) -> None:
        lease_id = self._create_active_lease()

        result = self.registry.terminate_lease(lease_id, caller=STRANGER, at_block=500)

        self.assertEqual(result.error, LeaseErrorCode.NOT_AUTHORIZED)
        self.assertTrue(self.registry.check_lease_existence(1))

    def test_termination_is_one_way(self) -> None:
        lease_id = self._create_active_lease()
        self.registry.terminate_lease(lease_id, caller=LANDOWNER, at_block=100)

        for caller in (LANDOWNER, FARMER):
            with self.subTest(caller=caller):
                result = self.registry.terminate_lease(lease_id, caller=caller, at_block=500)
                self.assertEqual(result.error, LeaseErrorCode.LEASE_NOT_ACTIVE)

    def test_terminating_unknown_lease_reports_not_found(self) -> None:
        result = self.registry.terminate_lease(42, caller=LANDOWNER, at_block=500)

        self.assertEqual(result.error, LeaseErrorCode.LEASE_NOT_FOUND)

    def test_update_moves_the_earliest_termination_block(self) -> None:
        lease_id = self._create_active_lease()
        self.registry.update_lease(
            lease_id,
            caller=LANDOWNER,
            update_duration=100,
            update_rent_amount=500,
            at_block=60,
        )

        early = self.registry.terminate_lease(lease_id, caller=LANDOWNER, at_block=100)
        on_time = self.registry.terminate_lease(lease_id, caller=LANDOWNER, at_block=160)

        self.assertEqual(early.error, LeaseErrorCode.LEASE_NOT_EXPIRED)
        self.assertTrue(on_time.ok)

    def test_terminated_land_can_be_leased_again_and_history_is_kept(self) -> None:
        lease_id = self._create_active_lease()
        self.registry.update_lease(lease_id, caller=LANDOWNER, update_duration=10, update_rent_amount=550)
        self.registry.terminate_lease(lease_id, caller=FARMER, at_block=10)

        second = self.registry.create_lease(caller=LANDOWNER, at_block=20, **_lease_terms(farmer="ST4FARMER"))

        self.assertTrue(second.ok)
        self.assertEqual(second.value, 1)
        old_lease = self.registry.get_lease(lease_id)
        assert old_lease is not None
        self.assertFalse(old_lease.is_active)
        self.assertIsNotNone(self.registry.get_lease_update(lease_id))
        self.assertTrue(self.registry.check_lease_existence(1))
        self.assertEqual([entry[0] for entry in self.registry.list_leases(active_only=True)], [1])
        self.assertEqual([entry[0] for entry in self.registry.list_leases()], [0, 1])

    def test_authority_contract_is_set_once(self) -> None:
        first = self.registry.set_authority_contract(AUTHORITY)
        second = self.registry.set_authority_contract("ST5OTHER")

        self.assertTrue(first.ok)
        self.assertFalse(second.ok)
        self.assertEqual(second.error, LeaseErrorCode.AUTHORITY_ALREADY_SET)
        self.assertEqual(self.registry.summary()["authority_contract"], AUTHORITY)

    def test_burn_address_is_never_accepted_as_authority(self) -> None:
        result = self.registry.set_authority_contract(BURN_ADDRESS)

        self.assertEqual(result.error, LeaseErrorCode.INVALID_AUTHORITY_PRINCIPAL)
        self.assertIsNone(self.registry.summary()["authority_contract"])

        self.registry.set_authority_contract(AUTHORITY)
        result = self.registry.set_authority_contract(BURN_ADDRESS)
        self.assertFalse(result.ok)
        self.assertEqual(self.registry.summary()["authority_contract"], AUTHORITY)

    def test_creation_fee_requires_authority_contract(self) -> None:
        result = self.registry.set_creation_fee(2000)

        self.assertEqual(result.error, LeaseErrorCode.AUTHORITY_NOT_VERIFIED)
        self.assertEqual(self.registry.summary()["creation_fee"], 1000)

    def test_creation_fee_change_applies_to_next_lease(self) -> None:
        self.registry.set_authority_contract(AUTHORITY)

        result = self.registry.set_creation_fee(2000)
        self.registry.create_lease(caller=LANDOWNER, **_lease_terms())

        self.assertTrue(result.ok)
        self.assertEqual(self.registry.summary()["creation_fee"], 2000)
        self.assertEqual(self.ledger.transfers, [TransferRecord(amount=2000, sender=LANDOWNER, recipient=AUTHORITY)])

    def test_creation_fee_is_overwritten_without_bounds(self) -> None:
        self.registry.set_authority_contract(AUTHORITY)

        for amount in (0, 10**12, -1):
            with self.subTest(amount=amount):
                result = self.registry.set_creation_fee(amount)
                self.assertTrue(result.ok)
                self.assertEqual(self.registry.summary()["creation_fee"], amount)

    def test_negative_creation_fee_blocks_creation_at_transfer(self) -> None:
        self.registry.set_authority_contract(AUTHORITY)
        self.registry.set_creation_fee(-1)

        result = self.registry.create_lease(caller=LANDOWNER, **_lease_terms())

        self.assertEqual(result.error, LeaseErrorCode.TRANSFER_FAILED)
        self.assertEqual(self.registry.get_lease_count(), 0)

    def test_non_integer_creation_fee_is_a_malformed_call(self) -> None:
        self.registry.set_authority_contract(AUTHORITY)

        for amount in ("10", 1.5, True):
            with self.subTest(amount=amount):
                with self.assertRaises(LeaseRegistryError):
                    self.registry.set_creation_fee(amount)  # type: ignore[arg-type]
        self.assertEqual(self.registry.summary()["creation_fee"], 1000)

    def test_queries_on_missing_entries(self) -> None:
        self.assertIsNone(self.registry.get_lease(0))
        self.assertIsNone(self.registry.get_lease_update(0))
        self.assertEqual(self.registry.get_lease_count(), 0)
        self.assertFalse(self.registry.check_lease_existence(99))

    def test_count_tracks_every_created_lease(self) -> None:
        self._create_active_lease()
        self._create_active_lease(land_id=2, farmer="ST4FARMER", crop_type="corn", currency="USD")

        self.assertEqual(self.registry.get_lease_count(), 2)
        self.assertTrue(self.registry.check_lease_existence(1))
        self.assertTrue(self.registry.check_lease_existence(2))
        self.assertFalse(self.registry.check_lease_existence(99))

    def test_unwrap_raises_with_error_code(self) -> None:
        result = self.registry.update_lease(7, caller=LANDOWNER, update_duration=10, update_rent_amount=10)

        with self.assertRaises(LeaseOperationError) as ctx:
            result.unwrap()
        self.assertEqual(ctx.exception.code, LeaseErrorCode.LEASE_NOT_FOUND)
        self.assertIn("E_LEASE_NOT_FOUND (108)", str(ctx.exception))
        self.assertEqual(result.to_dict()["error"], {"code": 108, "name": "LEASE_NOT_FOUND"})

    def test_reference_scenario(self) -> None:
        missing_authority = self.registry.create_lease(caller=LANDOWNER, **_lease_terms())
        self.assertEqual(missing_authority.error, LeaseErrorCode.AUTHORITY_NOT_VERIFIED)

        self.registry.set_authority_contract(AUTHORITY)
        created = self.registry.create_lease(caller=LANDOWNER, **_lease_terms())
        self.assertEqual(created.value, 0)
        self.assertEqual(self.ledger.transfers, [TransferRecord(amount=1000, sender=LANDOWNER, recipient=AUTHORITY)])

        updated = self.registry.update_lease(0, caller=LANDOWNER, update_duration=150, update_rent_amount=600)
        self.assertTrue(updated.ok)
        lease = self.registry.get_lease(0)
        assert lease is not None
        self.assertEqual((lease.duration, lease.rent_amount), (150, 600))

        early = self.registry.terminate_lease(0, caller=LANDOWNER, at_block=50)
        self.assertEqual(early.error, LeaseErrorCode.LEASE_NOT_EXPIRED)

        done = self.registry.terminate_lease(0, caller=LANDOWNER, at_block=lease.end_block)
        self.assertTrue(done.ok)
        lease = self.registry.get_lease(0)
        assert lease is not None
        self.assertFalse(lease.is_active)
        self.assertFalse(self.registry.check_lease_existence(1))


if __name__ == "__main__":
    unittest.main()
