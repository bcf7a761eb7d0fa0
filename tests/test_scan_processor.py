import asyncio
from datetime import datetime, timezone

import pytest

from audit_api.exceptions import (
    AccessDeniedError,
    ItemNotFoundError,
    LocationNotFoundError,
    LocationRequiredError,
    PersistenceError,
    PreconditionFailedError,
    ValidationError,
)
from audit_api.models.scan import ScanState, ScanWarning
from audit_api.rules.status import AuditStatus
from audit_api.services.scan_processor import ScanProcessor
from tests.builders import ADMIN, AUDITOR, CLIENT, TWO_STORE_AUDITOR, make_item

SCAN_TIME = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def processor_for(snapshot, container, user, location_id="loc-a"):
    processor = ScanProcessor(snapshot, container, user, clock=lambda: SCAN_TIME)
    processor.select_location(location_id)
    return processor


class TestScanIncrements:
    def test_first_scan_counts_one(self, seed, items_container):
        snapshot = seed(make_item("A1", system=2))
        processor = processor_for(snapshot, items_container, AUDITOR)

        outcome = asyncio.run(processor.scan("A1"))

        assert processor.state == ScanState.SUCCESS
        assert (outcome.previous_quantity, outcome.physical_quantity) == (0, 1)
        assert outcome.status == AuditStatus.DISCREPANCY
        assert outcome.variance == -1
        assert outcome.warning is None
        stored = snapshot.get_item("A1", "Store A")
        assert stored.physical_quantity == 1
        assert stored.last_audited == SCAN_TIME

    def test_repeated_scans_accumulate_until_matched(self, seed, items_container):
        snapshot = seed(make_item("A1", system=2))
        processor = processor_for(snapshot, items_container, AUDITOR)

        asyncio.run(processor.scan("A1"))
        outcome = asyncio.run(processor.scan(" A1 "))

        assert outcome.physical_quantity == 2
        assert outcome.status == AuditStatus.MATCHED
        assert "Matched" in outcome.message
        assert items_container.get(outcome_id(snapshot))["physical_quantity"] == 2

    def test_identity_code_resolves(self, seed, items_container):
        snapshot = seed(make_item("A1", system=1))
        processor = processor_for(snapshot, items_container, AUDITOR)
        outcome = asyncio.run(processor.scan(outcome_id(snapshot)))
        assert outcome.sku == "A1"

    def test_selected_location_wins_for_shared_skus(self, seed, items_container):
        snapshot = seed(make_item("A1", location="Store A"), make_item("A1", location="Store B"))
        processor = processor_for(snapshot, items_container, TWO_STORE_AUDITOR, location_id="loc-b")
        outcome = asyncio.run(processor.scan("A1"))
        assert outcome.location == "Store B"
        assert outcome.warning is None


def outcome_id(snapshot):
    return snapshot.get_item("A1", "Store A").id


class TestLocationPolicy:
    def test_admin_scan_moves_to_item_location_with_warning(self, seed, items_container):
        snapshot = seed(make_item("B7", location="Store B", system=1))
        processor = processor_for(snapshot, items_container, ADMIN, location_id="loc-a")

        outcome = asyncio.run(processor.scan("B7"))

        assert outcome.location == "Store B"
        assert outcome.warning == ScanWarning.LOCATION_MISMATCH
        assert snapshot.get_item("B7", "Store B").physical_quantity == 1
        assert snapshot.get_item("B7", "Store A") is None

    def test_auditor_outside_assignment_is_denied(self, seed, items_container):
        snapshot = seed(make_item("B7", location="Store B", system=1))
        processor = processor_for(snapshot, items_container, AUDITOR, location_id="loc-a")

        with pytest.raises(AccessDeniedError):
            asyncio.run(processor.scan("B7"))

        assert processor.state == ScanState.REJECTED
        assert snapshot.get_item("B7", "Store B").physical_quantity is None
        assert "upsert_item" not in items_container.calls

    def test_auditor_inside_assignment_is_corrected(self, seed, items_container):
        snapshot = seed(make_item("B7", location="Store B", system=1))
        processor = processor_for(snapshot, items_container, TWO_STORE_AUDITOR, location_id="loc-a")
        outcome = asyncio.run(processor.scan("B7"))
        assert outcome.warning == ScanWarning.LOCATION_CORRECTED
        assert outcome.status == AuditStatus.MATCHED

    def test_client_cannot_scan(self, seed, items_container):
        snapshot = seed(make_item("A1"))
        processor = processor_for(snapshot, items_container, CLIENT)
        with pytest.raises(AccessDeniedError):
            asyncio.run(processor.scan("A1"))


class TestRejections:
    def test_no_location_selected(self, seed, items_container):
        snapshot = seed(make_item("A1"))
        processor = ScanProcessor(snapshot, items_container, AUDITOR)
        assert processor.state == ScanState.AWAITING_LOCATION
        with pytest.raises(LocationRequiredError):
            asyncio.run(processor.scan("A1"))

    def test_blank_code(self, seed, items_container):
        processor = processor_for(seed(), items_container, AUDITOR)
        with pytest.raises(ValidationError):
            asyncio.run(processor.scan("   "))

    def test_unknown_location(self, seed, items_container):
        processor = processor_for(seed(make_item("A1")), items_container, ADMIN, location_id="loc-gone")
        with pytest.raises(LocationNotFoundError):
            asyncio.run(processor.scan("A1"))

    def test_unknown_code(self, seed, items_container):
        processor = processor_for(seed(make_item("A1")), items_container, AUDITOR)
        with pytest.raises(ItemNotFoundError):
            asyncio.run(processor.scan("ZZZ"))
        assert processor.state == ScanState.REJECTED

    def test_processor_recovers_after_rejection(self, seed, items_container):
        processor = processor_for(seed(make_item("A1")), items_container, AUDITOR)
        with pytest.raises(ItemNotFoundError):
            asyncio.run(processor.scan("ZZZ"))
        asyncio.run(processor.scan("A1"))
        assert processor.state == ScanState.SUCCESS

    def test_clearing_the_location(self, seed, items_container):
        processor = processor_for(seed(make_item("A1")), items_container, AUDITOR)
        processor.clear_location()
        assert processor.state == ScanState.AWAITING_LOCATION


class TestCommitFailures:
    def test_write_failure_leaves_snapshot_unchanged(self, seed, items_container):
        snapshot = seed(make_item("A1", system=3, physical=1))
        before = snapshot.get_item("A1", "Store A")
        items_container.fail("upsert_item", 503)
        processor = processor_for(snapshot, items_container, AUDITOR)

        with pytest.raises(PersistenceError):
            asyncio.run(processor.scan("A1"))

        assert processor.state == ScanState.REJECTED
        assert snapshot.get_item("A1", "Store A") == before

    def test_concurrent_change_is_detected(self, seed, items_container):
        snapshot = seed(make_item("A1", system=3))
        other_station = seed()
        asyncio.run(processor_for(other_station, items_container, AUDITOR).scan("A1"))

        processor = processor_for(snapshot, items_container, AUDITOR)
        with pytest.raises(PreconditionFailedError):
            asyncio.run(processor.scan("A1"))

        assert snapshot.get_item("A1", "Store A").physical_quantity is None
        assert items_container.get(outcome_id(snapshot))["physical_quantity"] == 1
