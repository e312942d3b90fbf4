"""
Test suite for audit module

Tests the hash-chained audit trail used for plan mutations and recalculations.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone, date

from anticipation_core.storage import InMemoryStorage
from anticipation_core.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent record"""

    def test_metadata_serialization(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="evt_1",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.PLAN_RECALCULATED,
            entity_type="payment_plan",
            entity_id="plan_1",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal("500.00"),
                "due": date(2024, 5, 10),
                "event": AuditEventType.PLAN_CREATED,
                "nested": {"values": [Decimal("1.5")]}
            }
        )

        assert event.metadata["amount"] == "500.00"
        assert event.metadata["due"] == "2024-05-10"
        assert event.metadata["event"] == "plan_created"
        assert event.metadata["nested"]["values"] == ["1.5"]

    def test_hash_verification(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="evt_1", created_at=now, updated_at=now,
            event_type=AuditEventType.RECEIVABLES_ATTACHED,
            entity_type="installment", entity_id="inst_1",
            previous_hash="abc", current_hash="", metadata={}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.entity_id = "inst_2"
        assert not event.verify_hash()

    def test_round_trip_through_dict(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="evt_1", created_at=now, updated_at=now,
            event_type=AuditEventType.INDEX_CREATED,
            entity_type="index", entity_id="ipca",
            previous_hash="", current_hash="", metadata={"name": "IPCA"},
            sequence=3
        )
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.event_type == AuditEventType.INDEX_CREATED
        assert restored.sequence == 3
        assert restored.verify_hash()


class TestAuditTrail:
    """Test AuditTrail chaining and integrity"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_first_event(self):
        event = self.audit_trail.log_event(
            event_type=AuditEventType.PLAN_CREATED,
            entity_type="payment_plan",
            entity_id="plan_1",
            metadata={"installments": 12}
        )

        assert event.previous_hash == ""
        assert event.sequence == 1
        assert event.verify_hash()
        assert self.audit_trail.count_events() == 1

    def test_events_are_chained(self):
        events = [
            self.audit_trail.log_event(
                event_type=AuditEventType.PLAN_RECALCULATED,
                entity_type="payment_plan",
                entity_id="plan_1",
                metadata={"pass": i}
            )
            for i in range(4)
        ]

        for previous, current in zip(events, events[1:]):
            assert current.previous_hash == previous.current_hash
            assert current.sequence == previous.sequence + 1

    def test_chain_continues_after_reload(self):
        first = self.audit_trail.log_event(
            event_type=AuditEventType.INDEX_CREATED, entity_type="index", entity_id="ipca"
        )
        reopened = AuditTrail(self.storage)
        second = reopened.log_event(
            event_type=AuditEventType.INDEX_UPDATED, entity_type="index", entity_id="ipca"
        )

        assert second.previous_hash == first.current_hash
        assert second.sequence == 2
        assert reopened.verify_integrity()["valid"]

    def test_get_events_for_entity_and_type(self):
        self.audit_trail.log_event(AuditEventType.RECEIVABLES_ATTACHED, "installment", "inst_1")
        self.audit_trail.log_event(AuditEventType.RECEIVABLE_DETACHED, "installment", "inst_1")
        self.audit_trail.log_event(AuditEventType.RECEIVABLES_ATTACHED, "installment", "inst_2")

        inst_1 = self.audit_trail.get_events_for_entity("installment", "inst_1")
        assert [e.event_type for e in inst_1] == [
            AuditEventType.RECEIVABLES_ATTACHED, AuditEventType.RECEIVABLE_DETACHED
        ]
        assert len(self.audit_trail.get_events_for_entity("installment", "inst_1", limit=1)) == 1

        attached = self.audit_trail.get_events_by_type(AuditEventType.RECEIVABLES_ATTACHED)
        assert [e.entity_id for e in attached] == ["inst_1", "inst_2"]

    def test_verify_integrity_valid_chain(self):
        for i in range(5):
            self.audit_trail.log_event(
                AuditEventType.PLAN_RECALCULATED, "payment_plan", "plan_1", {"pass": i}
            )

        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_verify_integrity_detects_hash_tampering(self):
        event1 = self.audit_trail.log_event(AuditEventType.PLAN_CREATED, "payment_plan", "plan_1")
        self.audit_trail.log_event(AuditEventType.PLAN_RECALCULATED, "payment_plan", "plan_1")

        data = self.storage.load(self.audit_trail.table_name, event1.id)
        data["metadata"] = {"installments": 99}
        self.storage.save(self.audit_trail.table_name, event1.id, data)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [event1.id]

    def test_verify_integrity_detects_chain_break(self):
        event1 = self.audit_trail.log_event(AuditEventType.PLAN_CREATED, "payment_plan", "plan_1")
        event2 = self.audit_trail.log_event(AuditEventType.PLAN_DELETED, "payment_plan", "plan_1")

        data = self.storage.load(self.audit_trail.table_name, event2.id)
        data["previous_hash"] = "broken_chain_hash"
        self.storage.save(self.audit_trail.table_name, event2.id, data)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert len(result["chain_breaks"]) == 1
        assert result["chain_breaks"][0]["expected_previous_hash"] == event1.current_hash

    def test_verify_integrity_empty_trail(self):
        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 0

    def test_disabled_trail_logs_nothing(self):
        trail = AuditTrail(self.storage, enabled=False)
        assert trail.log_event(AuditEventType.PLAN_CREATED, "payment_plan", "plan_1") is None
        assert trail.count_events() == 0
