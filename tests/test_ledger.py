"""
Test suite for the receivable allocation ledger

Tests attaching and detaching receivables to installments, idempotence,
project isolation, billing document cascade and eligibility.
"""

import pytest
import uuid
from decimal import Decimal
from datetime import datetime, timezone, date

from anticipation_core.currency import Money
from anticipation_core.storage import InMemoryStorage
from anticipation_core.audit import AuditTrail, AuditEventType
from anticipation_core.receivables import ReceivableRegistry
from anticipation_core.schedule import ScheduleStore, PaymentPlanSettings
from anticipation_core.ledger import BillingLedger
from anticipation_core.status import ReceivableStatus
from anticipation_core.errors import NotFound, CrossProjectViolation, ValidationError


def brl(amount):
    return Money(Decimal(str(amount)))


class TestBillingLedger:
    """Test attach/detach against a two-installment plan"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.registry = ReceivableRegistry(self.storage, self.audit_trail)
        self.schedule_store = ScheduleStore(self.storage)
        self.ledger = BillingLedger(
            self.storage, self.schedule_store, self.registry, self.audit_trail,
            max_receivables_per_attach=5
        )

        now = datetime.now(timezone.utc)
        self.settings = PaymentPlanSettings(
            id=str(uuid.uuid4()), created_at=now, updated_at=now,
            anticipation_request_id="ant_1", project_id="proj_1",
            dia_cobranca=10, teto_fundo_reserva=brl(500)
        )
        self.schedule_store.save_settings(self.settings)
        self.inst0 = self.schedule_store.add_installment(self.settings, 0, date(2024, 3, 10), "2000")
        self.inst1 = self.schedule_store.add_installment(self.settings, 1, date(2024, 4, 10), "2000")

    def _receivable(self, amount, project_id="proj_1", due=date(2024, 3, 20),
                    status=ReceivableStatus.ANTECIPADO):
        return self.registry.register_receivable(
            project_id=project_id, amount=brl(amount), due_date=due,
            buyer_name="Comprador Ltda", buyer_cpf="123.456.789-00", status=status
        )

    def test_attach_stamps_installment_due_date(self):
        r1 = self._receivable(1500)
        r2 = self._receivable(1300)

        result = self.ledger.attach(self.inst0.id, [r1.id, r2.id])

        assert result.counts == {"added": 2, "already_linked": 0, "failed": 0}
        for link in result.added:
            assert link.nova_data_vencimento == date(2024, 3, 10)
            assert link.installment_id == self.inst0.id
        assert self.ledger.collected_amount(self.inst0.id) == brl(2800)

    def test_reattach_is_reported_as_already_linked(self):
        r1 = self._receivable(1500)
        self.ledger.attach(self.inst0.id, [r1.id])

        result = self.ledger.attach(self.inst0.id, [r1.id])

        assert result.added == []
        assert result.already_linked == [r1.id]
        assert self.storage.count("billing_receivables") == 1
        assert self.ledger.collected_amount(self.inst0.id) == brl(1500)

    def test_duplicate_ids_in_one_request(self):
        r1 = self._receivable(1500)
        result = self.ledger.attach(self.inst0.id, [r1.id, r1.id])
        assert len(result.added) == 1

    def test_receivable_linked_elsewhere_fails_per_item(self):
        r1 = self._receivable(1500)
        r2 = self._receivable(700)
        self.ledger.attach(self.inst0.id, [r1.id])

        result = self.ledger.attach(self.inst1.id, [r1.id, r2.id])

        assert [link.receivable_id for link in result.added] == [r2.id]
        assert result.failed[0]["receivable_id"] == r1.id
        assert result.failed[0]["installment_id"] == self.inst0.id
        assert self.ledger.collected_amount(self.inst1.id) == brl(700)

    def test_cross_project_rejected_before_any_write(self):
        own = self._receivable(1000)
        foreign = self._receivable(900, project_id="proj_2")

        with pytest.raises(CrossProjectViolation) as exc_info:
            self.ledger.attach(self.inst0.id, [own.id, foreign.id])

        assert exc_info.value.receivable_ids == [foreign.id]
        assert self.storage.count("billing_receivables") == 0

    def test_missing_receivable_rejected_before_any_write(self):
        own = self._receivable(1000)
        with pytest.raises(NotFound):
            self.ledger.attach(self.inst0.id, [own.id, "missing"])
        assert self.storage.count("billing_receivables") == 0

    def test_missing_installment(self):
        own = self._receivable(1000)
        with pytest.raises(NotFound):
            self.ledger.attach("missing", [own.id])

    def test_request_size_limits(self):
        with pytest.raises(ValidationError):
            self.ledger.attach(self.inst0.id, [])
        receivables = [self._receivable(10) for _ in range(6)]
        with pytest.raises(ValidationError):
            self.ledger.attach(self.inst0.id, [r.id for r in receivables])

    def test_detach_cascades_billing_documents(self):
        r1 = self._receivable(1500)
        link = self.ledger.attach(self.inst0.id, [r1.id]).added[0]
        self.ledger.record_billing_document(link.id, "BOLETO-0001")
        self.ledger.record_billing_document(link.id, "BOLETO-0002")

        removed = self.ledger.detach(self.inst0.id, link.id)

        assert removed == r1.id
        assert self.ledger.get_link(link.id) is None
        assert self.ledger.billing_documents_for_link(link.id) == []
        assert self.ledger.collected_amount(self.inst0.id).is_zero()
        event = self.audit_trail.get_events_by_type(AuditEventType.RECEIVABLE_DETACHED)[0]
        assert event.metadata["billing_documents_removed"] == 2

    def test_detach_requires_matching_installment(self):
        r1 = self._receivable(1500)
        link = self.ledger.attach(self.inst0.id, [r1.id]).added[0]

        with pytest.raises(NotFound):
            self.ledger.detach(self.inst1.id, link.id)
        with pytest.raises(NotFound):
            self.ledger.detach(self.inst0.id, "missing")
        assert self.ledger.get_link(link.id) is not None

    def test_detached_receivable_can_move_to_another_installment(self):
        r1 = self._receivable(1500)
        link = self.ledger.attach(self.inst0.id, [r1.id]).added[0]
        self.ledger.detach(self.inst0.id, link.id)

        result = self.ledger.attach(self.inst1.id, [r1.id])

        assert result.added[0].nova_data_vencimento == date(2024, 4, 10)

    def test_links_for_installment(self):
        late = self._receivable(500, due=date(2024, 3, 28))
        early = self._receivable(800, due=date(2024, 3, 5))
        self.ledger.attach(self.inst0.id, [late.id, early.id])

        linked = self.ledger.links_for_installment(self.inst0.id)

        assert [item.receivable.id for item in linked] == [early.id, late.id]

    def test_eligible_receivables(self):
        eligible = self._receivable(1000, due=date(2024, 3, 25))
        self._receivable(1000, due=date(2024, 4, 25))                               # other month
        self._receivable(1000, due=date(2024, 3, 25), project_id="proj_2")          # other project
        self._receivable(1000, due=date(2024, 3, 25), status=ReceivableStatus.ENVIADO)
        linked = self._receivable(1000, due=date(2024, 3, 2))
        self.ledger.attach(self.inst1.id, [linked.id])

        result = self.ledger.eligible_receivables(self.inst0.id)

        assert [r.id for r in result] == [eligible.id]

    def test_remove_links_for_installment(self):
        r1 = self._receivable(100)
        r2 = self._receivable(200)
        links = self.ledger.attach(self.inst0.id, [r1.id, r2.id]).added
        self.ledger.record_billing_document(links[0].id, "BOLETO-1")

        assert self.ledger.remove_links_for_installment(self.inst0.id) == 2
        assert self.storage.count("billing_receivables") == 0
        assert self.storage.count("billing_documents") == 0
