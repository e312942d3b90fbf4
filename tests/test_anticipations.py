"""
Test suite for anticipation requests and the receivable registry
"""

import pytest
from decimal import Decimal
from datetime import date

from anticipation_core.currency import Money
from anticipation_core.storage import InMemoryStorage
from anticipation_core.audit import AuditTrail, AuditEventType
from anticipation_core.anticipations import AnticipationManager
from anticipation_core.receivables import ReceivableRegistry
from anticipation_core.status import AnticipationStatus, ReceivableStatus
from anticipation_core.errors import (
    NotFound, ValidationError, InvalidStatusError, InvalidStatusTransition
)


def brl(amount):
    return Money(Decimal(str(amount)))


class TestAnticipationManager:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.manager = AnticipationManager(self.storage, self.audit_trail)

    def test_create_request(self):
        request = self.manager.create_request(
            "comp_1", "proj_1", brl("10000.00"), brl("9350.50"), quantidade_recebiveis=12
        )

        assert request.status == AnticipationStatus.SOLICITADA
        assert not request.is_approved
        loaded = self.manager.require_request(request.id)
        assert loaded.valor_liquido == brl("9350.50")
        assert loaded.quantidade_recebiveis == 12
        assert self.audit_trail.get_events_by_type(AuditEventType.ANTICIPATION_CREATED)

    def test_create_request_validation(self):
        with pytest.raises(ValidationError):
            self.manager.create_request("comp_1", "proj_1", brl(-1), brl(0))
        with pytest.raises(ValidationError):
            self.manager.create_request("comp_1", "proj_1", brl(100), brl(101))
        with pytest.raises(ValidationError):
            self.manager.create_request("comp_1", "proj_1", brl(100), brl(90), -1)

    def test_approval_flow(self):
        request = self.manager.create_request("comp_1", "proj_1", brl(100), brl(90))

        approved = self.manager.change_status(request.id, "Aprovada")
        assert approved.is_approved

        done = self.manager.change_status(request.id, AnticipationStatus.CONCLUIDA, reason="liquidada")
        assert done.status_reason == "liquidada"
        events = self.audit_trail.get_events_by_type(AuditEventType.ANTICIPATION_STATUS_CHANGED)
        assert [e.metadata["new_status"] for e in events] == ["Aprovada", "Concluída"]

    def test_rejected_transitions(self):
        request = self.manager.create_request("comp_1", "proj_1", brl(100), brl(90))
        self.manager.change_status(request.id, "Reprovada", reason="documentação incompleta")

        with pytest.raises(InvalidStatusTransition):
            self.manager.change_status(request.id, "Aprovada")
        with pytest.raises(InvalidStatusError):
            self.manager.change_status(request.id, "approved")
        with pytest.raises(NotFound):
            self.manager.change_status("missing", "Aprovada")

    def test_list_requests_by_project(self):
        first = self.manager.create_request("comp_1", "proj_1", brl(100), brl(90))
        self.manager.create_request("comp_1", "proj_2", brl(100), brl(90))
        second = self.manager.create_request("comp_1", "proj_1", brl(200), brl(180))

        assert [r.id for r in self.manager.list_requests("proj_1")] == [first.id, second.id]
        assert len(self.manager.list_requests()) == 3


class TestReceivableRegistry:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.registry = ReceivableRegistry(self.storage, self.audit_trail)

    def _register(self, amount="1500.00", due=date(2024, 3, 20), **kwargs):
        return self.registry.register_receivable(
            project_id=kwargs.pop("project_id", "proj_1"), amount=brl(amount), due_date=due,
            buyer_name="Maria Souza", buyer_cpf="987.654.321-00", **kwargs
        )

    def test_register_and_load(self):
        receivable = self._register(description="Unidade 204", company_id="comp_1")

        loaded = self.registry.require_receivable(receivable.id)
        assert loaded.amount == brl("1500.00")
        assert loaded.due_date == date(2024, 3, 20)
        assert loaded.status == ReceivableStatus.ENVIADO
        assert loaded.description == "Unidade 204"

    def test_register_validation(self):
        with pytest.raises(ValidationError):
            self._register(amount="0")
        with pytest.raises(ValidationError):
            self.registry.register_receivable("proj_1", brl(10), date(2024, 1, 1), "", "123")
        with pytest.raises(InvalidStatusError):
            self._register(status="pago")

    def test_project_listing_ordered_by_due_date(self):
        late = self._register(due=date(2024, 5, 1))
        early = self._register(due=date(2024, 2, 1))
        self._register(project_id="proj_2")

        listed = self.registry.get_receivables_for_project("proj_1")

        assert [r.id for r in listed] == [early.id, late.id]

    def test_status_lifecycle(self):
        receivable = self._register()

        self.registry.change_status(receivable.id, "elegivel_para_antecipacao")
        anticipated = self.registry.change_status(receivable.id, ReceivableStatus.ANTECIPADO)

        assert anticipated.status == ReceivableStatus.ANTECIPADO
        with pytest.raises(InvalidStatusTransition):
            self.registry.change_status(receivable.id, "enviado")
        assert len(self.audit_trail.get_events_by_type(AuditEventType.RECEIVABLE_STATUS_CHANGED)) == 2

    def test_missing_receivable(self):
        assert self.registry.get_receivable("missing") is None
        with pytest.raises(NotFound):
            self.registry.require_receivable("missing")
