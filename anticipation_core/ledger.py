"""
Receivable Allocation Ledger

Links anticipated receivables to the installment that bills them. A receivable
is linked to at most one installment at a time and each link carries the
installment due date as its new due date. Billing documents issued elsewhere
are keyed by link and deleted together with it.
"""

from datetime import datetime, timezone, date
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFound, CrossProjectViolation, ValidationError
from .schedule import ScheduleStore
from .receivables import ReceivableRegistry, Receivable
from .status import ReceivableStatus
from .logging_config import get_logger, log_action


logger = get_logger("antecipa.ledger")


@dataclass
class ReceivableLink(StorageRecord):
    """Assignment of one receivable to one installment"""
    installment_id: str
    receivable_id: str
    payment_plan_settings_id: str
    project_id: str
    nova_data_vencimento: date      # Equals the installment's data_vencimento


@dataclass
class LinkedReceivable:
    """A link together with the receivable it points at"""
    link: ReceivableLink
    receivable: Receivable


@dataclass
class AttachResult:
    """Outcome of a bulk attach"""
    added: List[ReceivableLink] = field(default_factory=list)
    already_linked: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "already_linked": len(self.already_linked),
            "failed": len(self.failed)
        }


class BillingLedger:
    """
    Attaches and detaches receivables to installments
    """

    def __init__(
        self,
        storage: StorageInterface,
        schedule_store: ScheduleStore,
        receivable_registry: ReceivableRegistry,
        audit_trail: AuditTrail,
        max_receivables_per_attach: Optional[int] = None
    ):
        self.storage = storage
        self.schedule_store = schedule_store
        self.receivable_registry = receivable_registry
        self.audit_trail = audit_trail
        self.max_receivables_per_attach = max_receivables_per_attach

        self.links_table = "billing_receivables"
        self.documents_table = "billing_documents"

    def attach(self, installment_id: str, receivable_ids: List[str]) -> AttachResult:
        """
        Link receivables to an installment

        Every id is validated before anything is written. Receivables already
        linked to this installment are reported in ``already_linked``; those
        linked to another installment are reported in ``failed``.

        Raises:
            ValidationError: empty or oversized request
            NotFound: unknown installment or receivable
            CrossProjectViolation: a receivable belongs to another project
        """
        ids = list(dict.fromkeys(receivable_ids))
        if not ids:
            raise ValidationError("At least one receivable id is required")
        if self.max_receivables_per_attach and len(ids) > self.max_receivables_per_attach:
            raise ValidationError(
                f"Cannot attach more than {self.max_receivables_per_attach} receivables at once"
            )

        installment = self.schedule_store.require_installment(installment_id)
        receivables = [self.receivable_registry.require_receivable(rid) for rid in ids]

        foreign = [r.id for r in receivables if r.project_id != installment.project_id]
        if foreign:
            raise CrossProjectViolation(installment.project_id, foreign)

        result = AttachResult()
        now = datetime.now(timezone.utc)

        with self.storage.atomic():
            for receivable in receivables:
                existing = self.storage.find(self.links_table, {"receivable_id": receivable.id})
                if any(row['installment_id'] == installment.id for row in existing):
                    result.already_linked.append(receivable.id)
                    continue
                if existing:
                    result.failed.append({
                        "receivable_id": receivable.id,
                        "reason": "linked to another installment",
                        "installment_id": existing[0]['installment_id']
                    })
                    continue

                link = ReceivableLink(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    installment_id=installment.id,
                    receivable_id=receivable.id,
                    payment_plan_settings_id=installment.payment_plan_settings_id,
                    project_id=installment.project_id,
                    nova_data_vencimento=installment.data_vencimento
                )
                self.storage.save(self.links_table, link.id, link.to_dict())
                result.added.append(link)

        if result.added:
            self.audit_trail.log_event(
                event_type=AuditEventType.RECEIVABLES_ATTACHED,
                entity_type="installment",
                entity_id=installment.id,
                metadata={
                    "plan_id": installment.payment_plan_settings_id,
                    "receivable_ids": [link.receivable_id for link in result.added],
                    "nova_data_vencimento": installment.data_vencimento.isoformat()
                }
            )
        log_action(logger, "info", "Receivables attached to installment",
                   action="attach_receivables",
                   resource=f"installment:{installment.id}",
                   extra=result.counts)
        return result

    def detach(self, installment_id: str, link_id: str) -> str:
        """
        Remove one link and its billing documents

        Returns:
            ID of the receivable that was released

        Raises:
            NotFound: the link does not exist or belongs to another installment
        """
        link = self.get_link(link_id)
        if link is None or link.installment_id != installment_id:
            raise NotFound("receivable_link", link_id)

        with self.storage.atomic():
            documents = self.storage.delete_where(self.documents_table, {"link_id": link.id})
            self.storage.delete(self.links_table, link.id)

        self.audit_trail.log_event(
            event_type=AuditEventType.RECEIVABLE_DETACHED,
            entity_type="installment",
            entity_id=installment_id,
            metadata={
                "plan_id": link.payment_plan_settings_id,
                "link_id": link.id,
                "receivable_id": link.receivable_id,
                "billing_documents_removed": documents
            }
        )
        log_action(logger, "info", "Receivable detached from installment",
                   action="detach_receivable",
                   resource=f"installment:{installment_id}",
                   extra={"link_id": link.id, "billing_documents_removed": documents})
        return link.receivable_id

    def collected_amount(self, installment_id: str, currency: Currency = Currency.BRL) -> Money:
        """Sum of the receivables currently linked to an installment"""
        total = Money.zero(currency)
        for row in self.storage.find(self.links_table, {"installment_id": installment_id}):
            receivable = self.receivable_registry.get_receivable(row['receivable_id'])
            if receivable is not None:
                total = total + receivable.amount
        return total

    def get_link(self, link_id: str) -> Optional[ReceivableLink]:
        data = self.storage.load(self.links_table, link_id)
        if data:
            return self._link_from_dict(data)
        return None

    def links_for_installment(self, installment_id: str) -> List[LinkedReceivable]:
        """Links of an installment with their receivables, by receivable due date"""
        self.schedule_store.require_installment(installment_id)
        linked = []
        for row in self.storage.find(self.links_table, {"installment_id": installment_id}):
            receivable = self.receivable_registry.get_receivable(row['receivable_id'])
            if receivable is not None:
                linked.append(LinkedReceivable(self._link_from_dict(row), receivable))
        linked.sort(key=lambda item: (item.receivable.due_date, item.receivable.buyer_name))
        return linked

    def eligible_receivables(self, installment_id: str) -> List[Receivable]:
        """
        Receivables that may be attached to an installment: same project,
        already anticipated, due in the installment's month and not linked anywhere
        """
        installment = self.schedule_store.require_installment(installment_id)
        due = installment.data_vencimento
        linked_ids = {row['receivable_id'] for row in self.storage.load_all(self.links_table)}

        return [
            r for r in self.receivable_registry.get_receivables_for_project(installment.project_id)
            if r.status == ReceivableStatus.ANTECIPADO
            and r.due_date.year == due.year
            and r.due_date.month == due.month
            and r.id not in linked_ids
        ]

    def record_billing_document(self, link_id: str, external_reference: str) -> Dict:
        """Keep the record of a billing document issued for a link"""
        link = self.get_link(link_id)
        if link is None:
            raise NotFound("receivable_link", link_id)
        now = datetime.now(timezone.utc).isoformat()
        document = {
            'id': str(uuid.uuid4()),
            'created_at': now,
            'updated_at': now,
            'link_id': link.id,
            'installment_id': link.installment_id,
            'external_reference': external_reference
        }
        self.storage.save(self.documents_table, document['id'], document)
        return document

    def billing_documents_for_link(self, link_id: str) -> List[Dict]:
        return self.storage.find(self.documents_table, {"link_id": link_id})

    def remove_links_for_installment(self, installment_id: str) -> int:
        """Delete every link of an installment together with its billing documents"""
        rows = self.storage.find(self.links_table, {"installment_id": installment_id})
        for row in rows:
            self.storage.delete_where(self.documents_table, {"link_id": row['id']})
            self.storage.delete(self.links_table, row['id'])
        return len(rows)

    def _link_from_dict(self, data: Dict) -> ReceivableLink:
        return ReceivableLink(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            installment_id=data['installment_id'],
            receivable_id=data['receivable_id'],
            payment_plan_settings_id=data['payment_plan_settings_id'],
            project_id=data['project_id'],
            nova_data_vencimento=date.fromisoformat(data['nova_data_vencimento'])
        )
