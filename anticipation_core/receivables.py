"""
Receivable Registry Module

Trade receivables uploaded by companies. Anticipated receivables are the ones
the billing ledger attaches to installments.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFound, ValidationError
from .status import ReceivableStatus, parse_status, ensure_transition


@dataclass
class Receivable(StorageRecord):
    """Trade receivable owed by a buyer"""
    project_id: str
    amount: Money
    due_date: date
    buyer_name: str
    buyer_cpf: str
    description: Optional[str] = None
    company_id: Optional[str] = None
    status: ReceivableStatus = ReceivableStatus.ENVIADO


class ReceivableRegistry:
    """Registration, lookup and status changes of receivables"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "receivables"

    def register_receivable(
        self,
        project_id: str,
        amount: Money,
        due_date: date,
        buyer_name: str,
        buyer_cpf: str,
        description: Optional[str] = None,
        company_id: Optional[str] = None,
        status=ReceivableStatus.ENVIADO
    ) -> Receivable:
        """
        Register a receivable

        Raises:
            ValidationError: if the amount is not positive or the buyer is missing
            InvalidStatusError: for an unknown initial status
        """
        if not amount.is_positive():
            raise ValidationError("Receivable amount must be positive")
        if not buyer_name or not buyer_cpf:
            raise ValidationError("Receivable buyer name and CPF are required")

        now = datetime.now(timezone.utc)
        receivable = Receivable(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            project_id=project_id,
            amount=amount,
            due_date=due_date,
            buyer_name=buyer_name,
            buyer_cpf=buyer_cpf,
            description=description,
            company_id=company_id,
            status=parse_status(ReceivableStatus, status)
        )
        self._save_receivable(receivable)

        self.audit_trail.log_event(
            event_type=AuditEventType.RECEIVABLE_REGISTERED,
            entity_type="receivable",
            entity_id=receivable.id,
            metadata={
                "project_id": project_id,
                "amount": amount.to_string(),
                "due_date": due_date.isoformat()
            }
        )
        return receivable

    def get_receivable(self, receivable_id: str) -> Optional[Receivable]:
        """Get receivable by ID"""
        data = self.storage.load(self.table_name, receivable_id)
        if data:
            return self._receivable_from_dict(data)
        return None

    def require_receivable(self, receivable_id: str) -> Receivable:
        receivable = self.get_receivable(receivable_id)
        if receivable is None:
            raise NotFound("receivable", receivable_id)
        return receivable

    def get_receivables_for_project(self, project_id: str) -> List[Receivable]:
        """Receivables of a project ordered by due date"""
        rows = self.storage.find(self.table_name, {"project_id": project_id})
        receivables = [self._receivable_from_dict(row) for row in rows]
        receivables.sort(key=lambda r: (r.due_date, r.created_at))
        return receivables

    def change_status(self, receivable_id: str, new_status) -> Receivable:
        """Move a receivable along its lifecycle"""
        target = parse_status(ReceivableStatus, new_status)
        receivable = self.require_receivable(receivable_id)
        ensure_transition(receivable.status, target)

        old_status = receivable.status
        receivable.status = target
        receivable.updated_at = datetime.now(timezone.utc)
        self._save_receivable(receivable)

        self.audit_trail.log_event(
            event_type=AuditEventType.RECEIVABLE_STATUS_CHANGED,
            entity_type="receivable",
            entity_id=receivable.id,
            metadata={"old_status": old_status.value, "new_status": target.value}
        )
        return receivable

    def _save_receivable(self, receivable: Receivable) -> None:
        self.storage.save(self.table_name, receivable.id, self._receivable_to_dict(receivable))

    def _receivable_to_dict(self, receivable: Receivable) -> Dict:
        return {
            'id': receivable.id,
            'created_at': receivable.created_at.isoformat(),
            'updated_at': receivable.updated_at.isoformat(),
            'project_id': receivable.project_id,
            'company_id': receivable.company_id,
            'amount': str(receivable.amount.amount),
            'currency': receivable.amount.currency.code,
            'due_date': receivable.due_date.isoformat(),
            'buyer_name': receivable.buyer_name,
            'buyer_cpf': receivable.buyer_cpf,
            'description': receivable.description,
            'status': receivable.status.value
        }

    def _receivable_from_dict(self, data: Dict) -> Receivable:
        return Receivable(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            project_id=data['project_id'],
            company_id=data.get('company_id'),
            amount=Money(Decimal(data['amount']), Currency[data.get('currency', 'BRL')]),
            due_date=date.fromisoformat(data['due_date']),
            buyer_name=data['buyer_name'],
            buyer_cpf=data['buyer_cpf'],
            description=data.get('description'),
            status=ReceivableStatus(data['status'])
        )
