"""
Anticipation Request Module

A company's request for a cash advance against its receivables. An approved
request owns exactly one payment plan.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
import uuid

from .currency import Money, Currency
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFound, ValidationError
from .status import AnticipationStatus, parse_status, ensure_transition
from .logging_config import get_logger, log_action


logger = get_logger("antecipa.anticipations")


@dataclass
class AnticipationRequest(StorageRecord):
    """Cash advance requested against a batch of receivables"""
    company_id: str
    project_id: str
    valor_total: Money                  # Gross amount of the anticipated receivables
    valor_liquido: Money                # Net amount paid out to the company
    quantidade_recebiveis: int = 0
    status: AnticipationStatus = AnticipationStatus.SOLICITADA
    status_reason: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.status == AnticipationStatus.APROVADA


class AnticipationManager:
    """
    Creates anticipation requests and moves them through their lifecycle
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "anticipation_requests"

    def create_request(
        self,
        company_id: str,
        project_id: str,
        valor_total: Money,
        valor_liquido: Money,
        quantidade_recebiveis: int = 0
    ) -> AnticipationRequest:
        """
        Register a new anticipation request in status Solicitada

        Raises:
            ValidationError: for negative amounts or a net value above the gross value
        """
        if valor_total.is_negative() or valor_liquido.is_negative():
            raise ValidationError("Anticipation amounts cannot be negative")
        if valor_liquido > valor_total:
            raise ValidationError("valor_liquido cannot exceed valor_total")
        if quantidade_recebiveis < 0:
            raise ValidationError("quantidade_recebiveis cannot be negative")

        now = datetime.now(timezone.utc)
        request = AnticipationRequest(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            company_id=company_id,
            project_id=project_id,
            valor_total=valor_total,
            valor_liquido=valor_liquido,
            quantidade_recebiveis=quantidade_recebiveis
        )
        self._save_request(request)

        self.audit_trail.log_event(
            event_type=AuditEventType.ANTICIPATION_CREATED,
            entity_type="anticipation_request",
            entity_id=request.id,
            metadata={
                "company_id": company_id,
                "project_id": project_id,
                "valor_total": valor_total.to_string(),
                "valor_liquido": valor_liquido.to_string()
            }
        )
        log_action(logger, "info", "Anticipation request created",
                   action="create_anticipation",
                   resource=f"anticipation_request:{request.id}")
        return request

    def get_request(self, request_id: str) -> Optional[AnticipationRequest]:
        """Get anticipation request by ID"""
        data = self.storage.load(self.table_name, request_id)
        if data:
            return self._request_from_dict(data)
        return None

    def require_request(self, request_id: str) -> AnticipationRequest:
        """Get anticipation request by ID or raise NotFound"""
        request = self.get_request(request_id)
        if request is None:
            raise NotFound("anticipation_request", request_id)
        return request

    def list_requests(self, project_id: Optional[str] = None) -> List[AnticipationRequest]:
        """List requests, optionally restricted to one project, oldest first"""
        if project_id:
            rows = self.storage.find(self.table_name, {"project_id": project_id})
        else:
            rows = self.storage.load_all(self.table_name)
        requests = [self._request_from_dict(row) for row in rows]
        requests.sort(key=lambda r: r.created_at)
        return requests

    def change_status(self, request_id: str, new_status, reason: Optional[str] = None) -> AnticipationRequest:
        """
        Move a request to a new status following the transition table

        Raises:
            NotFound: unknown request
            InvalidStatusError: unknown status tag
            InvalidStatusTransition: transition not allowed
        """
        target = parse_status(AnticipationStatus, new_status)
        request = self.require_request(request_id)
        ensure_transition(request.status, target)

        old_status = request.status
        request.status = target
        request.status_reason = reason
        request.updated_at = datetime.now(timezone.utc)
        self._save_request(request)

        self.audit_trail.log_event(
            event_type=AuditEventType.ANTICIPATION_STATUS_CHANGED,
            entity_type="anticipation_request",
            entity_id=request.id,
            metadata={
                "old_status": old_status.value,
                "new_status": target.value,
                "reason": reason
            }
        )
        log_action(logger, "info", f"Anticipation moved to {target.value}",
                   action="change_anticipation_status",
                   resource=f"anticipation_request:{request.id}",
                   extra={"old_status": old_status.value})
        return request

    def _save_request(self, request: AnticipationRequest) -> None:
        self.storage.save(self.table_name, request.id, self._request_to_dict(request))

    def _request_to_dict(self, request: AnticipationRequest) -> Dict:
        return {
            'id': request.id,
            'created_at': request.created_at.isoformat(),
            'updated_at': request.updated_at.isoformat(),
            'company_id': request.company_id,
            'project_id': request.project_id,
            'valor_total': str(request.valor_total.amount),
            'valor_liquido': str(request.valor_liquido.amount),
            'currency': request.valor_total.currency.code,
            'quantidade_recebiveis': request.quantidade_recebiveis,
            'status': request.status.value,
            'status_reason': request.status_reason
        }

    def _request_from_dict(self, data: Dict) -> AnticipationRequest:
        currency = Currency[data.get('currency', 'BRL')]
        return AnticipationRequest(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            company_id=data['company_id'],
            project_id=data['project_id'],
            valor_total=Money(Decimal(data['valor_total']), currency),
            valor_liquido=Money(Decimal(data['valor_liquido']), currency),
            quantidade_recebiveis=data.get('quantidade_recebiveis', 0),
            status=AnticipationStatus(data['status']),
            status_reason=data.get('status_reason')
        )
