"""
Pydantic schemas for API requests and response serializers
"""

from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..currency import Money, Currency, to_decimal
from ..config import get_config
from ..errors import ValidationError
from ..anticipations import AnticipationRequest
from ..receivables import Receivable
from ..indexes import Index, IndexMonthlyUpdate, CompoundAdjustment
from ..schedule import PaymentPlanSettings, Installment
from ..ledger import AttachResult, LinkedReceivable
from ..recalculation import RecalculationResult


def parse_money(value: str, field_name: str, currency: Optional[str] = None) -> Money:
    """Amount string (Brazilian or international format) to Money"""
    code = currency or get_config().currency
    try:
        amount = to_decimal(value, Currency[code])
    except ValueError:
        raise ValidationError(f"Invalid amount for {field_name}: {value!r}")
    return Money(amount, Currency[code])


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field(..., description="Currency code (BRL, USD, EUR)")

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Anticipation schemas
class CreateAnticipationRequest(BaseModel):
    company_id: str
    project_id: str
    valor_total: str
    valor_liquido: str
    quantidade_recebiveis: int = 0


class ChangeStatusRequest(BaseModel):
    status: str
    reason: Optional[str] = None


# Receivable schemas
class RegisterReceivableRequest(BaseModel):
    project_id: str
    amount: str
    due_date: date
    buyer_name: str
    buyer_cpf: str
    description: Optional[str] = None
    company_id: Optional[str] = None
    status: str = "enviado"


# Index schemas
class CreateIndexRequest(BaseModel):
    name: str
    description: Optional[str] = None


class UpdateIndexRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class RecordIndexUpdateRequest(BaseModel):
    reference_month: str = Field(..., description="Reference month in YYYY-MM format")
    monthly_adjustment: str = Field(..., description="Percentage, e.g. 0.45")


class ChangeIndexUpdateRequest(BaseModel):
    monthly_adjustment: str


# Payment plan schemas
class BootstrapPlanRequest(BaseModel):
    anticipation_request_id: str
    dia_cobranca: int = Field(..., ge=1, le=31)
    teto_fundo_reserva: str
    pmts: List[Any] = Field(..., description="pmt of each installment, in order")
    first_due_date: date
    index_id: Optional[str] = None
    adjustment_base_date: Optional[date] = None


class AttachReceivablesRequest(BaseModel):
    receivable_ids: List[str]
    plan_id: Optional[str] = None


class IndexSettingsRequest(BaseModel):
    index_id: Optional[str] = None
    adjustment_base_date: Optional[date] = None


# Serializers
def money_dict(money: Money) -> Dict[str, str]:
    return MoneyModel.from_money(money).model_dump()


def anticipation_to_response(request: AnticipationRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "company_id": request.company_id,
        "project_id": request.project_id,
        "valor_total": money_dict(request.valor_total),
        "valor_liquido": money_dict(request.valor_liquido),
        "quantidade_recebiveis": request.quantidade_recebiveis,
        "status": request.status.value,
        "status_reason": request.status_reason,
        "created_at": request.created_at.isoformat()
    }


def receivable_to_response(receivable: Receivable) -> Dict[str, Any]:
    return {
        "id": receivable.id,
        "project_id": receivable.project_id,
        "company_id": receivable.company_id,
        "amount": money_dict(receivable.amount),
        "due_date": receivable.due_date.isoformat(),
        "buyer_name": receivable.buyer_name,
        "buyer_cpf": receivable.buyer_cpf,
        "description": receivable.description,
        "status": receivable.status.value
    }


def index_to_response(index: Index) -> Dict[str, Any]:
    return {"id": index.id, "name": index.name, "description": index.description}


def index_update_to_response(update: IndexMonthlyUpdate) -> Dict[str, Any]:
    return {
        "id": update.id,
        "index_id": update.index_id,
        "reference_month": update.reference_month.strftime("%Y-%m"),
        "monthly_adjustment": str(update.monthly_adjustment)
    }


def adjustment_to_response(adjustment: CompoundAdjustment) -> Dict[str, Any]:
    return {
        "factor": str(adjustment.factor),
        "percentage": str(adjustment.percentage),
        "months_applied": adjustment.months_applied,
        "series": [
            {"reference_month": month.strftime("%Y-%m"), "monthly_adjustment": str(adj)}
            for month, adj in adjustment.series
        ]
    }


def settings_to_response(settings: PaymentPlanSettings) -> Dict[str, Any]:
    return {
        "id": settings.id,
        "anticipation_request_id": settings.anticipation_request_id,
        "project_id": settings.project_id,
        "dia_cobranca": settings.dia_cobranca,
        "teto_fundo_reserva": money_dict(settings.teto_fundo_reserva),
        "index_id": settings.index_id,
        "adjustment_base_date": (
            settings.adjustment_base_date.isoformat() if settings.adjustment_base_date else None
        )
    }


def installment_to_response(installment: Installment) -> Dict[str, Any]:
    pmt = installment.pmt_amount
    return {
        "id": installment.id,
        "numero_parcela": installment.numero_parcela,
        "data_vencimento": installment.data_vencimento.isoformat(),
        "pmt": money_dict(pmt) if pmt is not None else None,
        "recebiveis": money_dict(installment.recebiveis),
        "saldo_devedor": money_dict(installment.saldo_devedor),
        "fundo_reserva": money_dict(installment.fundo_reserva),
        "devolucao": money_dict(installment.devolucao)
    }


def linked_receivable_to_response(item: LinkedReceivable) -> Dict[str, Any]:
    return {
        "link_id": item.link.id,
        "nova_data_vencimento": item.link.nova_data_vencimento.isoformat(),
        "receivable": receivable_to_response(item.receivable)
    }


def attach_to_response(result: AttachResult) -> Dict[str, Any]:
    return {
        "added": [
            {"link_id": link.id, "receivable_id": link.receivable_id}
            for link in result.added
        ],
        "already_linked": result.already_linked,
        "failed": result.failed,
        "counts": result.counts
    }


def recalculation_to_response(result: Optional[RecalculationResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {
        "installments_updated": result.updated_count,
        "skipped": [
            {
                "installment_id": missing.installment_id,
                "numero_parcela": missing.numero_parcela,
                "reason": missing.message
            }
            for missing in result.skipped
        ]
    }
