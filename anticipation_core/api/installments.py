"""
Installment endpoints: receivables attached to an installment
"""

from typing import Optional
from fastapi import APIRouter, Depends

from .system import AnticipationSystem, get_system
from .schemas import (
    AttachReceivablesRequest, installment_to_response, receivable_to_response,
    linked_receivable_to_response, attach_to_response, recalculation_to_response,
    money_dict
)


router = APIRouter()


@router.get("/{installment_id}")
async def get_installment(
    installment_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    installment = system.schedule_store.require_installment(installment_id)
    return installment_to_response(installment)


@router.get("/{installment_id}/receivables")
async def list_installment_receivables(
    installment_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Receivables currently linked to the installment"""
    linked = system.ledger.links_for_installment(installment_id)
    return {
        "installment_id": installment_id,
        "receivables": [linked_receivable_to_response(item) for item in linked],
        "collected": money_dict(system.ledger.collected_amount(installment_id))
    }


@router.get("/{installment_id}/eligible-receivables")
async def list_eligible_receivables(
    installment_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Anticipated receivables due in the installment's month and not yet linked"""
    eligible = system.ledger.eligible_receivables(installment_id)
    return {
        "installment_id": installment_id,
        "receivables": [receivable_to_response(r) for r in eligible]
    }


@router.post("/{installment_id}/receivables")
async def attach_receivables(
    installment_id: str,
    request: AttachReceivablesRequest,
    system: AnticipationSystem = Depends(get_system)
):
    """Attach receivables to the installment and recalculate the plan"""
    result = system.plan_service.attach_receivables(
        installment_id, request.receivable_ids, plan_id=request.plan_id
    )
    return {
        "plan_id": result.plan_id,
        **attach_to_response(result.attach),
        "recalculation": recalculation_to_response(result.recalculation),
        "warning": result.warning
    }


@router.delete("/{installment_id}/receivables/{link_id}")
async def detach_receivable(
    installment_id: str,
    link_id: str,
    plan_id: Optional[str] = None,
    system: AnticipationSystem = Depends(get_system)
):
    """Detach one receivable from the installment and recalculate the plan"""
    result = system.plan_service.detach_receivable(installment_id, link_id, plan_id=plan_id)
    return {
        "plan_id": result.plan_id,
        "removed_receivable_id": result.removed_receivable_id,
        "recalculation": recalculation_to_response(result.recalculation),
        "warning": result.warning
    }
