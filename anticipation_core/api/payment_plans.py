"""
Payment plan endpoints
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status

from .system import AnticipationSystem, get_system
from .schemas import (
    BootstrapPlanRequest, IndexSettingsRequest, parse_money, money_dict,
    settings_to_response, installment_to_response, adjustment_to_response,
    recalculation_to_response
)
from ..plans import PlanDetail


router = APIRouter()


def plan_to_response(detail: PlanDetail):
    return {
        "settings": settings_to_response(detail.settings),
        "installments": [installment_to_response(i) for i in detail.installments],
        "warning": detail.warning
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def bootstrap_plan(
    request: BootstrapPlanRequest,
    system: AnticipationSystem = Depends(get_system)
):
    """Create the payment plan of an approved anticipation"""
    detail = system.plan_service.bootstrap_plan(
        anticipation_request_id=request.anticipation_request_id,
        dia_cobranca=request.dia_cobranca,
        teto_fundo_reserva=parse_money(request.teto_fundo_reserva, "teto_fundo_reserva"),
        pmts=request.pmts,
        first_due_date=request.first_due_date,
        index_id=request.index_id,
        adjustment_base_date=request.adjustment_base_date
    )
    return plan_to_response(detail)


@router.get("")
async def list_plans(
    project_id: Optional[str] = None,
    system: AnticipationSystem = Depends(get_system)
):
    """List payment plans, optionally for one project"""
    plans = system.plan_service.list_plans(project_id)
    return {"plans": [settings_to_response(p) for p in plans]}


@router.get("/links/{link_id}/adjusted-value")
async def get_adjusted_value(
    link_id: str,
    as_of: date,
    system: AnticipationSystem = Depends(get_system)
):
    """Project a linked receivable's face value with the plan's index"""
    value = system.plan_service.project_link_value(link_id, as_of)
    return {
        "link_id": link_id,
        "as_of": as_of.isoformat(),
        "face_value": money_dict(value.face_value),
        "adjusted_value": money_dict(value.adjusted_value),
        "adjustment": adjustment_to_response(value.adjustment) if value.adjustment else None
    }


@router.get("/{plan_id}")
async def get_plan(
    plan_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Plan settings with its installments"""
    return plan_to_response(system.plan_service.get_plan_detail(plan_id))


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Delete a plan with its installments, links and billing documents"""
    system.plan_service.delete_plan(plan_id)
    return {"plan_id": plan_id, "message": "Payment plan deleted"}


@router.post("/{plan_id}/recalculate")
async def recalculate_plan(
    plan_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Recompute every installment of the plan"""
    result = system.plan_service.recalculate_plan(plan_id)
    return {"plan_id": plan_id, "recalculation": recalculation_to_response(result)}


@router.patch("/{plan_id}/index-settings")
async def update_index_settings(
    plan_id: str,
    request: IndexSettingsRequest,
    system: AnticipationSystem = Depends(get_system)
):
    """Change the index configuration of the plan"""
    detail = system.plan_service.update_index_settings(
        plan_id, request.index_id, request.adjustment_base_date
    )
    return plan_to_response(detail)
