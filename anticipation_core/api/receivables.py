"""
Receivable endpoints
"""

from fastapi import APIRouter, Depends, status

from .system import AnticipationSystem, get_system
from .schemas import (
    RegisterReceivableRequest, ChangeStatusRequest, parse_money,
    receivable_to_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_receivable(
    request: RegisterReceivableRequest,
    system: AnticipationSystem = Depends(get_system)
):
    receivable = system.receivable_registry.register_receivable(
        project_id=request.project_id,
        amount=parse_money(request.amount, "amount"),
        due_date=request.due_date,
        buyer_name=request.buyer_name,
        buyer_cpf=request.buyer_cpf,
        description=request.description,
        company_id=request.company_id,
        status=request.status
    )
    return receivable_to_response(receivable)


@router.get("")
async def list_project_receivables(
    project_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    receivables = system.receivable_registry.get_receivables_for_project(project_id)
    return {"receivables": [receivable_to_response(r) for r in receivables]}


@router.get("/{receivable_id}")
async def get_receivable(
    receivable_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    return receivable_to_response(system.receivable_registry.require_receivable(receivable_id))


@router.post("/{receivable_id}/status")
async def change_receivable_status(
    receivable_id: str,
    request: ChangeStatusRequest,
    system: AnticipationSystem = Depends(get_system)
):
    receivable = system.receivable_registry.change_status(receivable_id, request.status)
    return receivable_to_response(receivable)
