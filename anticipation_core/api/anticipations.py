"""
Anticipation request endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .system import AnticipationSystem, get_system
from .schemas import (
    CreateAnticipationRequest, ChangeStatusRequest, parse_money,
    anticipation_to_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_anticipation(
    request: CreateAnticipationRequest,
    system: AnticipationSystem = Depends(get_system)
):
    """Request a cash advance"""
    anticipation = system.anticipation_manager.create_request(
        company_id=request.company_id,
        project_id=request.project_id,
        valor_total=parse_money(request.valor_total, "valor_total"),
        valor_liquido=parse_money(request.valor_liquido, "valor_liquido"),
        quantidade_recebiveis=request.quantidade_recebiveis
    )
    return anticipation_to_response(anticipation)


@router.get("")
async def list_anticipations(
    project_id: Optional[str] = None,
    system: AnticipationSystem = Depends(get_system)
):
    requests = system.anticipation_manager.list_requests(project_id)
    return {"anticipations": [anticipation_to_response(r) for r in requests]}


@router.get("/{request_id}")
async def get_anticipation(
    request_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    return anticipation_to_response(system.anticipation_manager.require_request(request_id))


@router.post("/{request_id}/status")
async def change_anticipation_status(
    request_id: str,
    request: ChangeStatusRequest,
    system: AnticipationSystem = Depends(get_system)
):
    """Move the request along Solicitada -> Aprovada/Reprovada -> Concluída"""
    anticipation = system.anticipation_manager.change_status(
        request_id, request.status, request.reason
    )
    return anticipation_to_response(anticipation)
