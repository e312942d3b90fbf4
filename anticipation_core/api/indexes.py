"""
Monetary index endpoints
"""

from fastapi import APIRouter, Depends, status

from .system import AnticipationSystem, get_system
from .schemas import (
    CreateIndexRequest, UpdateIndexRequest, RecordIndexUpdateRequest,
    ChangeIndexUpdateRequest, index_to_response, index_update_to_response,
    adjustment_to_response
)


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_index(
    request: CreateIndexRequest,
    system: AnticipationSystem = Depends(get_system)
):
    index = system.index_manager.create_index(request.name, request.description)
    return index_to_response(index)


@router.get("")
async def list_indexes(system: AnticipationSystem = Depends(get_system)):
    return {"indexes": [index_to_response(i) for i in system.index_manager.list_indexes()]}


@router.get("/{index_id}")
async def get_index(
    index_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    return index_to_response(system.index_manager.require_index(index_id))


@router.put("/{index_id}")
async def update_index(
    index_id: str,
    request: UpdateIndexRequest,
    system: AnticipationSystem = Depends(get_system)
):
    index = system.index_manager.update_index(index_id, request.name, request.description)
    return index_to_response(index)


@router.delete("/{index_id}")
async def delete_index(
    index_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    system.index_manager.delete_index(index_id)
    return {"index_id": index_id, "message": "Index deleted"}


@router.get("/{index_id}/updates")
async def list_index_updates(
    index_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Monthly updates ordered by reference month"""
    system.index_manager.require_index(index_id)
    updates = system.index_manager.get_updates(index_id)
    return {"index_id": index_id, "updates": [index_update_to_response(u) for u in updates]}


@router.post("/{index_id}/updates", status_code=status.HTTP_201_CREATED)
async def record_index_update(
    index_id: str,
    request: RecordIndexUpdateRequest,
    system: AnticipationSystem = Depends(get_system)
):
    update = system.index_manager.record_update(
        index_id, request.reference_month, request.monthly_adjustment
    )
    return index_update_to_response(update)


@router.put("/updates/{update_id}")
async def change_index_update(
    update_id: str,
    request: ChangeIndexUpdateRequest,
    system: AnticipationSystem = Depends(get_system)
):
    update = system.index_manager.change_update(update_id, request.monthly_adjustment)
    return index_update_to_response(update)


@router.delete("/updates/{update_id}")
async def delete_index_update(
    update_id: str,
    system: AnticipationSystem = Depends(get_system)
):
    system.index_manager.delete_update(update_id)
    return {"update_id": update_id, "message": "Index update deleted"}


@router.get("/{index_id}/compound-adjustment")
async def compound_adjustment(
    index_id: str,
    start_date: str,
    end_date: str,
    system: AnticipationSystem = Depends(get_system)
):
    """Compound the monthly adjustments between two dates (inclusive, by month)"""
    adjustment = system.plan_service.compute_compound_adjustment(index_id, start_date, end_date)
    return {
        "index_id": index_id,
        **adjustment_to_response(adjustment)
    }
