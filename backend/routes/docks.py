from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from backend.core.security import get_current_user
from backend.models.dock import AdvanceDockRequest, AssignDockRequest, ClaimDockRequest, DockBlockRequest
from backend.routes.deps import get_dock_service
from backend.services.dock_service import DockService

dock_router = APIRouter(prefix="/docks", tags=["docks"])


@dock_router.get("")
async def get_dock_statuses(
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    """Every dock's derived state with the active check-ins on it"""
    docks = await service.get_dock_statuses()
    return {"success": True, "docks": docks, "timestamp": datetime.now().isoformat()}


@dock_router.get("/summary")
async def get_dock_summary(
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "summary": await service.get_dock_summary()}


@dock_router.get("/cycles")
async def get_dock_cycles(
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "docks": await service.get_dock_cycles()}


@dock_router.get("/{dock_number}")
async def get_dock_status(
    dock_number: str,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "dock": await service.get_dock_status(dock_number)}


@dock_router.get("/{dock_number}/availability")
async def check_availability(
    dock_number: str,
    exclude: Optional[str] = None,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    warnings = await service.check_availability(dock_number, exclude)
    return {"success": True, "dock_number": dock_number, "available": not warnings, "warnings": warnings}


@dock_router.post("/{dock_number}/assign")
async def assign_dock(
    dock_number: str,
    request: AssignDockRequest,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    """
    Assign a dock to a check-in.
    Occupancy and block warnings are returned alongside the result; they do
    not stop the assignment.
    """
    result = await service.assign_dock(
        request.check_in_id,
        dock_number,
        appointment_time=request.appointment_time,
        notify=request.notify,
    )
    return {
        "success": True,
        "message": f"Dock {result['check_in'].dock_number} assigned",
        "data": result["check_in"],
        "warnings": result["warnings"],
        "notifications": result["notifications"],
    }


@dock_router.put("/{dock_number}/block")
async def block_dock(
    dock_number: str,
    request: DockBlockRequest,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    block = await service.block_dock(dock_number, request.reason, current_user.get("email"))
    return {"success": True, "block": block}


@dock_router.delete("/{dock_number}/block")
async def unblock_dock(
    dock_number: str,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    removed = await service.unblock_dock(dock_number)
    return {"success": True, "removed": removed}


@dock_router.post("/{dock_number}/claim")
async def claim_dock(
    dock_number: str,
    request: ClaimDockRequest,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    dock = await service.claim_dock(dock_number, request.new_status, request.check_in_id)
    return {"success": True, "dock": dock}


@dock_router.post("/{dock_number}/advance")
async def advance_dock(
    dock_number: str,
    request: AdvanceDockRequest,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    dock = await service.advance_dock(dock_number, request.expected_status, request.new_status)
    return {"success": True, "dock": dock}


@dock_router.post("/{dock_number}/release")
async def release_dock(
    dock_number: str,
    service: DockService = Depends(get_dock_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "dock": await service.release_dock(dock_number)}
