from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from backend.core.security import get_current_user
from backend.models.check_in import CheckInForm, CheckInStatus, CheckInUpdate, DenyRequest, ManualCheckInForm, StatusChange
from backend.routes.deps import get_check_in_service
from backend.services.check_in_service import CheckInService

check_in_router = APIRouter(prefix="/check-ins", tags=["check-ins"])


@check_in_router.post("")
async def create_check_in(form: CheckInForm, service: CheckInService = Depends(get_check_in_service)):
    """Driver-facing check-in form; no login required"""
    result = await service.create_check_in(form)
    return {
        "success": True,
        "message": "Check-in successful",
        "data": result["check_in"],
        "notifications": result["notifications"],
    }


@check_in_router.get("")
async def list_check_ins(
    day: Optional[date] = None,
    status: Optional[CheckInStatus] = None,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    check_ins = await service.list_check_ins(day, status)
    return {"success": True, "data": check_ins, "total": len(check_ins)}


@check_in_router.get("/active")
async def list_active_check_ins(
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    check_ins = await service.list_active()
    return {"success": True, "data": check_ins, "total": len(check_ins)}


@check_in_router.post("/manual")
async def create_manual_check_in(
    form: ManualCheckInForm,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    result = await service.create_manual_check_in(form)
    return {"success": True, "data": result["check_in"], "warnings": result["warnings"]}


@check_in_router.get("/{check_in_id}")
async def get_check_in(
    check_in_id: str,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "data": await service.get_check_in(check_in_id)}


@check_in_router.patch("/{check_in_id}")
async def update_check_in(
    check_in_id: str,
    update_data: CheckInUpdate,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    """Accepts partial updates - only provided fields are written"""
    return {"success": True, "data": await service.update_check_in(check_in_id, update_data)}


@check_in_router.post("/{check_in_id}/status")
async def change_status(
    check_in_id: str,
    change: StatusChange,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    result = await service.change_status(check_in_id, change.status, change.notes, change.end_time)
    return {
        "success": True,
        "data": result["check_in"],
        "notifications": result["notifications"],
    }


@check_in_router.post("/{check_in_id}/deny")
async def deny_check_in(
    check_in_id: str,
    request: DenyRequest,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    result = await service.deny_check_in(check_in_id, request.reason)
    return {
        "success": True,
        "data": result["check_in"],
        "notifications": result["notifications"],
    }


@check_in_router.delete("/{check_in_id}")
async def delete_check_in(
    check_in_id: str,
    service: CheckInService = Depends(get_check_in_service),
    current_user: dict = Depends(get_current_user),
):
    await service.delete_check_in(check_in_id)
    return {"success": True, "message": "Check-in deleted"}
