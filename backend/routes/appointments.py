from datetime import date
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from backend.core.security import get_current_user
from backend.models.appointment import AppointmentSlotInput, AppointmentUpdate
from backend.routes.deps import get_appointment_service, get_import_service
from backend.services.appointment_service import AppointmentService
from backend.services.import_service import ImportService

appointment_router = APIRouter(prefix="/appointments", tags=["appointments"])


@appointment_router.get("")
async def list_appointments(
    day: date,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    appointments = await service.list_by_date(day)
    return {"success": True, "data": appointments, "total": len(appointments)}


@appointment_router.get("/breakdown")
async def customer_breakdown(
    day: date,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "data": await service.customer_breakdown(day)}


@appointment_router.post("")
async def create_appointment(
    data: AppointmentSlotInput,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "data": await service.create(data)}


@appointment_router.put("/{appointment_id}")
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    return {"success": True, "data": await service.update(appointment_id, data)}


@appointment_router.delete("/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: dict = Depends(get_current_user),
):
    await service.delete(appointment_id)
    return {"success": True, "message": "Appointment deleted"}


@appointment_router.post("/upload")
async def upload_appointments(
    file: UploadFile = File(...),
    service: ImportService = Depends(get_import_service),
    current_user: dict = Depends(get_current_user),
):
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="No file provided")
    return await service.import_file(contents, file.filename or "")
