from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from backend.core.security import get_current_user
from backend.routes.deps import get_report_service
from backend.services.report_service import ReportService

report_router = APIRouter(prefix="/reports", tags=["reports"])


@report_router.get("/daily")
async def daily_report(
    day: Optional[date] = None,
    service: ReportService = Depends(get_report_service),
    current_user: dict = Depends(get_current_user),
):
    """On-time and detention figures for one facility day"""
    return {"success": True, "report": await service.daily_report(day)}


@report_router.get("/daily-log.csv")
async def daily_log_csv(
    day: Optional[date] = None,
    service: ReportService = Depends(get_report_service),
    current_user: dict = Depends(get_current_user),
):
    content = await service.daily_log_csv(day)
    filename = f"daily-log-{day.isoformat()}.csv" if day else "daily-log.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
