from fastapi import APIRouter, Depends, HTTPException
from backend.core.security import get_current_user
from backend.models.notification import EmailSendRequest, NotificationChannel, NotificationRequest, SmsSendRequest
from backend.routes.deps import get_notifier
from backend.services.notification_service import NotificationDispatcher

notification_router = APIRouter(prefix="/notifications", tags=["notifications"])


@notification_router.post("/email")
async def send_email(
    request: EmailSendRequest,
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: dict = Depends(get_current_user),
):
    result = await notifier.dispatch(NotificationRequest(
        type=request.type,
        channel=NotificationChannel.EMAIL,
        destination=request.to_email,
        payload=request.data,
    ))
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Failed to send email")
    return {"success": True, "messageId": result.message_id}


@notification_router.post("/sms")
async def send_sms(
    request: SmsSendRequest,
    notifier: NotificationDispatcher = Depends(get_notifier),
    current_user: dict = Depends(get_current_user),
):
    result = await notifier.send_sms(request.phone_number, request.message)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "Failed to send SMS")
    return {"success": True, "messageId": result.message_id}
