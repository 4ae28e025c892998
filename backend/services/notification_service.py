"""
Notification Dispatcher
Sends driver emails through Resend and SMS through the Twilio REST API.

Dispatch is fire-and-forget from the caller's point of view: failures are
logged and reported in the result, never raised, and nothing is retried.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx
import resend

from backend.core.config import Settings
from backend.models.notification import (
    NotificationChannel,
    NotificationRequest,
    NotificationResult,
    NotificationType,
)

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


def render_message(notification_type: NotificationType, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Return (subject, body) for a notification"""
    driver = payload.get("driverName") or "Driver"
    reference = payload.get("referenceNumber") or "-"

    if notification_type == NotificationType.CHECKIN:
        subject = f"Check-in received: {reference}"
        body = (
            f"Hello {driver}, your {payload.get('loadType', 'inbound')} check-in for "
            f"{reference} was received at {payload.get('checkInTime', '-')}. "
            "Please wait for a dock assignment."
        )
    elif notification_type == NotificationType.DOCK_ASSIGNMENT:
        subject = f"Dock assigned: {payload.get('dockNumber', '-')}"
        body = f"Hello {driver}, you've been assigned to Dock {payload.get('dockNumber', '-')} for {reference}."
        if payload.get("appointmentTime"):
            body += f" Appointment: {payload['appointmentTime']}."
        body += " Please proceed to your assigned dock."
    elif notification_type == NotificationType.STATUS_CHANGE:
        subject = f"Check-in update: {reference}"
        body = (
            f"Hello {driver}, the status of {reference} changed from "
            f"{payload.get('oldStatus', '-')} to {payload.get('newStatus', '-')}."
        )
        if payload.get("notes"):
            body += f" Notes: {payload['notes']}"
    else:
        subject = f"Check-in denied: {reference}"
        body = f"Hello {driver}, your check-in for {reference} was denied."
        if payload.get("reason"):
            body += f" Reason: {payload['reason']}"
    return subject, body


class NotificationDispatcher:
    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport

    async def dispatch(self, request: NotificationRequest) -> NotificationResult:
        subject, body = render_message(request.type, request.payload)
        if request.channel == NotificationChannel.SMS:
            return await self.send_sms(request.destination, body)
        return await self.send_email(request.destination, subject, body)

    async def send_email(self, to_email: str, subject: str, body: str) -> NotificationResult:
        result = NotificationResult(success=False, channel=NotificationChannel.EMAIL, destination=to_email)
        if not self.settings.RESEND_API_KEY:
            logger.error("No email service configured - RESEND_API_KEY missing")
            result.error = "Email service not configured"
            return result

        try:
            logger.info(f"Sending email via Resend to: {to_email}")
            resend.api_key = self.settings.RESEND_API_KEY
            response = resend.Emails.send({
                "from": self.settings.EMAIL_FROM_ADDRESS,
                "to": [to_email],
                "subject": subject,
                "text": body,
            })
            result.success = True
            result.message_id = response.get("id") if isinstance(response, dict) else None
            logger.info(f"Email sent successfully via Resend: {result.message_id}")
        except Exception as e:
            logger.error(f"Email send error to {to_email}: {e}")
            result.error = str(e)
        return result

    async def send_sms(self, to_phone: str, body: str) -> NotificationResult:
        result = NotificationResult(success=False, channel=NotificationChannel.SMS, destination=to_phone)
        account_sid = self.settings.TWILIO_ACCOUNT_SID
        auth_token = self.settings.TWILIO_AUTH_TOKEN
        from_number = self.settings.TWILIO_PHONE_NUMBER

        if not to_phone:
            result.error = "No phone number provided"
            return result
        if not to_phone.startswith("+"):
            logger.warning(f"Phone number not in E.164 format: {to_phone}")
            result.error = "Phone number must be in E.164 format (e.g., +1234567890)"
            return result
        if not (account_sid and auth_token and from_number):
            logger.error("Twilio credentials not configured")
            result.error = "Twilio credentials not configured"
            return result

        try:
            logger.info(f"Sending SMS to Twilio API for {to_phone}")
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    TWILIO_MESSAGES_URL.format(account_sid=account_sid),
                    auth=(account_sid, auth_token),
                    data={"To": to_phone, "From": from_number, "Body": body},
                    timeout=10.0,
                )

            if response.status_code in [200, 201]:
                result.success = True
                result.message_id = response.json().get("sid")
                logger.info(f"SMS sent successfully to {to_phone} (SID: {result.message_id})")
            else:
                error_data = response.json()
                error_message = error_data.get("message", "Unknown error")
                error_code = error_data.get("code")
                result.error = f"[{error_code}] {error_message}" if error_code else error_message
                logger.error(f"Twilio API error [{error_code}]: {error_message}")
        except httpx.HTTPError as e:
            logger.error(f"Twilio API error: {str(e)}")
            result.error = str(e)
        return result

    async def notify_driver(
        self,
        notification_type: NotificationType,
        check_in: Dict[str, Any],
        extra: Optional[Dict[str, Any]] = None,
    ) -> list:
        """Send a notification to every contact the driver left on the check-in"""
        payload = {
            "driverName": check_in.get("driver_name"),
            "referenceNumber": check_in.get("reference_number"),
            "loadType": check_in.get("load_type"),
        }
        payload.update(extra or {})

        results = []
        if check_in.get("driver_email"):
            results.append(await self.dispatch(NotificationRequest(
                type=notification_type,
                channel=NotificationChannel.EMAIL,
                destination=check_in["driver_email"],
                payload=payload,
            )))
        phone = check_in.get("driver_phone") or ""
        if notification_type == NotificationType.DOCK_ASSIGNMENT and phone.startswith("+"):
            results.append(await self.dispatch(NotificationRequest(
                type=notification_type,
                channel=NotificationChannel.SMS,
                destination=phone,
                payload=payload,
            )))
        return results
