"""
Notification dispatcher.

Relays one templated email per lifecycle event to the email function
endpoint. Delivery is best-effort: failures are retried a bounded number of
times, logged and reported in the returned DispatchResult. Transport
problems are never raised.
"""
import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import requests
from django.conf import settings
from django.utils import formats

from apps.scheduling import tokens


logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notifications")


class EmailType(str, Enum):
    WELCOME = "welcome"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_REMINDER = "appointment_reminder"
    PASSWORD_RESET = "password-reset"


@dataclass
class DispatchResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


def appointment_email_data(appointment, confirmation_url: Optional[str] = None) -> dict:
    data = {
        "appointmentId": str(appointment.pk),
        "petName": appointment.pet.name,
        "serviceType": appointment.get_service_type_display(),
        "appointmentDate": formats.date_format(appointment.appointment_date, "DATE_FORMAT"),
        "appointmentTime": appointment.appointment_time.strftime("%H:%M"),
        "price": str(appointment.price) if appointment.price is not None else None,
        "notes": appointment.notes or None,
        "clinicName": settings.SALON_NAME,
    }
    if confirmation_url:
        data["confirmationUrl"] = confirmation_url
    return data


def _log_unexpected_failure(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Email dispatch raised", exc_info=exc)


class NotificationDispatcher:
    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        http: Optional[requests.Session] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.url = url if url is not None else settings.NOTIFICATIONS_FUNCTION_URL
        self.timeout = timeout if timeout is not None else settings.NOTIFICATIONS_TIMEOUT
        self.max_attempts = max_attempts if max_attempts is not None else settings.NOTIFICATIONS_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.NOTIFICATIONS_RETRY_DELAY
        self.http = http or requests.Session()
        self.executor = executor or _executor

    def send(
        self,
        email_type: EmailType,
        to: str,
        user_name: str,
        data: Optional[dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> DispatchResult:
        """Send one email, retrying with a fixed delay between attempts."""
        email_type = EmailType(email_type)
        correlation_id = correlation_id or f"ntf-{uuid.uuid4().hex}"
        log_extra = {
            "correlation_id": correlation_id,
            "email_type": email_type.value,
            "to": to,
        }

        if not self.url:
            logger.warning("NOTIFICATIONS_FUNCTION_URL not configured; email not sent", extra=log_extra)
            return DispatchResult(success=False, error="Notifications endpoint not configured")

        body = {"type": email_type.value, "to": to, "userName": user_name, "data": data or {}}
        headers = {"X-Correlation-Id": correlation_id, "Accept": "application/json"}

        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = self.http.post(self.url, json=body, headers=headers, timeout=self.timeout)
                payload = resp.json() if resp.content else {}
                if not isinstance(payload, dict):
                    payload = {"error": f"Unexpected reply from email function: {payload!r}"}
                if resp.ok and payload.get("success"):
                    logger.info(
                        "Email dispatched",
                        extra={**log_extra, "attempt": attempt, "message_id": payload.get("messageId")},
                    )
                    return DispatchResult(
                        success=True, message_id=payload.get("messageId"), attempts=attempt
                    )
                last_error = payload.get("error") or f"Email function returned status {resp.status_code}"
            except (requests.RequestException, ValueError) as e:
                last_error = str(e) or e.__class__.__name__

            logger.warning(
                "Email dispatch attempt failed",
                extra={**log_extra, "attempt": attempt, "error": last_error},
            )
            if attempt < self.max_attempts:
                time.sleep(self.retry_delay)

        logger.error(
            "Email dispatch failed after %d attempts",
            self.max_attempts,
            extra={**log_extra, "error": last_error},
        )
        return DispatchResult(success=False, error=last_error, attempts=self.max_attempts)

    def send_async(self, *args, **kwargs) -> Future:
        future = self.executor.submit(self.send, *args, **kwargs)
        future.add_done_callback(_log_unexpected_failure)
        return future

    def send_welcome(self, profile) -> Future:
        data = {
            "loginUrl": f"{settings.SITE_URL.rstrip('/')}/auth",
            "clinicName": settings.SALON_NAME,
        }
        return self.send_async(EmailType.WELCOME, profile.contact_email, profile.full_name, data)

    def send_appointment_confirmation(self, appointment) -> Future:
        profile = appointment.client
        data = appointment_email_data(appointment, confirmation_url=tokens.confirmation_url(appointment))
        return self.send_async(
            EmailType.APPOINTMENT_CONFIRMATION, profile.contact_email, profile.full_name, data
        )

    def send_appointment_reminder(self, appointment) -> DispatchResult:
        """Synchronous: the reminder sweep needs the outcome to stamp the row."""
        profile = appointment.client
        return self.send(
            EmailType.APPOINTMENT_REMINDER,
            profile.contact_email,
            profile.full_name,
            appointment_email_data(appointment),
        )

    def send_password_reset(self, user, reset_url: str) -> Future:
        name = user.get_full_name() or user.get_username()
        data = {"resetUrl": reset_url, "expirationTime": f"{settings.PASSWORD_RESET_TIMEOUT // 3600} hours"}
        return self.send_async(EmailType.PASSWORD_RESET, user.email, name, data)


_default_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    global _default_dispatcher
    if _default_dispatcher is None:
        _default_dispatcher = NotificationDispatcher()
    return _default_dispatcher
