"""
Daily reminder sweep.

Sends one reminder per non-cancelled appointment dated tomorrow. Rows are
stamped with reminder_sent_at after a successful send, so a second run on the
same day only retries the ones that failed.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from django.utils import timezone

from apps.scheduling.models import Appointment

from .dispatcher import NotificationDispatcher, get_dispatcher


logger = logging.getLogger(__name__)


@dataclass
class ReminderSweepResult:
    target_date: date
    sent: int = 0
    failed: list = field(default_factory=list)


def due_reminders(target_date: date):
    return (
        Appointment.objects.select_related("client__user", "pet")
        .filter(appointment_date=target_date, reminder_sent_at__isnull=True)
        .exclude(status=Appointment.Status.CANCELLED)
        .order_by("appointment_time")
    )


def send_appointment_reminders(
    today: Optional[date] = None, dispatcher: Optional[NotificationDispatcher] = None
) -> ReminderSweepResult:
    today = today or timezone.localdate()
    dispatcher = dispatcher or get_dispatcher()
    result = ReminderSweepResult(target_date=today + timedelta(days=1))

    for appointment in due_reminders(result.target_date):
        try:
            outcome = dispatcher.send_appointment_reminder(appointment)
        except Exception:
            logger.exception("Reminder send raised", extra={"appointment_id": str(appointment.pk)})
            result.failed.append(str(appointment.pk))
            continue
        if not outcome.success:
            result.failed.append(str(appointment.pk))
            continue
        Appointment.objects.filter(pk=appointment.pk).update(reminder_sent_at=timezone.now())
        result.sent += 1

    logger.info(
        "Reminder sweep finished",
        extra={
            "target_date": result.target_date.isoformat(),
            "sent": result.sent,
            "failed": len(result.failed),
        },
    )
    return result
