"""
Appointment lifecycle controller.

Every status change goes through here. Slot conflicts are detected by the
database's unique constraint on (appointment_date, appointment_time) for
non-cancelled rows; this module only maps the resulting IntegrityError to
ConflictError. Nothing is retried.

    scheduled -> confirmed -> in_progress -> completed

cancelled is reachable from every non-terminal status.
"""
import logging
from datetime import date, time
from decimal import Decimal
from enum import Enum
from functools import partial
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from apps.notifications.dispatcher import NotificationDispatcher, get_dispatcher
from apps.pets.models import Pet
from apps.users.models import ClientProfile
from apps.users.session import Session

from .exceptions import AuthError, ConflictError, InvalidToken, InvalidTransition, NotFoundError
from .models import Appointment
from .tokens import check_confirmation_token


logger = logging.getLogger(__name__)

Status = Appointment.Status

MAX_NOTES_LENGTH = 1024


class ConfirmationResult(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_CONFIRMED = "already_confirmed"


def validate_slot_date(value: date) -> None:
    if value < timezone.localdate():
        raise ValidationError({"appointment_date": "Appointments cannot be booked in the past."})


def validate_slot_time(value: time) -> None:
    if value.second or value.microsecond or value.strftime("%H:%M") not in settings.APPOINTMENT_TIME_SLOTS:
        raise ValidationError(
            {"appointment_time": f"{value:%H:%M} is not a bookable time slot."}
        )


class AppointmentLifecycle:
    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher or get_dispatcher()

    def create(
        self,
        session: Session,
        pet: Pet,
        service_type: str,
        appointment_date: date,
        appointment_time: time,
        price: Optional[Decimal] = None,
        notes: str = "",
        client: Optional[ClientProfile] = None,
    ) -> Appointment:
        """
        Book a slot for a pet.

        Administrators must name the client they are booking for; everyone
        else books for their own profile. The confirmation email is sent
        after commit and its outcome never affects the booking.
        """
        client = self._resolve_client(session, client)

        if pet.owner_id != client.pk:
            raise ValidationError({"pet": "Pet does not belong to the selected client."})
        if service_type not in Appointment.ServiceType.values:
            raise ValidationError({"service_type": f'"{service_type}" is not a valid service type.'})
        validate_slot_date(appointment_date)
        validate_slot_time(appointment_time)
        if price is not None and price < 0:
            raise ValidationError({"price": "Price must not be negative."})
        notes = notes or ""
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError({"notes": f"notes must not exceed {MAX_NOTES_LENGTH} characters"})

        appointment = Appointment(
            client=client,
            pet=pet,
            service_type=service_type,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            price=price,
            notes=notes,
            status=Status.SCHEDULED,
        )
        try:
            with transaction.atomic():
                appointment.save(force_insert=True)
        except IntegrityError:
            logger.warning(
                "Slot already taken",
                extra={
                    "client_id": client.pk,
                    "appointment_date": str(appointment_date),
                    "appointment_time": str(appointment_time),
                },
            )
            raise ConflictError()

        logger.info(
            "Appointment created",
            extra={
                "appointment_id": str(appointment.pk),
                "client_id": client.pk,
                "pet_id": pet.pk,
                "appointment_date": str(appointment_date),
                "appointment_time": str(appointment_time),
            },
        )
        transaction.on_commit(partial(self._notify_created, appointment))
        return appointment

    def confirm(self, appointment_id, token: str) -> ConfirmationResult:
        """Confirm from the emailed link. Re-confirming reports ALREADY_CONFIRMED."""
        with transaction.atomic():
            appointment = self._get_locked(appointment_id)
            if not check_confirmation_token(appointment, token):
                logger.warning(
                    "Invalid confirmation token", extra={"appointment_id": str(appointment.pk)}
                )
                raise InvalidToken()
            if appointment.status == Status.CONFIRMED:
                return ConfirmationResult.ALREADY_CONFIRMED
            if appointment.status != Status.SCHEDULED:
                raise InvalidTransition(appointment.status, "confirm")
            self._set_status(appointment, Status.CONFIRMED)
        return ConfirmationResult.CONFIRMED

    def start(self, session: Session, appointment_id) -> Appointment:
        return self._transition(
            session,
            appointment_id,
            action="start",
            allowed_from=(Status.CONFIRMED,),
            target=Status.IN_PROGRESS,
            admin_only=True,
        )

    def complete(self, session: Session, appointment_id) -> Appointment:
        return self._transition(
            session,
            appointment_id,
            action="complete",
            allowed_from=(Status.CONFIRMED, Status.IN_PROGRESS),
            target=Status.COMPLETED,
            admin_only=True,
        )

    def cancel(self, session: Session, appointment_id) -> Appointment:
        return self._transition(
            session,
            appointment_id,
            action="cancel",
            allowed_from=(Status.SCHEDULED, Status.CONFIRMED, Status.IN_PROGRESS),
            target=Status.CANCELLED,
            admin_only=False,
        )

    def reschedule(self, session: Session, appointment_id, new_date: date, new_time: time) -> Appointment:
        """Move to a new slot. On conflict the stored row is left as it was."""
        validate_slot_date(new_date)
        validate_slot_time(new_time)
        with transaction.atomic():
            appointment = self._get_locked(appointment_id)
            self._authorize(session, appointment, admin_only=True)
            if appointment.is_terminal:
                raise InvalidTransition(appointment.status, "reschedule")

            appointment.appointment_date = new_date
            appointment.appointment_time = new_time
            appointment.reminder_sent_at = None
            try:
                with transaction.atomic():
                    appointment.save(
                        update_fields=["appointment_date", "appointment_time", "reminder_sent_at", "updated_at"]
                    )
            except IntegrityError:
                logger.warning(
                    "Reschedule target slot already taken",
                    extra={
                        "appointment_id": str(appointment.pk),
                        "appointment_date": str(new_date),
                        "appointment_time": str(new_time),
                    },
                )
                raise ConflictError()

        logger.info(
            "Appointment rescheduled",
            extra={
                "appointment_id": str(appointment.pk),
                "appointment_date": str(new_date),
                "appointment_time": str(new_time),
            },
        )
        return appointment

    def _transition(self, session, appointment_id, action, allowed_from, target, admin_only):
        with transaction.atomic():
            appointment = self._get_locked(appointment_id)
            self._authorize(session, appointment, admin_only=admin_only)
            if appointment.status not in allowed_from:
                logger.warning(
                    "Rejected %s transition",
                    action,
                    extra={"appointment_id": str(appointment.pk), "status": appointment.status},
                )
                raise InvalidTransition(appointment.status, action)
            self._set_status(appointment, target)
        return appointment

    def _set_status(self, appointment: Appointment, target: str) -> None:
        previous = appointment.status
        appointment.status = target
        appointment.save(update_fields=["status", "updated_at"])
        logger.info(
            "Appointment status changed",
            extra={"appointment_id": str(appointment.pk), "from_status": previous, "to_status": target},
        )

    def _get_locked(self, appointment_id) -> Appointment:
        try:
            return Appointment.objects.select_for_update().get(pk=appointment_id)
        except (Appointment.DoesNotExist, DjangoValidationError):
            raise NotFoundError()

    def _authorize(self, session: Session, appointment: Appointment, admin_only: bool) -> None:
        if session.is_admin:
            return
        if admin_only or appointment.client.user_id != session.user.pk:
            raise AuthError()

    def _resolve_client(self, session: Session, client: Optional[ClientProfile]) -> ClientProfile:
        if session.is_admin:
            if client is None:
                raise ValidationError({"client": "Select the client this appointment is for."})
            return client
        own = session.profile()
        if client is not None and client.pk != own.pk:
            raise AuthError()
        return own

    def _notify_created(self, appointment: Appointment) -> None:
        try:
            self.dispatcher.send_appointment_confirmation(appointment)
        except Exception:
            logger.exception(
                "Could not queue confirmation email", extra={"appointment_id": str(appointment.pk)}
            )
