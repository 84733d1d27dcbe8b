import uuid

from django.core.validators import MaxLengthValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from apps.pets.models import Pet
from apps.users.models import ClientProfile


class Appointment(models.Model):
    class ServiceType(models.TextChoices):
        BATH = "banho", "Bath"
        HYGIENIC_TRIM = "tosa_higienica", "Hygienic trim"
        FULL_TRIM = "tosa_completa", "Full trim"
        HYDRATION = "hidratacao", "Hydration"
        BATH_AND_TRIM = "banho_tosa", "Bath + trim"

    class Status(models.TextChoices):
        SCHEDULED = "scheduled", "Scheduled"
        CONFIRMED = "confirmed", "Confirmed"
        IN_PROGRESS = "in_progress", "In Progress"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    TERMINAL_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    client = models.ForeignKey(ClientProfile, on_delete=models.CASCADE, related_name="appointments")
    pet = models.ForeignKey(Pet, on_delete=models.CASCADE, related_name="appointments")
    service_type = models.CharField(max_length=20, choices=ServiceType.choices)
    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SCHEDULED)
    price = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    notes = models.TextField(blank=True, validators=[MaxLengthValidator(1024)])
    reminder_sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "appointments"
        ordering = ["appointment_date", "appointment_time"]
        constraints = [
            models.UniqueConstraint(
                fields=["appointment_date", "appointment_time"],
                condition=~Q(status="cancelled"),
                name="uniq_active_appointment_slot",
            ),
        ]
        indexes = [
            models.Index(fields=["appointment_date"], name="appointments_date_idx"),
        ]

    def __str__(self):
        return f"{self.pet} - {self.get_service_type_display()} @ {self.appointment_date} {self.appointment_time:%H:%M}"

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES
