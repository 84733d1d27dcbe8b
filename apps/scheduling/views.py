import logging

from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .lifecycle import AppointmentLifecycle
from .models import Appointment
from .serializers import ConfirmQuerySerializer

logger = logging.getLogger(__name__)


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def confirm_appointment_view(request):
    """
    Target of the link in the confirmation email:
    /confirm-appointment/?id=<uuid>&token=<signed token>

    Unauthenticated; the signed token identifies the appointment and client.
    """
    query = ConfirmQuerySerializer(data=request.query_params)
    if not query.is_valid():
        raise ValidationError({"detail": "Invalid link: id and token are required."}, code="invalid_params")

    appointment_id = query.validated_data["id"]
    result = AppointmentLifecycle().confirm(appointment_id, query.validated_data["token"])
    logger.info("Confirmation link processed", extra={"appointment_id": str(appointment_id), "result": result.value})

    appointment = Appointment.objects.get(pk=appointment_id)
    return Response(
        {
            "status": result.value,
            "appointment": {
                "id": str(appointment.pk),
                "appointment_date": appointment.appointment_date.isoformat(),
                "appointment_time": appointment.appointment_time.strftime("%H:%M"),
                "status": appointment.status,
            },
        }
    )
