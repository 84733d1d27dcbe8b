import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.generics import ListCreateAPIView, RetrieveAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.pets.models import Pet
from apps.users.models import ClientProfile
from apps.users.session import Session

from .filters import AppointmentListFilter
from .lifecycle import AppointmentLifecycle
from .models import Appointment
from .pagination import SalonPagination
from .serializers import AppointmentCreateSerializer, AppointmentListSerializer, RescheduleSerializer


logger = logging.getLogger(__name__)


def scoped_appointments(request):
    queryset = Appointment.objects.select_related("client", "pet").order_by(
        "appointment_date", "appointment_time", "id"
    )
    if Session.from_request(request).is_admin:
        return queryset
    return queryset.filter(client__user=request.user)


class AppointmentListCreateView(ListCreateAPIView):

    serializer_class = AppointmentListSerializer
    pagination_class = SalonPagination
    filterset_class = AppointmentListFilter

    def get_queryset(self):
        return scoped_appointments(self.request)

    def create(self, request, *args, **kwargs):
        serializer = AppointmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        pet = Pet.objects.filter(pk=data["pet"]).first()
        if pet is None:
            raise ValidationError({"pet": "Pet not found."})
        client = None
        if data.get("client") is not None:
            client = ClientProfile.objects.filter(pk=data["client"]).first()
            if client is None:
                raise ValidationError({"client": "Client not found."})

        appointment = AppointmentLifecycle().create(
            Session.from_request(request),
            pet=pet,
            service_type=data["service_type"],
            appointment_date=data["appointment_date"],
            appointment_time=data["appointment_time"],
            price=data.get("price"),
            notes=data.get("notes", ""),
            client=client,
        )
        return Response(AppointmentListSerializer(appointment).data, status=status.HTTP_201_CREATED)


class AppointmentDetailView(RetrieveAPIView):

    serializer_class = AppointmentListSerializer

    def get_queryset(self):
        return scoped_appointments(self.request)


class AppointmentTransitionView(APIView):
    """POST-only endpoint running one lifecycle transition."""

    transition = None

    def post(self, request, pk):
        lifecycle = AppointmentLifecycle()
        appointment = getattr(lifecycle, self.transition)(Session.from_request(request), pk)
        return Response(AppointmentListSerializer(appointment).data)


class AppointmentStartView(AppointmentTransitionView):
    transition = "start"


class AppointmentCompleteView(AppointmentTransitionView):
    transition = "complete"


class AppointmentCancelView(AppointmentTransitionView):
    transition = "cancel"


class AppointmentRescheduleView(APIView):

    def post(self, request, pk):
        serializer = RescheduleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        appointment = AppointmentLifecycle().reschedule(
            Session.from_request(request),
            pk,
            serializer.validated_data["appointment_date"],
            serializer.validated_data["appointment_time"],
        )
        return Response(AppointmentListSerializer(appointment).data)
