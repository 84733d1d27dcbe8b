from rest_framework import serializers

from .models import Appointment


class AppointmentListSerializer(serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.full_name", read_only=True)
    pet_name = serializers.CharField(source="pet.name", read_only=True)
    service_name = serializers.CharField(source="get_service_type_display", read_only=True)
    appointment_time = serializers.TimeField(format="%H:%M", read_only=True)

    class Meta:
        model = Appointment
        fields = (
            "id",
            "client",
            "pet",
            "service_type",
            "appointment_date",
            "appointment_time",
            "status",
            "price",
            "notes",
            "created_at",
            "updated_at",
            "client_name",
            "pet_name",
            "service_name",
        )
        read_only_fields = fields


class AppointmentCreateSerializer(serializers.Serializer):
    client = serializers.IntegerField(required=False)
    pet = serializers.IntegerField()
    service_type = serializers.ChoiceField(choices=Appointment.ServiceType.choices)
    appointment_date = serializers.DateField()
    appointment_time = serializers.TimeField()
    price = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    notes = serializers.CharField(max_length=1024, required=False, allow_blank=True, default="")


class RescheduleSerializer(serializers.Serializer):
    appointment_date = serializers.DateField()
    appointment_time = serializers.TimeField()


class ConfirmQuerySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    token = serializers.CharField()
