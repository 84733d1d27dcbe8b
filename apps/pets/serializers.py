from django.conf import settings
from rest_framework import serializers

from apps.users.models import ClientProfile

from .models import Pet


class PetSerializer(serializers.ModelSerializer):
    owner = serializers.PrimaryKeyRelatedField(queryset=ClientProfile.objects.all(), required=False)
    owner_name = serializers.CharField(source="owner.full_name", read_only=True)

    class Meta:
        model = Pet
        fields = (
            "id",
            "owner",
            "owner_name",
            "name",
            "breed",
            "age",
            "weight",
            "color",
            "gender",
            "photo_url",
            "notes",
            "created_at",
        )
        read_only_fields = ("id", "photo_url", "created_at")


class PetPhotoSerializer(serializers.Serializer):
    photo = serializers.FileField()

    def validate_photo(self, value):
        if not (value.content_type or "").startswith("image/"):
            raise serializers.ValidationError("Upload an image file.")
        if value.size > settings.PET_PHOTOS_MAX_BYTES:
            raise serializers.ValidationError("Image is too large.")
        return value
