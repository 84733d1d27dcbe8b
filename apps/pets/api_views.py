import logging

from rest_framework.exceptions import ValidationError
from rest_framework.generics import GenericAPIView, ListCreateAPIView, RetrieveUpdateDestroyAPIView
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from apps.scheduling.pagination import SalonPagination
from apps.users.session import Session

from . import storage
from .models import Pet
from .serializers import PetPhotoSerializer, PetSerializer


logger = logging.getLogger(__name__)


def scoped_pets(request):
    queryset = Pet.objects.select_related("owner").order_by("name", "id")
    if Session.from_request(request).is_admin:
        return queryset
    return queryset.filter(owner__user=request.user)


class PetListCreateView(ListCreateAPIView):

    serializer_class = PetSerializer
    pagination_class = SalonPagination
    filterset_fields = ["owner"]

    def get_queryset(self):
        return scoped_pets(self.request)

    def perform_create(self, serializer):
        session = Session.from_request(self.request)
        if session.is_admin:
            owner = serializer.validated_data.get("owner")
            if owner is None:
                raise ValidationError({"owner": "Select the client this pet belongs to."})
        else:
            owner = session.profile()
        pet = serializer.save(owner=owner)
        logger.info("Pet registered", extra={"pet_id": pet.pk, "client_id": owner.pk})


class PetDetailView(RetrieveUpdateDestroyAPIView):

    serializer_class = PetSerializer

    def get_queryset(self):
        return scoped_pets(self.request)

    def perform_update(self, serializer):
        if "owner" in serializer.validated_data and not Session.from_request(self.request).is_admin:
            serializer.validated_data.pop("owner")
        serializer.save()


class PetPhotoUploadView(GenericAPIView):

    serializer_class = PetPhotoSerializer
    parser_classes = [MultiPartParser, FormParser]

    def get_queryset(self):
        return scoped_pets(self.request)

    def post(self, request, pk):
        pet = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pet.photo_url = storage.upload_pet_photo(pet, serializer.validated_data["photo"])
        pet.save(update_fields=["photo_url"])
        return Response(PetSerializer(pet).data)
