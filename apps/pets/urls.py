from django.urls import path
from .api_views import PetDetailView, PetListCreateView, PetPhotoUploadView

app_name = "pets"
urlpatterns = [
    path("pets/", PetListCreateView.as_view(), name="pets-list"),
    path("pets/<int:pk>/", PetDetailView.as_view(), name="pets-detail"),
    path("pets/<int:pk>/photo/", PetPhotoUploadView.as_view(), name="pets-photo"),
]
