from django.urls import include, path

from apps.scheduling.views import confirm_appointment_view


API_PREFIX = "api/v1/"

urlpatterns = [
    path(API_PREFIX, include("apps.scheduling.urls")),
    path(API_PREFIX, include("apps.users.urls")),
    path(API_PREFIX, include("apps.pets.urls")),
    path("confirm-appointment/", confirm_appointment_view, name="confirm-appointment"),
]
