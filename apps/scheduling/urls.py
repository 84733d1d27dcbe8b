from django.urls import path
from .api_views import (
    AppointmentCancelView,
    AppointmentCompleteView,
    AppointmentDetailView,
    AppointmentListCreateView,
    AppointmentRescheduleView,
    AppointmentStartView,
)

app_name = "scheduling"
urlpatterns = [
    path("appointments/", AppointmentListCreateView.as_view(), name="appointments-list"),
    path("appointments/<uuid:pk>/", AppointmentDetailView.as_view(), name="appointments-detail"),
    path("appointments/<uuid:pk>/start/", AppointmentStartView.as_view(), name="appointments-start"),
    path("appointments/<uuid:pk>/complete/", AppointmentCompleteView.as_view(), name="appointments-complete"),
    path("appointments/<uuid:pk>/cancel/", AppointmentCancelView.as_view(), name="appointments-cancel"),
    path(
        "appointments/<uuid:pk>/reschedule/",
        AppointmentRescheduleView.as_view(),
        name="appointments-reschedule",
    ),
]
