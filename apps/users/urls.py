from django.urls import path
from .api_views import (
    ClientProfileDetailView,
    ClientProfileListCreateView,
    ClientProfileMeView,
    LoginView,
    LogoutView,
    PasswordResetConfirmView,
    PasswordResetRequestView,
    RegisterView,
    UserRoleView,
)

app_name = "users"
urlpatterns = [
    path("clients/", ClientProfileListCreateView.as_view(), name="clients-list"),
    path("clients/me/", ClientProfileMeView.as_view(), name="clients-me"),
    path("clients/<int:pk>/", ClientProfileDetailView.as_view(), name="clients-detail"),
    path("users/<int:user_id>/role/", UserRoleView.as_view(), name="user-role"),
    path("auth/register/", RegisterView.as_view(), name="register"),
    path("auth/login/", LoginView.as_view(), name="login"),
    path("auth/logout/", LogoutView.as_view(), name="logout"),
    path("auth/password-reset/", PasswordResetRequestView.as_view(), name="password-reset"),
    path("auth/password-reset/confirm/", PasswordResetConfirmView.as_view(), name="password-reset-confirm"),
]
