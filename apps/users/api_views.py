import logging
from functools import partial

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model, login, logout
from django.contrib.auth.forms import SetPasswordForm
from django.contrib.auth.tokens import default_token_generator
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.shortcuts import get_object_or_404
from django.utils.encoding import force_bytes
from django.utils.http import urlencode, urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.generics import ListCreateAPIView, RetrieveUpdateAPIView, RetrieveUpdateDestroyAPIView
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.notifications.dispatcher import get_dispatcher
from apps.scheduling.exceptions import ConflictError
from apps.scheduling.pagination import SalonPagination

from .models import ClientProfile, UserRole
from .permissions import IsSalonAdmin
from .serializers import (
    ClientProfileSerializer,
    LoginSerializer,
    PasswordResetConfirmSerializer,
    PasswordResetRequestSerializer,
    RegisterSerializer,
    UserRoleSerializer,
)
from .session import Session


logger = logging.getLogger(__name__)


def _send_welcome(profile):
    try:
        get_dispatcher().send_welcome(profile)
    except Exception:
        logger.exception("Could not queue welcome email", extra={"client_id": profile.pk})


class ClientProfileListCreateView(ListCreateAPIView):
    """Admins list every client; any signed-in user registers their own profile."""

    serializer_class = ClientProfileSerializer
    pagination_class = SalonPagination
    queryset = ClientProfile.objects.select_related("user").order_by("full_name", "id")

    def get_permissions(self):
        if self.request.method == "GET":
            return [IsSalonAdmin()]
        return [IsAuthenticated()]

    def perform_create(self, serializer):
        if ClientProfile.objects.filter(user=self.request.user).exists():
            raise ConflictError("A client profile already exists for this account.")
        try:
            with transaction.atomic():
                profile = serializer.save(user=self.request.user)
        except IntegrityError:
            raise ConflictError("A client profile already exists for this account.")
        logger.info("Client profile registered", extra={"client_id": profile.pk})
        transaction.on_commit(partial(_send_welcome, profile))


class ClientProfileMeView(RetrieveUpdateAPIView):

    serializer_class = ClientProfileSerializer

    def get_object(self):
        return Session.from_request(self.request).profile()


class ClientProfileDetailView(RetrieveUpdateDestroyAPIView):

    serializer_class = ClientProfileSerializer
    permission_classes = [IsSalonAdmin]
    queryset = ClientProfile.objects.select_related("user")

    def perform_destroy(self, instance):
        # pets and appointments go with the profile (on_delete=CASCADE)
        logger.info(
            "Deleting client profile",
            extra={"client_id": instance.pk, "pets": instance.pets.count()},
        )
        instance.delete()


class UserRoleView(APIView):

    permission_classes = [IsSalonAdmin]

    def post(self, request, user_id):
        user = get_object_or_404(get_user_model(), pk=user_id)
        serializer = UserRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = serializer.validated_data["role"]

        if role == UserRole.Role.ADMIN:
            UserRole.objects.get_or_create(user=user, role=UserRole.Role.ADMIN)
        else:
            UserRole.objects.filter(user=user, role=UserRole.Role.ADMIN).delete()

        logger.info(
            "User role changed",
            extra={"user_id": user.pk, "role": role, "changed_by": request.user.pk},
        )
        return Response({"user": user.pk, "role": role})


class PasswordResetRequestView(APIView):
    """Always answers 202 so the endpoint does not reveal which emails exist."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PasswordResetRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"]

        users = get_user_model().objects.filter(email__iexact=email, is_active=True)
        dispatcher = get_dispatcher()
        for user in users:
            query = urlencode(
                {
                    "uid": urlsafe_base64_encode(force_bytes(user.pk)),
                    "token": default_token_generator.make_token(user),
                }
            )
            reset_url = f"{settings.SITE_URL.rstrip('/')}/reset-password?{query}"
            dispatcher.send_password_reset(user, reset_url)

        return Response(
            {"detail": "If the account exists, a password reset email has been sent."},
            status=status.HTTP_202_ACCEPTED,
        )


class PasswordResetConfirmView(APIView):
    """Sets a new password from the uid and token carried by the reset email."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PasswordResetConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = _user_from_uid(data["uid"])
        if user is None or not default_token_generator.check_token(user, data["token"]):
            raise ValidationError({"token": "Invalid or expired reset link."})

        form = SetPasswordForm(
            user,
            data={"new_password1": data["new_password"], "new_password2": data["new_password_confirm"]},
        )
        if not form.is_valid():
            raise ValidationError(
                {field: [m for e in errors for m in e.messages] for field, errors in form.errors.as_data().items()}
            )
        form.save()
        logger.info("Password reset completed", extra={"user_id": user.pk})
        return Response({"detail": "Your password has been reset."})


def _user_from_uid(uid):
    User = get_user_model()
    try:
        return User.objects.get(pk=urlsafe_base64_decode(uid).decode())
    except (TypeError, ValueError, OverflowError, User.DoesNotExist, DjangoValidationError):
        return None


class RegisterView(APIView):
    """Creates the sign-in account and starts a session; the client profile comes next."""

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        User = get_user_model()
        email = data["email"].lower()
        if User.objects.filter(email__iexact=email).exists():
            raise ConflictError("An account with this email already exists.")
        try:
            with transaction.atomic():
                user = User.objects.create_user(
                    username=email, email=email, password=data["password"], first_name=data["full_name"]
                )
        except IntegrityError:
            raise ConflictError("An account with this email already exists.")

        login(request, user)
        logger.info("Account registered", extra={"user_id": user.pk})
        return Response(_account_data(user), status=status.HTTP_201_CREATED)


class LoginView(APIView):

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        email = serializer.validated_data["email"]

        account = get_user_model().objects.filter(email__iexact=email, is_active=True).first()
        user = None
        if account is not None:
            user = authenticate(
                request, username=account.get_username(), password=serializer.validated_data["password"]
            )
        if user is None:
            logger.warning("Failed sign-in", extra={"email": email})
            raise ValidationError({"detail": "Invalid email or password."})

        login(request, user)
        return Response(_account_data(user))


class LogoutView(APIView):

    def post(self, request):
        logout(request)
        return Response(status=status.HTTP_204_NO_CONTENT)


def _account_data(user):
    session = Session.for_user(user)
    return {
        "id": user.pk,
        "email": user.email,
        "role": session.role,
        "has_profile": ClientProfile.objects.filter(user=user).exists(),
    }
