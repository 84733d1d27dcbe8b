from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from apps.notifications.dispatcher import NotificationDispatcher
from apps.pets.models import Pet
from apps.users.models import ClientProfile, UserRole
from apps.users.session import Session


PROFILE_DEFAULTS = {
    "tax_id": "123.456.789-09",
    "phone": "+5511999990000",
    "street": "Rua das Flores",
    "number": "42",
    "neighborhood": "Centro",
    "city": "Sao Paulo",
    "state": "SP",
    "postal_code": "01000-000",
    "emergency_name": "Maria Silva",
    "emergency_phone": "+5511988880000",
    "emergency_relationship": "Sister",
}


@pytest.fixture
def make_user(db):
    User = get_user_model()

    def _make(username, admin=False, **kwargs):
        kwargs.setdefault("email", f"{username}@example.com")
        user = User.objects.create_user(username=username, password="password", **kwargs)
        if admin:
            UserRole.objects.create(user=user, role=UserRole.Role.ADMIN)
        return user

    return _make


@pytest.fixture
def make_profile(db):
    def _make(user, full_name=None, **kwargs):
        fields = {**PROFILE_DEFAULTS, **kwargs}
        return ClientProfile.objects.create(
            user=user,
            full_name=full_name or user.username.title(),
            email=user.email,
            **fields,
        )

    return _make


@pytest.fixture
def make_pet(db):
    def _make(owner, name="Rex", **kwargs):
        return Pet.objects.create(owner=owner, name=name, **kwargs)

    return _make


@pytest.fixture
def client_x(make_user, make_profile):
    return make_profile(make_user("clientx"), full_name="Client X")


@pytest.fixture
def client_y(make_user, make_profile):
    return make_profile(make_user("clienty"), full_name="Client Y")


@pytest.fixture
def pet_rex(make_pet, client_x):
    return make_pet(client_x, name="Rex", breed="Poodle", weight=Decimal("7.50"))


@pytest.fixture
def pet_luna(make_pet, client_y):
    return make_pet(client_y, name="Luna")


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", admin=True)


@pytest.fixture
def admin_session(admin_user):
    return Session.for_user(admin_user)


@pytest.fixture
def session_x(client_x):
    return Session.for_user(client_x.user)


@pytest.fixture
def session_y(client_y):
    return Session.for_user(client_y.user)


@pytest.fixture
def fake_dispatcher():
    return MagicMock(spec=NotificationDispatcher)


@pytest.fixture
def api_client():
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client

    return _client


@pytest.fixture
def booking_date():
    return timezone.localdate() + timedelta(days=30)
