import pytest
from datetime import date, time
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.tokens import default_token_generator
from django.db import IntegrityError
from django.utils.encoding import force_bytes
from django.utils.http import urlsafe_base64_encode

from apps.pets.models import Pet
from apps.scheduling.exceptions import ProfileRequired
from apps.scheduling.models import Appointment
from apps.users.models import ClientProfile, UserRole
from apps.users.serializers import ClientProfileSerializer
from apps.users.session import Session

API_PREFIX = "/api/v1"


@pytest.fixture
def registration_payload():
    return {
        "full_name": "Ana Souza",
        "email": "ana@example.com",
        "tax_id": "123.456.789-09",
        "phone": "+5511999990000",
        "address": {
            "street": "Rua das Flores",
            "number": "42",
            "neighborhood": "Centro",
            "city": "Sao Paulo",
            "state": "SP",
            "postal_code": "01000-000",
        },
        "emergency_contact": {
            "name": "Maria Souza",
            "phone": "+5511988880000",
            "relationship": "Mother",
        },
    }


@pytest.fixture
def dispatcher(monkeypatch, fake_dispatcher):
    monkeypatch.setattr("apps.users.api_views.get_dispatcher", lambda: fake_dispatcher)
    return fake_dispatcher


@pytest.mark.django_db
def test_session_resolves_admin_role(admin_user, client_x):
    assert Session.for_user(admin_user).is_admin
    assert not Session.for_user(client_x.user).is_admin


@pytest.mark.django_db
def test_session_profile_requires_registration(make_user, client_x):
    assert Session.for_user(client_x.user).profile() == client_x
    with pytest.raises(ProfileRequired):
        Session.for_user(make_user("newcomer")).profile()


@pytest.mark.django_db
def test_register_profile(
    make_user, api_client, registration_payload, dispatcher, django_capture_on_commit_callbacks
):
    user = make_user("ana")
    with django_capture_on_commit_callbacks(execute=True):
        resp = api_client(user).post(f"{API_PREFIX}/clients/", registration_payload, format="json")

    assert resp.status_code == 201
    body = resp.json()
    assert body["user"] == user.pk
    assert body["address"]["city"] == "Sao Paulo"
    assert body["emergency_contact"]["relationship"] == "Mother"

    profile = ClientProfile.objects.get(user=user)
    assert profile.neighborhood == "Centro"
    assert profile.emergency_name == "Maria Souza"
    dispatcher.send_welcome.assert_called_once_with(profile)


@pytest.mark.django_db
def test_register_twice_conflicts(client_x, api_client, registration_payload, dispatcher):
    resp = api_client(client_x.user).post(f"{API_PREFIX}/clients/", registration_payload, format="json")
    assert resp.status_code == 409
    assert ClientProfile.objects.filter(user=client_x.user).count() == 1


@pytest.mark.django_db
def test_concurrent_registration_conflicts(make_user, api_client, registration_payload, dispatcher):
    with patch.object(ClientProfileSerializer, "save", side_effect=IntegrityError("duplicate key")):
        resp = api_client(make_user("ana")).post(f"{API_PREFIX}/clients/", registration_payload, format="json")
    assert resp.status_code == 409
    dispatcher.send_welcome.assert_not_called()


@pytest.mark.django_db
def test_welcome_email_failure_keeps_registration(
    make_user, api_client, registration_payload, dispatcher, django_capture_on_commit_callbacks
):
    dispatcher.send_welcome.side_effect = RuntimeError("executor shut down")
    user = make_user("ana")

    with django_capture_on_commit_callbacks(execute=True):
        resp = api_client(user).post(f"{API_PREFIX}/clients/", registration_payload, format="json")

    assert resp.status_code == 201
    assert ClientProfile.objects.filter(user=user).exists()


@pytest.mark.django_db
@pytest.mark.parametrize("tax_id", ["1234", "123.456.789-0912", "abc.def.ghi-jk"])
def test_register_rejects_bad_tax_id(make_user, api_client, registration_payload, dispatcher, tax_id):
    registration_payload["tax_id"] = tax_id
    resp = api_client(make_user("ana")).post(f"{API_PREFIX}/clients/", registration_payload, format="json")
    assert resp.status_code == 400
    assert "tax_id" in resp.json()


@pytest.mark.django_db
def test_register_requires_address(make_user, api_client, registration_payload, dispatcher):
    del registration_payload["address"]
    resp = api_client(make_user("ana")).post(f"{API_PREFIX}/clients/", registration_payload, format="json")
    assert resp.status_code == 400
    assert "address" in resp.json()


@pytest.mark.django_db
def test_me_without_profile_is_forbidden(make_user, api_client):
    resp = api_client(make_user("newcomer")).get(f"{API_PREFIX}/clients/me/")
    assert resp.status_code == 403


@pytest.mark.django_db
def test_me_update(client_x, api_client):
    resp = api_client(client_x.user).patch(
        f"{API_PREFIX}/clients/me/", {"phone": "+5511911112222"}, format="json"
    )
    assert resp.status_code == 200
    client_x.refresh_from_db()
    assert client_x.phone == "+5511911112222"


@pytest.mark.django_db
def test_client_list_is_admin_only(client_x, client_y, admin_user, api_client):
    assert api_client(client_x.user).get(f"{API_PREFIX}/clients/").status_code == 403

    resp = api_client(admin_user).get(f"{API_PREFIX}/clients/")
    assert resp.status_code == 200
    assert [c["full_name"] for c in resp.json()["results"]] == ["Client X", "Client Y"]


@pytest.mark.django_db
def test_admin_delete_cascades(client_x, pet_rex, admin_user, api_client):
    Appointment.objects.create(
        client=client_x,
        pet=pet_rex,
        service_type="banho",
        appointment_date=date(2024, 2, 15),
        appointment_time=time(9, 0),
    )

    resp = api_client(admin_user).delete(f"{API_PREFIX}/clients/{client_x.pk}/")
    assert resp.status_code == 204
    assert not ClientProfile.objects.filter(pk=client_x.pk).exists()
    assert not Pet.objects.filter(pk=pet_rex.pk).exists()
    assert not Appointment.objects.exists()


@pytest.mark.django_db
def test_role_toggle(client_x, admin_user, api_client):
    url = f"{API_PREFIX}/users/{client_x.user.pk}/role/"

    resp = api_client(admin_user).post(url, {"role": "admin"}, format="json")
    assert resp.status_code == 200
    assert resp.json() == {"user": client_x.user.pk, "role": "admin"}
    assert Session.for_user(client_x.user).is_admin

    # idempotent
    api_client(admin_user).post(url, {"role": "admin"}, format="json")
    assert UserRole.objects.filter(user=client_x.user, role="admin").count() == 1

    resp = api_client(admin_user).post(url, {"role": "user"}, format="json")
    assert resp.status_code == 200
    assert not Session.for_user(client_x.user).is_admin


@pytest.mark.django_db
def test_role_change_requires_admin(client_x, client_y, api_client):
    resp = api_client(client_x.user).post(
        f"{API_PREFIX}/users/{client_y.user.pk}/role/", {"role": "admin"}, format="json"
    )
    assert resp.status_code == 403
    assert not Session.for_user(client_y.user).is_admin


@pytest.mark.django_db
def test_password_reset_sends_link(settings, client_x, api_client, dispatcher):
    settings.SITE_URL = "https://salon.example.com"
    resp = api_client().post(
        f"{API_PREFIX}/auth/password-reset/", {"email": "CLIENTX@example.com"}, format="json"
    )
    assert resp.status_code == 202

    dispatcher.send_password_reset.assert_called_once()
    user, reset_url = dispatcher.send_password_reset.call_args.args
    assert user == client_x.user
    assert reset_url.startswith("https://salon.example.com/reset-password?uid=")
    assert "token=" in reset_url


@pytest.mark.django_db
def test_password_reset_unknown_email_is_silent(api_client, dispatcher):
    resp = api_client().post(
        f"{API_PREFIX}/auth/password-reset/", {"email": "nobody@example.com"}, format="json"
    )
    assert resp.status_code == 202
    dispatcher.send_password_reset.assert_not_called()


# -- accounts ----------------------------------------------------------------

@pytest.mark.django_db
def test_sign_up_starts_a_session(api_client):
    client = api_client()
    resp = client.post(
        f"{API_PREFIX}/auth/register/",
        {"email": "Ana@Example.com", "password": "groom-2024", "full_name": "Ana Souza"},
        format="json",
    )
    assert resp.status_code == 201
    assert resp.json()["email"] == "ana@example.com"
    assert resp.json()["role"] == "user"
    assert resp.json()["has_profile"] is False

    user = get_user_model().objects.get(email="ana@example.com")
    assert user.check_password("groom-2024")
    assert client.get(f"{API_PREFIX}/pets/").status_code == 200


@pytest.mark.django_db
def test_sign_up_with_existing_email_conflicts(client_x, api_client):
    resp = api_client().post(
        f"{API_PREFIX}/auth/register/",
        {"email": "CLIENTX@example.com", "password": "groom-2024"},
        format="json",
    )
    assert resp.status_code == 409


@pytest.mark.django_db
@pytest.mark.parametrize("password", ["abc", "12345678"])
def test_sign_up_rejects_weak_passwords(api_client, password):
    resp = api_client().post(
        f"{API_PREFIX}/auth/register/", {"email": "ana@example.com", "password": password}, format="json"
    )
    assert resp.status_code == 400
    assert "password" in resp.json()
    assert not get_user_model().objects.filter(email="ana@example.com").exists()


@pytest.mark.django_db
def test_sign_in_and_sign_out(client_x, api_client):
    client = api_client()
    assert client.get(f"{API_PREFIX}/pets/").status_code == 403

    resp = client.post(
        f"{API_PREFIX}/auth/login/", {"email": "clientx@example.com", "password": "password"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json()["has_profile"] is True
    assert client.get(f"{API_PREFIX}/clients/me/").json()["full_name"] == "Client X"

    assert client.post(f"{API_PREFIX}/auth/logout/").status_code == 204
    assert client.get(f"{API_PREFIX}/clients/me/").status_code == 403


@pytest.mark.django_db
def test_sign_in_reports_admin_role(admin_user, api_client):
    resp = api_client().post(
        f"{API_PREFIX}/auth/login/", {"email": "admin@example.com", "password": "password"}, format="json"
    )
    assert resp.status_code == 200
    assert resp.json()["role"] == "admin"


@pytest.mark.django_db
@pytest.mark.parametrize("email, password", [("clientx@example.com", "wrong"), ("nobody@example.com", "password")])
def test_sign_in_rejects_bad_credentials(client_x, api_client, email, password):
    client = api_client()
    resp = client.post(f"{API_PREFIX}/auth/login/", {"email": email, "password": password}, format="json")
    assert resp.status_code == 400
    assert client.get(f"{API_PREFIX}/pets/").status_code == 403


def reset_params(user):
    return {
        "uid": urlsafe_base64_encode(force_bytes(user.pk)),
        "token": default_token_generator.make_token(user),
    }


@pytest.mark.django_db
def test_password_reset_confirm(client_x, api_client):
    user = client_x.user
    payload = {**reset_params(user), "new_password": "fresh-coat-9", "new_password_confirm": "fresh-coat-9"}

    resp = api_client().post(f"{API_PREFIX}/auth/password-reset/confirm/", payload, format="json")
    assert resp.status_code == 200
    user.refresh_from_db()
    assert user.check_password("fresh-coat-9")

    # the token is bound to the old password hash
    resp = api_client().post(f"{API_PREFIX}/auth/password-reset/confirm/", payload, format="json")
    assert resp.status_code == 400
    assert "token" in resp.json()


@pytest.mark.django_db
def test_password_reset_confirm_rejects_forged_link(client_x, api_client):
    payload = {
        "uid": urlsafe_base64_encode(force_bytes(client_x.user.pk)),
        "token": "forged-token",
        "new_password": "fresh-coat-9",
        "new_password_confirm": "fresh-coat-9",
    }
    resp = api_client().post(f"{API_PREFIX}/auth/password-reset/confirm/", payload, format="json")
    assert resp.status_code == 400

    payload["uid"] = "not-base64!"
    resp = api_client().post(f"{API_PREFIX}/auth/password-reset/confirm/", payload, format="json")
    assert resp.status_code == 400

    client_x.user.refresh_from_db()
    assert client_x.user.check_password("password")


@pytest.mark.django_db
def test_password_reset_confirm_requires_matching_passwords(client_x, api_client):
    payload = {**reset_params(client_x.user), "new_password": "fresh-coat-9", "new_password_confirm": "other-9"}
    resp = api_client().post(f"{API_PREFIX}/auth/password-reset/confirm/", payload, format="json")
    assert resp.status_code == 400
    assert "new_password2" in resp.json()
    client_x.user.refresh_from_db()
    assert client_x.user.check_password("password")
