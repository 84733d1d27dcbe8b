import pytest
from collections import Counter
from datetime import date, time, timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from apps.scheduling.exceptions import (
    AuthError,
    ConflictError,
    InvalidToken,
    InvalidTransition,
    NotFoundError,
    ProfileRequired,
)
from apps.scheduling.lifecycle import AppointmentLifecycle, ConfirmationResult
from apps.scheduling.models import Appointment
from apps.scheduling.tokens import check_confirmation_token, confirmation_url, make_confirmation_token
from apps.users.session import Session

API_PREFIX = "/api/v1"
Status = Appointment.Status


@pytest.fixture(autouse=True)
def quiet_dispatcher(monkeypatch, fake_dispatcher):
    monkeypatch.setattr("apps.scheduling.lifecycle.get_dispatcher", lambda: fake_dispatcher)
    return fake_dispatcher


@pytest.fixture
def lifecycle(fake_dispatcher):
    return AppointmentLifecycle(dispatcher=fake_dispatcher)


@pytest.fixture
def booked(lifecycle, session_x, pet_rex, booking_date):
    return lifecycle.create(
        session_x,
        pet=pet_rex,
        service_type="banho",
        appointment_date=booking_date,
        appointment_time=time(14, 0),
        price=Decimal("80.00"),
        notes="Sensitive skin",
    )


@pytest.fixture
def confirmed(lifecycle, booked):
    lifecycle.confirm(booked.pk, make_confirmation_token(booked))
    booked.refresh_from_db()
    return booked


def assert_no_double_booking():
    active = Appointment.objects.exclude(status=Status.CANCELLED)
    slots = Counter(active.values_list("appointment_date", "appointment_time"))
    assert all(count == 1 for count in slots.values())


# -- create ------------------------------------------------------------------

@pytest.mark.django_db
def test_create_returns_scheduled_appointment(booked, client_x, pet_rex):
    assert booked.status == Status.SCHEDULED
    assert booked.client == client_x
    assert booked.pet == pet_rex
    stored = Appointment.objects.get(pk=booked.pk)
    assert stored.status == Status.SCHEDULED
    assert stored.price == Decimal("80.00")


@pytest.mark.django_db
def test_create_same_slot_for_other_client_conflicts(lifecycle, booked, session_y, pet_luna, booking_date):
    with pytest.raises(ConflictError) as exc:
        lifecycle.create(
            session_y,
            pet=pet_luna,
            service_type="tosa_completa",
            appointment_date=booking_date,
            appointment_time=time(14, 0),
        )
    assert "slot already taken" in str(exc.value.detail)
    assert Appointment.objects.count() == 1
    assert_no_double_booking()


@pytest.mark.django_db
def test_cancelled_appointment_frees_its_slot(lifecycle, booked, session_x, session_y, pet_luna, booking_date):
    lifecycle.cancel(session_x, booked.pk)

    other = lifecycle.create(
        session_y,
        pet=pet_luna,
        service_type="banho",
        appointment_date=booking_date,
        appointment_time=time(14, 0),
    )
    assert other.status == Status.SCHEDULED
    assert_no_double_booking()


@pytest.mark.django_db
def test_create_rejects_pet_of_another_client(lifecycle, session_x, pet_luna, booking_date):
    with pytest.raises(ValidationError) as exc:
        lifecycle.create(
            session_x,
            pet=pet_luna,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=time(9, 0),
        )
    assert "pet" in exc.value.detail
    assert not Appointment.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize("slot", [time(12, 0), time(9, 15), time(9, 0, 30)])
def test_create_rejects_times_outside_slots(lifecycle, session_x, pet_rex, booking_date, slot):
    with pytest.raises(ValidationError) as exc:
        lifecycle.create(
            session_x,
            pet=pet_rex,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=slot,
        )
    assert "appointment_time" in exc.value.detail


@pytest.mark.django_db
def test_create_rejects_unknown_service_type(lifecycle, session_x, pet_rex, booking_date):
    with pytest.raises(ValidationError):
        lifecycle.create(
            session_x,
            pet=pet_rex,
            service_type="massage",
            appointment_date=booking_date,
            appointment_time=time(9, 0),
        )


@pytest.mark.django_db
def test_create_rejects_past_dates(lifecycle, session_x, pet_rex):
    yesterday = timezone.localdate() - timedelta(days=1)
    with pytest.raises(ValidationError) as exc:
        lifecycle.create(
            session_x,
            pet=pet_rex,
            service_type="banho",
            appointment_date=yesterday,
            appointment_time=time(9, 0),
        )
    assert "appointment_date" in exc.value.detail
    assert not Appointment.objects.exists()


@pytest.mark.django_db
def test_create_accepts_today(lifecycle, session_x, pet_rex):
    appointment = lifecycle.create(
        session_x,
        pet=pet_rex,
        service_type="banho",
        appointment_date=timezone.localdate(),
        appointment_time=time(17, 30),
    )
    assert appointment.status == Status.SCHEDULED


@pytest.mark.django_db
def test_create_requires_client_profile(lifecycle, make_user, pet_rex, booking_date):
    session = Session.for_user(make_user("newcomer"))
    with pytest.raises(ProfileRequired):
        lifecycle.create(
            session,
            pet=pet_rex,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=time(9, 0),
        )


@pytest.mark.django_db
def test_admin_books_for_selected_client(lifecycle, admin_session, client_x, pet_rex, booking_date):
    with pytest.raises(ValidationError):
        lifecycle.create(
            admin_session,
            pet=pet_rex,
            service_type="hidratacao",
            appointment_date=booking_date,
            appointment_time=time(10, 0),
        )

    appointment = lifecycle.create(
        admin_session,
        pet=pet_rex,
        service_type="hidratacao",
        appointment_date=booking_date,
        appointment_time=time(10, 0),
        client=client_x,
    )
    assert appointment.client == client_x


@pytest.mark.django_db
def test_client_cannot_book_for_someone_else(lifecycle, session_x, client_y, pet_luna, booking_date):
    with pytest.raises(AuthError):
        lifecycle.create(
            session_x,
            pet=pet_luna,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=time(9, 0),
            client=client_y,
        )


@pytest.mark.django_db
def test_confirmation_email_dispatched_after_commit(
    lifecycle, fake_dispatcher, session_x, pet_rex, booking_date, django_capture_on_commit_callbacks
):
    with django_capture_on_commit_callbacks(execute=True):
        appointment = lifecycle.create(
            session_x,
            pet=pet_rex,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=time(14, 0),
        )

    fake_dispatcher.send_appointment_confirmation.assert_called_once_with(appointment)


@pytest.mark.django_db
def test_dispatch_failure_does_not_touch_appointment(
    lifecycle, fake_dispatcher, session_x, pet_rex, booking_date, django_capture_on_commit_callbacks
):
    fake_dispatcher.send_appointment_confirmation.side_effect = RuntimeError("email provider down")

    with django_capture_on_commit_callbacks(execute=True):
        appointment = lifecycle.create(
            session_x,
            pet=pet_rex,
            service_type="banho",
            appointment_date=booking_date,
            appointment_time=time(14, 0),
        )

    appointment.refresh_from_db()
    assert appointment.status == Status.SCHEDULED


# -- confirm -----------------------------------------------------------------

@pytest.mark.django_db
def test_confirm_is_idempotent(lifecycle, booked):
    token = make_confirmation_token(booked)

    assert lifecycle.confirm(booked.pk, token) == ConfirmationResult.CONFIRMED
    assert lifecycle.confirm(booked.pk, token) == ConfirmationResult.ALREADY_CONFIRMED

    booked.refresh_from_db()
    assert booked.status == Status.CONFIRMED


@pytest.mark.django_db
def test_confirm_with_wrong_token_keeps_scheduled(lifecycle, booked):
    with pytest.raises(InvalidToken):
        lifecycle.confirm(booked.pk, "not-a-token")

    booked.refresh_from_db()
    assert booked.status == Status.SCHEDULED


@pytest.mark.django_db
def test_token_for_another_appointment_is_rejected(lifecycle, booked, session_y, pet_luna, booking_date):
    other = lifecycle.create(
        session_y,
        pet=pet_luna,
        service_type="banho",
        appointment_date=booking_date,
        appointment_time=time(15, 0),
    )
    with pytest.raises(InvalidToken):
        lifecycle.confirm(booked.pk, make_confirmation_token(other))


@pytest.mark.django_db
def test_expired_token_is_rejected(booked):
    token = make_confirmation_token(booked)
    assert check_confirmation_token(booked, token)
    assert not check_confirmation_token(booked, token, max_age=-1)


@pytest.mark.django_db
def test_confirmation_url_carries_id_and_token(settings, booked):
    settings.SITE_URL = "https://salon.example.com/"
    url = confirmation_url(booked)
    assert url.startswith("https://salon.example.com/confirm-appointment/?")
    assert f"id={booked.pk}" in url
    assert "token=" in url


@pytest.mark.django_db
def test_confirm_unknown_appointment(lifecycle):
    with pytest.raises(NotFoundError):
        lifecycle.confirm("7f7c8f0e-0000-4000-8000-000000000000", "token")
    with pytest.raises(NotFoundError):
        lifecycle.confirm("not-a-uuid", "token")


@pytest.mark.django_db
def test_confirm_cancelled_appointment_is_rejected(lifecycle, booked, session_x):
    lifecycle.cancel(session_x, booked.pk)
    with pytest.raises(InvalidTransition):
        lifecycle.confirm(booked.pk, make_confirmation_token(booked))
    booked.refresh_from_db()
    assert booked.status == Status.CANCELLED


# -- status transitions ------------------------------------------------------

@pytest.mark.django_db
def test_cancel_twice_reports_error(lifecycle, confirmed, session_x):
    cancelled = lifecycle.cancel(session_x, confirmed.pk)
    assert cancelled.status == Status.CANCELLED

    with pytest.raises(InvalidTransition):
        lifecycle.cancel(session_x, confirmed.pk)

    confirmed.refresh_from_db()
    assert confirmed.status == Status.CANCELLED


@pytest.mark.django_db
def test_complete_requires_confirmation(lifecycle, booked, admin_session):
    with pytest.raises(InvalidTransition):
        lifecycle.complete(admin_session, booked.pk)
    booked.refresh_from_db()
    assert booked.status == Status.SCHEDULED


@pytest.mark.django_db
def test_full_lifecycle(lifecycle, confirmed, admin_session):
    started = lifecycle.start(admin_session, confirmed.pk)
    assert started.status == Status.IN_PROGRESS

    completed = lifecycle.complete(admin_session, confirmed.pk)
    assert completed.status == Status.COMPLETED


@pytest.mark.django_db
def test_complete_directly_from_confirmed(lifecycle, confirmed, admin_session):
    assert lifecycle.complete(admin_session, confirmed.pk).status == Status.COMPLETED


@pytest.mark.django_db
@pytest.mark.parametrize("terminal", [Status.COMPLETED, Status.CANCELLED])
@pytest.mark.parametrize("action", ["start", "complete", "cancel"])
def test_terminal_states_reject_transitions(lifecycle, booked, admin_session, terminal, action):
    Appointment.objects.filter(pk=booked.pk).update(status=terminal)

    with pytest.raises(InvalidTransition):
        getattr(lifecycle, action)(admin_session, booked.pk)

    booked.refresh_from_db()
    assert booked.status == terminal


@pytest.mark.django_db
@pytest.mark.parametrize("terminal", [Status.COMPLETED, Status.CANCELLED])
def test_terminal_states_reject_reschedule(lifecycle, booked, admin_session, booking_date, terminal):
    Appointment.objects.filter(pk=booked.pk).update(status=terminal)

    with pytest.raises(InvalidTransition):
        lifecycle.reschedule(admin_session, booked.pk, booking_date + timedelta(days=1), time(9, 0))

    booked.refresh_from_db()
    assert booked.status == terminal
    assert booked.appointment_date == booking_date


@pytest.mark.django_db
def test_complete_is_admin_only(lifecycle, confirmed, session_x):
    with pytest.raises(AuthError):
        lifecycle.complete(session_x, confirmed.pk)


@pytest.mark.django_db
def test_cancel_by_other_client_is_rejected(lifecycle, booked, session_y):
    with pytest.raises(AuthError):
        lifecycle.cancel(session_y, booked.pk)
    booked.refresh_from_db()
    assert booked.status == Status.SCHEDULED


@pytest.mark.django_db
def test_admin_can_cancel_any_appointment(lifecycle, booked, admin_session):
    assert lifecycle.cancel(admin_session, booked.pk).status == Status.CANCELLED


# -- reschedule --------------------------------------------------------------

@pytest.mark.django_db
def test_reschedule_to_free_slot(lifecycle, booked, admin_session, client_x, pet_rex, booking_date):
    new_date = booking_date + timedelta(days=1)
    lifecycle.reschedule(admin_session, booked.pk, new_date, time(10, 30))

    booked.refresh_from_db()
    assert booked.appointment_date == new_date
    assert booked.appointment_time == time(10, 30)
    assert booked.notes == "Sensitive skin"
    assert booked.price == Decimal("80.00")
    assert booked.pet == pet_rex
    assert booked.client == client_x
    assert booked.status == Status.SCHEDULED


@pytest.mark.django_db
def test_reschedule_into_occupied_slot_leaves_original(
    lifecycle, booked, admin_session, session_y, pet_luna, booking_date
):
    lifecycle.create(
        session_y,
        pet=pet_luna,
        service_type="banho",
        appointment_date=booking_date,
        appointment_time=time(15, 0),
    )

    with pytest.raises(ConflictError):
        lifecycle.reschedule(admin_session, booked.pk, booking_date, time(15, 0))

    booked.refresh_from_db()
    assert booked.appointment_date == booking_date
    assert booked.appointment_time == time(14, 0)
    assert_no_double_booking()


@pytest.mark.django_db
def test_reschedule_clears_reminder_marker(lifecycle, booked, admin_session, booking_date):
    Appointment.objects.filter(pk=booked.pk).update(reminder_sent_at=timezone.now())
    lifecycle.reschedule(admin_session, booked.pk, booking_date + timedelta(days=2), time(8, 0))

    booked.refresh_from_db()
    assert booked.reminder_sent_at is None


@pytest.mark.django_db
def test_reschedule_is_admin_only(lifecycle, booked, session_x, booking_date):
    with pytest.raises(AuthError):
        lifecycle.reschedule(session_x, booked.pk, booking_date, time(8, 0))


@pytest.mark.django_db
def test_reschedule_rejects_past_dates(lifecycle, booked, admin_session, booking_date):
    with pytest.raises(ValidationError) as exc:
        lifecycle.reschedule(admin_session, booked.pk, timezone.localdate() - timedelta(days=3), time(8, 0))
    assert "appointment_date" in exc.value.detail

    booked.refresh_from_db()
    assert booked.appointment_date == booking_date
    assert booked.appointment_time == time(14, 0)


# -- API ---------------------------------------------------------------------

@pytest.fixture
def make_appointments(client_x, client_y, pet_rex, pet_luna):
    base = date(2025, 10, 1)
    statuses = [Status.SCHEDULED, Status.IN_PROGRESS, Status.COMPLETED, Status.CONFIRMED]
    owners = [(client_x, pet_rex), (client_y, pet_luna)]
    slots = settings.APPOINTMENT_TIME_SLOTS
    for i in range(35):
        client, pet = owners[i % 2]
        hour, minute = map(int, slots[i % len(slots)].split(":"))
        Appointment.objects.create(
            client=client,
            pet=pet,
            service_type=Appointment.ServiceType.values[i % 5],
            appointment_date=base + timedelta(days=i // len(slots)),
            appointment_time=time(hour, minute),
            status=statuses[i % 4],
            notes=f"test {i}",
        )
    yield


@pytest.mark.django_db
def test_list_paginates_and_shapes(make_appointments, admin_user, api_client):
    resp = api_client(admin_user).get(f"{API_PREFIX}/appointments/?limit=10&offset=0")
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 35
    results = data["results"]
    assert len(results) == 10
    keys = {"id", "appointment_date", "appointment_time", "status", "client_name", "pet_name", "service_name"}
    assert keys.issubset(results[0].keys())
    ordered = [(r["appointment_date"], r["appointment_time"]) for r in results]
    assert ordered == sorted(ordered)


@pytest.mark.django_db
def test_filters_by_date_and_status(make_appointments, admin_user, api_client):
    url = f"{API_PREFIX}/appointments/?schedule_start_date=2025-10-01&schedule_end_date=2025-10-02&status=scheduled"
    resp = api_client(admin_user).get(url)
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert results
    for r in results:
        assert "2025-10-01" <= r["appointment_date"] <= "2025-10-02"
        assert r["status"] == "scheduled"


@pytest.mark.django_db
def test_filter_by_single_day(make_appointments, admin_user, api_client):
    resp = api_client(admin_user).get(f"{API_PREFIX}/appointments/?date=2025-10-03&limit=100")
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert len(results) == 3
    assert {r["appointment_date"] for r in results} == {"2025-10-03"}


@pytest.mark.django_db
def test_bad_date_returns_400(make_appointments, admin_user, api_client):
    resp = api_client(admin_user).get(
        f"{API_PREFIX}/appointments/?schedule_start_date=2025-99-01&schedule_end_date=2025-10-31"
    )
    assert resp.status_code == 400


@pytest.mark.django_db
def test_inverted_date_range_returns_400(make_appointments, admin_user, api_client):
    resp = api_client(admin_user).get(
        f"{API_PREFIX}/appointments/?schedule_start_date=2025-10-31&schedule_end_date=2025-10-01"
    )
    assert resp.status_code == 400


@pytest.mark.django_db
def test_status_validation_returns_400(make_appointments, admin_user, api_client):
    resp = api_client(admin_user).get(f"{API_PREFIX}/appointments/?status=NOPE")
    assert resp.status_code == 400


@pytest.mark.django_db
def test_clients_only_see_their_own_appointments(make_appointments, client_x, api_client):
    resp = api_client(client_x.user).get(f"{API_PREFIX}/appointments/?limit=100")
    assert resp.status_code == 200
    results = resp.json()["results"]
    assert len(results) == 18
    assert {r["client"] for r in results} == {client_x.pk}


@pytest.mark.django_db
def test_list_requires_authentication(api_client):
    resp = api_client().get(f"{API_PREFIX}/appointments/")
    assert resp.status_code in (401, 403)


@pytest.mark.django_db
def test_create_via_api(client_x, pet_rex, api_client, booking_date):
    payload = {
        "pet": pet_rex.pk,
        "service_type": "banho",
        "appointment_date": booking_date.isoformat(),
        "appointment_time": "14:00",
        "price": "80.00",
    }
    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/", payload, format="json")
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "scheduled"
    assert body["appointment_time"] == "14:00"

    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/", payload, format="json")
    assert resp.status_code == 409
    assert resp.json()["detail"] == "slot already taken"


@pytest.mark.django_db
def test_create_via_api_unknown_pet(client_x, api_client, booking_date):
    payload = {
        "pet": 999,
        "service_type": "banho",
        "appointment_date": booking_date.isoformat(),
        "appointment_time": "14:00",
    }
    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/", payload, format="json")
    assert resp.status_code == 400
    assert "pet" in resp.json()


@pytest.mark.django_db
def test_create_via_api_without_profile(make_user, pet_rex, api_client, booking_date):
    payload = {
        "pet": pet_rex.pk,
        "service_type": "banho",
        "appointment_date": booking_date.isoformat(),
        "appointment_time": "14:00",
    }
    resp = api_client(make_user("newcomer")).post(f"{API_PREFIX}/appointments/", payload, format="json")
    assert resp.status_code == 403
    assert not Appointment.objects.exists()


@pytest.mark.django_db
def test_transition_endpoints(booked, admin_user, client_x, api_client):
    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/{booked.pk}/complete/")
    assert resp.status_code == 403

    resp = api_client(admin_user).post(f"{API_PREFIX}/appointments/{booked.pk}/complete/")
    assert resp.status_code == 409

    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/{booked.pk}/cancel/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = api_client(client_x.user).post(f"{API_PREFIX}/appointments/{booked.pk}/cancel/")
    assert resp.status_code == 409


@pytest.mark.django_db
def test_reschedule_endpoint(booked, admin_user, api_client, booking_date):
    url = f"{API_PREFIX}/appointments/{booked.pk}/reschedule/"
    new_date = (booking_date + timedelta(days=5)).isoformat()
    resp = api_client(admin_user).post(url, {"appointment_date": new_date, "appointment_time": "08:30"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["appointment_date"] == new_date
    assert resp.json()["appointment_time"] == "08:30"


@pytest.mark.django_db
def test_detail_hidden_from_other_clients(booked, client_y, api_client):
    resp = api_client(client_y.user).get(f"{API_PREFIX}/appointments/{booked.pk}/")
    assert resp.status_code == 404


@pytest.mark.django_db
def test_confirm_link(booked, api_client):
    token = make_confirmation_token(booked)
    url = f"/confirm-appointment/?id={booked.pk}&token={token}"

    resp = api_client().get(url)
    assert resp.status_code == 200
    assert resp.json()["status"] == "confirmed"
    assert resp.json()["appointment"]["status"] == "confirmed"

    resp = api_client().get(url)
    assert resp.status_code == 200
    assert resp.json()["status"] == "already_confirmed"


@pytest.mark.django_db
def test_confirm_link_errors(booked, api_client):
    client = api_client()
    assert client.get(f"/confirm-appointment/?id={booked.pk}").status_code == 400
    assert client.get(f"/confirm-appointment/?id={booked.pk}&token=forged").status_code == 400

    token = make_confirmation_token(booked)
    resp = client.get(f"/confirm-appointment/?id=7f7c8f0e-0000-4000-8000-000000000000&token={token}")
    assert resp.status_code == 404

    booked.refresh_from_db()
    assert booked.status == Status.SCHEDULED
