import pytest
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, time, timedelta
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core.management import call_command
from django.core.management.base import CommandError

from apps.notifications.dispatcher import DispatchResult, EmailType, NotificationDispatcher
from apps.notifications.reminders import send_appointment_reminders
from apps.scheduling.models import Appointment


TODAY = date(2024, 2, 14)
TOMORROW = TODAY + timedelta(days=1)


def http_response(status=200, payload=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = status < 400
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    return resp


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def dispatcher(http):
    return NotificationDispatcher(
        url="https://notify.example.com/email", timeout=2, max_attempts=3, retry_delay=0, http=http
    )


@pytest.fixture
def appointment(client_x, pet_rex):
    return Appointment.objects.create(
        client=client_x,
        pet=pet_rex,
        service_type="banho_tosa",
        appointment_date=TOMORROW,
        appointment_time=time(9, 30),
        price="120.00",
    )


def test_send_posts_payload(dispatcher, http):
    http.post.return_value = http_response(payload={"success": True, "messageId": "msg-1"})

    result = dispatcher.send(EmailType.WELCOME, "ana@example.com", "Ana", {"clinicName": "Nara Groomer"})

    assert result == DispatchResult(success=True, message_id="msg-1", attempts=1)
    args, kwargs = http.post.call_args
    assert args == ("https://notify.example.com/email",)
    assert kwargs["json"] == {
        "type": "welcome",
        "to": "ana@example.com",
        "userName": "Ana",
        "data": {"clinicName": "Nara Groomer"},
    }
    assert kwargs["timeout"] == 2
    assert kwargs["headers"]["X-Correlation-Id"].startswith("ntf-")


def test_send_retries_then_succeeds(dispatcher, http):
    http.post.side_effect = [
        requests.ConnectionError("connection refused"),
        http_response(status=502, payload={"success": False, "error": "SES unavailable"}),
        http_response(payload={"success": True, "messageId": "msg-3"}),
    ]

    result = dispatcher.send("appointment_reminder", "ana@example.com", "Ana")

    assert result.success
    assert result.attempts == 3
    assert http.post.call_count == 3


def test_send_gives_up_after_max_attempts(dispatcher, http):
    http.post.return_value = http_response(status=500, payload={"success": False, "error": "boom"})

    result = dispatcher.send(EmailType.APPOINTMENT_CONFIRMATION, "ana@example.com", "Ana")

    assert not result.success
    assert result.error == "boom"
    assert result.attempts == 3
    assert http.post.call_count == 3


def test_send_handles_non_json_body(dispatcher, http):
    resp = http_response(status=200, payload={})
    resp.json.side_effect = ValueError("Expecting value")
    http.post.return_value = resp

    result = dispatcher.send(EmailType.WELCOME, "ana@example.com", "Ana")

    assert not result.success
    assert "Expecting value" in result.error


@pytest.mark.parametrize("reply", [None, ["ok"], "sent"])
def test_send_treats_non_object_reply_as_failure(dispatcher, http, reply):
    resp = http_response(status=200, payload={})
    resp.content = b"null"
    resp.json.return_value = reply
    http.post.return_value = resp

    result = dispatcher.send(EmailType.WELCOME, "ana@example.com", "Ana")

    assert not result.success
    assert result.attempts == 3
    assert "Unexpected reply" in result.error


def test_send_without_endpoint_is_a_noop(http):
    dispatcher = NotificationDispatcher(url="", http=http)

    result = dispatcher.send(EmailType.WELCOME, "ana@example.com", "Ana")

    assert not result.success
    http.post.assert_not_called()


def test_send_rejects_unknown_type(dispatcher):
    with pytest.raises(ValueError):
        dispatcher.send("newsletter", "ana@example.com", "Ana")


def test_send_async_returns_future(dispatcher, http):
    http.post.return_value = http_response(payload={"success": True, "messageId": "msg-9"})

    future = dispatcher.send_async(EmailType.WELCOME, "ana@example.com", "Ana")

    assert isinstance(future, Future)
    assert future.result(timeout=5).message_id == "msg-9"


def test_send_async_logs_unexpected_errors(http):
    with ThreadPoolExecutor(max_workers=1) as executor:
        dispatcher = NotificationDispatcher(url="https://notify.example.com/email", http=http, executor=executor)
        with patch("apps.notifications.dispatcher.logger") as logger:
            future = dispatcher.send_async("newsletter", "ana@example.com", "Ana")
            executor.shutdown(wait=True)

    assert isinstance(future.exception(), ValueError)
    logger.error.assert_called_once()
    assert logger.error.call_args.args == ("Email dispatch raised",)


@pytest.mark.django_db
def test_confirmation_email_carries_link(settings, dispatcher, http, appointment):
    settings.SITE_URL = "https://salon.example.com"
    http.post.return_value = http_response(payload={"success": True, "messageId": "msg-c"})

    result = dispatcher.send_appointment_confirmation(appointment).result(timeout=5)

    assert result.success
    body = http.post.call_args.kwargs["json"]
    assert body["type"] == "appointment_confirmation"
    assert body["to"] == "clientx@example.com"
    assert body["userName"] == "Client X"
    data = body["data"]
    assert data["appointmentId"] == str(appointment.pk)
    assert data["petName"] == "Rex"
    assert data["serviceType"] == appointment.get_service_type_display()
    assert data["appointmentTime"] == "09:30"
    assert data["price"] == "120.00"
    assert data["confirmationUrl"].startswith("https://salon.example.com/confirm-appointment/?id=")


@pytest.mark.django_db
def test_reminder_email_has_no_link(dispatcher, http, appointment):
    http.post.return_value = http_response(payload={"success": True, "messageId": "msg-r"})

    result = dispatcher.send_appointment_reminder(appointment)

    assert result.success
    body = http.post.call_args.kwargs["json"]
    assert body["type"] == "appointment_reminder"
    assert "confirmationUrl" not in body["data"]


# -- reminder sweep ------------------------------------------------------------

@pytest.fixture
def sweep_dispatcher(fake_dispatcher):
    fake_dispatcher.send_appointment_reminder.return_value = DispatchResult(success=True, attempts=1)
    return fake_dispatcher


@pytest.mark.django_db
def test_sweep_sends_for_tomorrow_only(sweep_dispatcher, appointment, client_x, pet_rex):
    Appointment.objects.create(
        client=client_x,
        pet=pet_rex,
        service_type="banho",
        appointment_date=TOMORROW + timedelta(days=1),
        appointment_time=time(9, 30),
    )

    result = send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)

    assert result.target_date == TOMORROW
    assert result.sent == 1
    assert result.failed == []
    sweep_dispatcher.send_appointment_reminder.assert_called_once_with(appointment)
    appointment.refresh_from_db()
    assert appointment.reminder_sent_at is not None


@pytest.mark.django_db
def test_sweep_skips_cancelled(sweep_dispatcher, appointment):
    Appointment.objects.filter(pk=appointment.pk).update(status=Appointment.Status.CANCELLED)

    result = send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)

    assert result.sent == 0
    sweep_dispatcher.send_appointment_reminder.assert_not_called()


@pytest.mark.django_db
def test_sweep_does_not_resend(sweep_dispatcher, appointment):
    send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)
    second = send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)

    assert second.sent == 0
    assert sweep_dispatcher.send_appointment_reminder.call_count == 1


@pytest.mark.django_db
def test_sweep_records_failures_for_retry(sweep_dispatcher, appointment, client_y, pet_luna):
    other = Appointment.objects.create(
        client=client_y,
        pet=pet_luna,
        service_type="hidratacao",
        appointment_date=TOMORROW,
        appointment_time=time(14, 0),
    )
    sweep_dispatcher.send_appointment_reminder.side_effect = [
        DispatchResult(success=False, error="timeout", attempts=3),
        DispatchResult(success=True, attempts=1),
    ]

    result = send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)

    assert result.sent == 1
    assert result.failed == [str(appointment.pk)]
    appointment.refresh_from_db()
    other.refresh_from_db()
    assert appointment.reminder_sent_at is None
    assert other.reminder_sent_at is not None


@pytest.mark.django_db
def test_reminder_command(monkeypatch, sweep_dispatcher, appointment):
    monkeypatch.setattr("apps.notifications.reminders.get_dispatcher", lambda: sweep_dispatcher)
    out = StringIO()

    call_command("send_appointment_reminders", "--date", TODAY.isoformat(), stdout=out)

    assert f"Reminders for {TOMORROW.isoformat()}: 1 sent, 0 failed." in out.getvalue()


@pytest.mark.django_db
def test_reminder_command_rejects_bad_date():
    with pytest.raises(CommandError):
        call_command("send_appointment_reminders", "--date", "14/02/2024")


@pytest.mark.django_db
def test_sweep_survives_null_reply(http, appointment, client_y, pet_luna):
    Appointment.objects.create(
        client=client_y,
        pet=pet_luna,
        service_type="banho",
        appointment_date=TOMORROW,
        appointment_time=time(15, 0),
    )
    resp = http_response(status=200, payload={})
    resp.content = b"null"
    resp.json.return_value = None
    http.post.return_value = resp
    dispatcher = NotificationDispatcher(
        url="https://notify.example.com/email", max_attempts=1, retry_delay=0, http=http
    )

    result = send_appointment_reminders(today=TODAY, dispatcher=dispatcher)

    assert result.sent == 0
    assert len(result.failed) == 2
    assert http.post.call_count == 2
    assert not Appointment.objects.filter(reminder_sent_at__isnull=False).exists()


@pytest.mark.django_db
def test_sweep_continues_after_send_raises(sweep_dispatcher, appointment, client_y, pet_luna):
    other = Appointment.objects.create(
        client=client_y,
        pet=pet_luna,
        service_type="banho",
        appointment_date=TOMORROW,
        appointment_time=time(15, 0),
    )
    sweep_dispatcher.send_appointment_reminder.side_effect = [
        RuntimeError("template missing"),
        DispatchResult(success=True, attempts=1),
    ]

    result = send_appointment_reminders(today=TODAY, dispatcher=sweep_dispatcher)

    assert result.sent == 1
    assert result.failed == [str(appointment.pk)]
    other.refresh_from_db()
    assert other.reminder_sent_at is not None
