import base64
import json
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError

from functions import common, email_templates, send_notification_email, send_password_reset


def event(body=None, method="POST", headers=None, encode=False):
    raw = json.dumps(body) if isinstance(body, (dict, list)) else body
    evt = {"httpMethod": method, "headers": headers or {}, "body": raw}
    if encode and raw is not None:
        evt["body"] = base64.b64encode(raw.encode()).decode()
        evt["isBase64Encoded"] = True
    return evt


def body_of(resp):
    return json.loads(resp["body"])


@pytest.fixture
def ses():
    with patch.object(common, "ses") as client:
        client.send_email.return_value = {"MessageId": "ses-123"}
        yield client


@pytest.fixture
def reminder_payload():
    return {
        "type": "appointment_reminder",
        "to": "ana@example.com",
        "userName": "Ana",
        "data": {
            "petName": "Rex",
            "serviceType": "Bath",
            "appointmentDate": "Feb. 15, 2024",
            "appointmentTime": "14:00",
        },
    }


def test_options_returns_cors_headers():
    resp = send_notification_email.handler(event(method="OPTIONS"), None)
    assert resp["statusCode"] == 200
    assert resp["body"] == "ok"
    assert resp["headers"]["Access-Control-Allow-Methods"] == "POST, OPTIONS"


def test_http_api_payload_method_is_detected():
    evt = {"requestContext": {"http": {"method": "OPTIONS"}}, "headers": {}}
    assert send_notification_email.handler(evt, None)["statusCode"] == 200


def test_health_check():
    resp = send_notification_email.handler(event({"type": "health-check"}), None)
    assert resp["statusCode"] == 200
    body = body_of(resp)
    assert body["success"] is True
    assert body["version"] == "2.0.0"
    assert body["timestamp"]


def test_invalid_json_is_rejected():
    resp = send_notification_email.handler(event("{not json"), None)
    assert resp["statusCode"] == 400
    assert body_of(resp)["error"] == "Invalid JSON body"

    resp = send_notification_email.handler(event([1, 2]), None)
    assert resp["statusCode"] == 400


@pytest.mark.parametrize(
    "change, message",
    [
        ({"type": None}, '"type" is required'),
        ({"type": "newsletter"}, "not supported"),
        ({"to": "not-an-email"}, '"to" must be a valid email'),
        ({"userName": "  "}, '"userName" is required'),
        ({"data": "x"}, '"data" must be an object'),
    ],
)
def test_validation_errors(ses, reminder_payload, change, message):
    reminder_payload.update(change)
    resp = send_notification_email.handler(event(reminder_payload), None)
    assert resp["statusCode"] == 400
    body = body_of(resp)
    assert body["success"] is False
    assert message in body["error"]
    ses.send_email.assert_not_called()


def test_sends_reminder(ses, reminder_payload):
    resp = send_notification_email.handler(
        event(reminder_payload, headers={"x-correlation-id": "cor-1"}), None
    )

    assert resp["statusCode"] == 200
    assert body_of(resp) == {"success": True, "messageId": "ses-123"}
    assert resp["headers"]["X-Correlation-Id"] == "cor-1"

    kwargs = ses.send_email.call_args.kwargs
    assert kwargs["Destination"] == {"ToAddresses": ["ana@example.com"]}
    assert "Rex" in kwargs["Message"]["Subject"]["Data"]
    assert "14:00" in kwargs["Message"]["Body"]["Html"]["Data"]


def test_base64_body(ses, reminder_payload):
    resp = send_notification_email.handler(event(reminder_payload, encode=True), None)
    assert resp["statusCode"] == 200


def test_ses_failure_returns_502(ses, reminder_payload):
    ses.send_email.side_effect = ClientError(
        {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified."}}, "SendEmail"
    )
    resp = send_notification_email.handler(event(reminder_payload), None)
    assert resp["statusCode"] == 502
    assert body_of(resp) == {"success": False, "error": "Failed to send email"}


def test_templates_escape_user_input():
    subject, html = email_templates.render(
        "appointment_confirmation",
        "<b>Ana</b>",
        {"petName": "<script>", "confirmationUrl": "https://salon.example.com/confirm?id=1&token=x"},
    )
    assert "<script>" not in html
    assert "&lt;b&gt;Ana&lt;/b&gt;" in html
    assert "id=1&amp;token=x" in html


@pytest.mark.parametrize("email_type", sorted(email_templates.RENDERERS))
def test_every_type_renders(email_type):
    subject, html = email_templates.render(email_type, "Ana", None)
    assert subject
    assert "Ana" in html


def test_password_reset_options_returns_cors_headers(ses):
    resp = send_password_reset.handler(event(method="OPTIONS"), None)
    assert resp["statusCode"] == 200
    assert resp["body"] == "ok"
    assert resp["headers"]["Access-Control-Allow-Origin"]
    assert resp["headers"]["Access-Control-Allow-Methods"] == "POST, OPTIONS"
    ses.send_email.assert_not_called()


def test_password_reset_method_not_allowed():
    resp = send_password_reset.handler(event(method="GET"), None)
    assert resp["statusCode"] == 405


def test_password_reset_missing_fields(ses):
    resp = send_password_reset.handler(event({"to": "ana@example.com"}), None)
    assert resp["statusCode"] == 400
    assert body_of(resp)["fields"] == ["userName", "resetLink"]
    ses.send_email.assert_not_called()


def test_password_reset_sends(ses):
    resp = send_password_reset.handler(
        event({"to": "ana@example.com", "userName": "Ana", "resetLink": "https://salon.example.com/reset"}),
        None,
    )
    assert resp["statusCode"] == 200
    assert body_of(resp)["messageId"] == "ses-123"
    html = ses.send_email.call_args.kwargs["Message"]["Body"]["Html"]["Data"]
    assert "https://salon.example.com/reset" in html
