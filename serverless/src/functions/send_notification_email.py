import re
from datetime import datetime, timezone
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from functions import common, email_templates


EMAIL_TYPES = ("welcome", "password-reset", "appointment_confirmation", "appointment_reminder", "health-check")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SERVICE_VERSION = "2.0.0"

logger = common.get_logger("send-notification-email")


def validate_payload(payload: dict) -> str | None:
    """Returns an error message, or None when the request is valid."""
    email_type = payload.get("type")
    if not email_type:
        return 'Field "type" is required'
    if email_type not in EMAIL_TYPES:
        return f'Type "{email_type}" is not supported. Valid types: {", ".join(EMAIL_TYPES)}'
    to = payload.get("to")
    if not isinstance(to, str) or not EMAIL_RE.match(to):
        return 'Field "to" must be a valid email address'
    user_name = payload.get("userName")
    if not isinstance(user_name, str) or not user_name.strip():
        return 'Field "userName" is required'
    data = payload.get("data")
    if data is not None and not isinstance(data, dict):
        return 'Field "data" must be an object'
    return None


def handler(event: dict, context: Any) -> dict:
    """
    Lambda handler relaying one templated email through SES.

    Expects:
        - Headers: X-Correlation-Id (optional)
        - Body: {"type", "to", "userName", "data"}

    Returns:
        {"success": true, "messageId": ...} or {"success": false, "error": ...}
    """
    correlation_id = common.correlation_id_for(event)
    log_extra = {"correlation_id": correlation_id}

    if common.get_method(event) == "OPTIONS":
        return common.response(200, None, correlation_id)

    try:
        payload = common.parse_body(event)
    except ValueError as e:
        logger.warning("Invalid JSON in request body: %s", e, extra=log_extra)
        return common.response(400, {"success": False, "error": "Invalid JSON body"}, correlation_id)

    if payload.get("type") == "health-check":
        return common.response(
            200,
            {
                "success": True,
                "message": "Email service is healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": SERVICE_VERSION,
            },
            correlation_id,
        )

    error = validate_payload(payload)
    if error:
        logger.warning("Validation failed: %s", error, extra=log_extra)
        return common.response(400, {"success": False, "error": error}, correlation_id)

    email_type = payload["type"]
    subject, html = email_templates.render(email_type, payload["userName"].strip(), payload.get("data"))

    try:
        message_id = common.send_email(payload["to"], subject, html)
    except (BotoCoreError, ClientError) as e:
        logger.error("SES send failed for %s: %s", email_type, e, extra=log_extra, exc_info=True)
        return common.response(502, {"success": False, "error": "Failed to send email"}, correlation_id)

    logger.info("Sent %s email, message id %s", email_type, message_id, extra=log_extra)
    return common.response(200, {"success": True, "messageId": message_id}, correlation_id)
