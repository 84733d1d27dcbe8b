from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from functions import common, email_templates


REQUIRED_FIELDS = ("to", "userName", "resetLink")

logger = common.get_logger("send-password-reset")


def handler(event: dict, context: Any) -> dict:
    correlation_id = common.correlation_id_for(event)
    log_extra = {"correlation_id": correlation_id}
    method = common.get_method(event)

    if method == "OPTIONS":
        return common.response(200, None, correlation_id)
    if method != "POST":
        return common.response(405, {"success": False, "error": "Method not allowed"}, correlation_id)

    try:
        payload = common.parse_body(event)
    except ValueError:
        return common.response(400, {"success": False, "error": "Invalid JSON body"}, correlation_id)

    missing = [f for f in REQUIRED_FIELDS if not payload.get(f)]
    if missing:
        logger.warning("Missing required fields: %s", ", ".join(missing), extra=log_extra)
        return common.response(
            400,
            {"success": False, "error": "Missing required fields", "fields": missing},
            correlation_id,
        )

    subject, html = email_templates.password_reset(payload["userName"], {"resetLink": payload["resetLink"]})
    try:
        message_id = common.send_email(payload["to"], subject, html)
    except (BotoCoreError, ClientError) as e:
        logger.error("SES send failed: %s", e, extra=log_extra, exc_info=True)
        return common.response(502, {"success": False, "error": "Failed to send email"}, correlation_id)

    logger.info("Password reset email sent, message id %s", message_id, extra=log_extra)
    return common.response(200, {"success": True, "messageId": message_id}, correlation_id)
