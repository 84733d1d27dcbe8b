import base64
import json
import logging
import os
import uuid

import boto3


SES_FROM_EMAIL = os.getenv("SES_FROM_EMAIL", "Nara Groomer <no-reply@example.com>")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

ses = boto3.client("ses", region_name=AWS_REGION)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": os.getenv("CORS_ALLOW_ORIGIN", "*"),
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-correlation-id",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


class _CorrelationIdFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        return True


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s", "correlation_id": "%(correlation_id)s"}'
        )
        handler.setFormatter(formatter)
        handler.addFilter(_CorrelationIdFilter())
        logger.addHandler(handler)
    return logger


def response(status: int, body: dict | None, correlation_id: str) -> dict:
    """Standardized API Gateway response with CORS headers."""
    headers = {
        "Content-Type": "application/json",
        "Cache-Control": "no-store",
        "X-Correlation-Id": correlation_id,
        **CORS_HEADERS,
    }
    return {
        "statusCode": status,
        "headers": headers,
        "body": json.dumps(body) if body is not None else "ok",
    }


def get_header(event: dict, name: str) -> str | None:
    headers = event.get("headers") or {}
    name_lower = name.lower()
    for k, v in headers.items():
        if k.lower() == name_lower:
            return v
    return None


def get_method(event: dict) -> str:
    """HTTP method for both REST (v1) and HTTP API (v2) payloads."""
    method = event.get("httpMethod") or (
        (event.get("requestContext") or {}).get("http", {}).get("method")
    )
    return (method or "POST").upper()


def correlation_id_for(event: dict) -> str:
    return get_header(event, "X-Correlation-Id") or f"cor-{uuid.uuid4().hex}"


def parse_body(event: dict) -> dict:
    """Raises ValueError for a body that is not a JSON object."""
    raw = event.get("body") or "{}"
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("Body must be a JSON object")
    return payload


def send_email(to_addr: str, subject: str, html: str) -> str:
    resp = ses.send_email(
        Source=SES_FROM_EMAIL,
        Destination={"ToAddresses": [to_addr]},
        Message={
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Html": {"Data": html, "Charset": "UTF-8"}},
        },
    )
    return resp["MessageId"]
