from urllib.parse import urlencode

from django.conf import settings
from django.core import signing


SALT = "scheduling.appointment-confirmation"


def make_confirmation_token(appointment) -> str:
    """Signed, timestamped token binding an appointment to its client."""
    payload = {"a": str(appointment.pk), "c": str(appointment.client_id)}
    return signing.dumps(payload, salt=SALT)


def check_confirmation_token(appointment, token: str, max_age: int | None = None) -> bool:
    if not token:
        return False
    if max_age is None:
        max_age = settings.APPOINTMENT_CONFIRMATION_MAX_AGE
    try:
        payload = signing.loads(token, salt=SALT, max_age=max_age)
    except signing.BadSignature:
        # SignatureExpired is a BadSignature
        return False
    return payload == {"a": str(appointment.pk), "c": str(appointment.client_id)}


def confirmation_url(appointment) -> str:
    query = urlencode({"id": str(appointment.pk), "token": make_confirmation_token(appointment)})
    return f"{settings.SITE_URL.rstrip('/')}/confirm-appointment/?{query}"
