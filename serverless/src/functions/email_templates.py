"""Subject and HTML body for each email type."""
import os
from html import escape


SALON_NAME = os.getenv("SALON_NAME", "Nara Groomer")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@example.com")


def _layout(heading: str, body: str) -> str:
    return f"""
<div style="font-family: 'Segoe UI', Tahoma, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1 style="color: #1e40af;">{escape(heading)}</h1>
  {body}
  <p style="color: #64748b; font-size: 12px; margin-top: 40px;">{escape(SALON_NAME)}</p>
</div>
"""


def _button(url: str, label: str) -> str:
    return (
        f'<p style="text-align: center; margin: 30px 0;">'
        f'<a href="{escape(url, quote=True)}" style="background: #1e40af; color: white; '
        f'padding: 12px 32px; text-decoration: none; border-radius: 8px;">{escape(label)}</a></p>'
    )


def _details(data: dict) -> str:
    rows = [
        ("Pet", data.get("petName") or "-"),
        ("Service", data.get("serviceType") or "-"),
        ("Date", data.get("appointmentDate") or "-"),
        ("Time", data.get("appointmentTime") or "-"),
    ]
    if data.get("price"):
        rows.append(("Price", data["price"]))
    if data.get("notes"):
        rows.append(("Notes", data["notes"]))
    items = "".join(f"<li><strong>{escape(k)}:</strong> {escape(str(v))}</li>" for k, v in rows)
    return f"<ul>{items}</ul>"


def welcome(user_name: str, data: dict) -> tuple[str, str]:
    subject = f"Welcome to {SALON_NAME}, {user_name}!"
    body = (
        f"<p>Hello, {escape(user_name)}! Your client registration is complete.</p>"
        "<p>You can now register your pets and book grooming appointments.</p>"
    )
    if data.get("loginUrl"):
        body += _button(data["loginUrl"], "Open my account")
    body += f"<p>Need help? Write to {escape(data.get('supportEmail') or SUPPORT_EMAIL)}.</p>"
    return subject, _layout(f"Welcome, {user_name}!", body)


def appointment_confirmation(user_name: str, data: dict) -> tuple[str, str]:
    subject = f"Appointment booked - {data.get('appointmentDate') or ''}".rstrip(" -")
    body = (
        f"<p>Hello, {escape(user_name)}! We have booked the following appointment:</p>"
        + _details(data)
    )
    if data.get("confirmationUrl"):
        body += "<p>Please confirm you will attend:</p>"
        body += _button(data["confirmationUrl"], "Confirm appointment")
    return subject, _layout("Appointment booked", body)


def appointment_reminder(user_name: str, data: dict) -> tuple[str, str]:
    subject = f"Reminder: {data.get('petName') or 'your pet'} has an appointment tomorrow"
    body = (
        f"<p>Hello, {escape(user_name)}! This is a reminder of tomorrow's appointment:</p>"
        + _details(data)
        + "<p>Need to reschedule? Contact us as soon as possible.</p>"
    )
    return subject, _layout("Appointment reminder", body)


def password_reset(user_name: str, data: dict) -> tuple[str, str]:
    subject = f"Password reset - {SALON_NAME}"
    reset_url = data.get("resetUrl") or data.get("resetLink") or "#"
    body = (
        f"<p>Hello, {escape(user_name)}! We received a request to reset your password.</p>"
        + _button(reset_url, "Reset password")
        + f"<p>This link expires in {escape(data.get('expirationTime') or '1 hour')}. "
        "If you did not ask for it, ignore this email.</p>"
    )
    return subject, _layout("Password reset", body)


RENDERERS = {
    "welcome": welcome,
    "appointment_confirmation": appointment_confirmation,
    "appointment_reminder": appointment_reminder,
    "password-reset": password_reset,
}


def render(email_type: str, user_name: str, data: dict | None) -> tuple[str, str]:
    return RENDERERS[email_type](user_name, data or {})
