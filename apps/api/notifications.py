from __future__ import annotations

import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional, Tuple

import httpx

from packages.core.reminders.models import ReminderCategory, ReminderNotification

logger = logging.getLogger("expiry_reminders.notifications")

BREVO_BASE_URL = "https://api.brevo.com/v3"

_DEFAULT_SUBJECTS = {
    ReminderCategory.SERVICE: "Service Expiry Reminder - {service_name}",
    ReminderCategory.COMPANY_DOCUMENT: "Document Expiry Reminder - {document_title}",
    ReminderCategory.INDIVIDUAL_DOCUMENT: "Document Expiry Reminder - {document_title}",
    ReminderCategory.EMPLOYEE_DOCUMENT: "Document Expiry Reminder - {document_title}",
    ReminderCategory.MONETARY_DUE: "Payment Due Reminder - Invoice {invoice_number}",
}

_DEFAULT_DETAILS = {
    ReminderCategory.SERVICE: (
        "Your service {service_name} (invoice {invoice_number}, "
        "amount {total_amount}) expires on {expiry_date}."
    ),
    ReminderCategory.COMPANY_DOCUMENT: (
        "The document {document_title} ({document_type}, no. {document_number}) "
        "expires on {expiry_date}."
    ),
    ReminderCategory.INDIVIDUAL_DOCUMENT: (
        "The document {document_title} ({document_type}, no. {document_number}) "
        "expires on {expiry_date}."
    ),
    ReminderCategory.EMPLOYEE_DOCUMENT: (
        "The document {document_title} for employee {employee_name} "
        "expires on {expiry_date}."
    ),
    ReminderCategory.MONETARY_DUE: (
        "A balance of {balance} on invoice {invoice_number} is due on {expiry_date}."
    ),
}

_DEFAULT_BODY = (
    "Dear {recipient_name},\n\n"
    "{details}\n"
    "This is a reminder sent {days_until_expiry} day(s) in advance. "
    "Please arrange a renewal or payment before that date.\n\n"
    "Best regards"
)


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def _placeholders(notification: ReminderNotification) -> Dict[str, Any]:
    values: Dict[str, Any] = {
        key: ("N/A" if value is None else value)
        for key, value in notification.display_fields.items()
    }
    values.update(
        recipient_name=notification.recipient_name,
        expiry_date=notification.expiry_date.isoformat(),
        days_until_expiry=notification.days_until_expiry,
        offset_days=notification.offset_days,
        category=notification.category.value,
    )
    return _Placeholders(values)


def render_message(notification: ReminderNotification) -> Tuple[str, str]:
    values = _placeholders(notification)
    values["details"] = _DEFAULT_DETAILS[notification.category].format_map(values)
    subject_template = notification.template.subject or _DEFAULT_SUBJECTS[notification.category]
    body_template = notification.template.body or _DEFAULT_BODY
    return subject_template.format_map(values), body_template.format_map(values)


def _smtp_config() -> dict:
    return {
        "host": os.getenv("SMTP_HOST", ""),
        "port": int(os.getenv("SMTP_PORT", "587")),
        "user": os.getenv("SMTP_USER", ""),
        "password": os.getenv("SMTP_PASSWORD", ""),
        "from_email": os.getenv("SMTP_FROM", ""),
        "use_tls": os.getenv("SMTP_USE_TLS", "true").lower() == "true",
    }


def _brevo_config() -> dict:
    return {
        "api_key": os.getenv("BREVO_API_KEY", ""),
        "sender_email": os.getenv("BREVO_SENDER_EMAIL", "noreply@example.com"),
        "sender_name": os.getenv("BREVO_SENDER_NAME", "Expiry Reminders"),
    }


class SmtpEmailDispatcher:
    def __init__(self, config: Optional[dict] = None) -> None:
        self._config = config or _smtp_config()

    def send(self, notification: ReminderNotification) -> bool:
        config = self._config
        if not config["host"] or not config["from_email"]:
            raise RuntimeError("SMTP is not configured. Set SMTP_HOST and SMTP_FROM.")

        subject, body = render_message(notification)
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = config["from_email"]
        message["To"] = ", ".join(notification.recipients)
        message.set_content(body)

        with smtplib.SMTP(config["host"], config["port"]) as server:
            if config["use_tls"]:
                server.starttls()
            if config["user"]:
                server.login(config["user"], config["password"])
            server.send_message(message)
        return True


class BrevoEmailDispatcher:
    def __init__(self, config: Optional[dict] = None, client: Optional[httpx.Client] = None) -> None:
        self._config = config or _brevo_config()
        self._client = client

    def send(self, notification: ReminderNotification) -> bool:
        config = self._config
        if not config["api_key"]:
            logger.warning("brevo_not_configured reason=missing_api_key")
            return False

        subject, body = render_message(notification)
        payload = {
            "sender": {"name": config["sender_name"], "email": config["sender_email"]},
            "to": [{"email": notification.recipients[0], "name": notification.recipient_name}],
            "subject": subject,
            "textContent": body,
        }
        if len(notification.recipients) > 1:
            payload["cc"] = [{"email": address} for address in notification.recipients[1:]]
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": config["api_key"],
        }
        url = f"{BREVO_BASE_URL}/smtp/email"
        if self._client is not None:
            response = self._client.post(url, json=payload, headers=headers, timeout=15)
        else:
            response = httpx.post(url, json=payload, headers=headers, timeout=15)
        if response.is_success:
            return True
        logger.error(
            "brevo_send_failed status=%s body=%s", response.status_code, response.text[:200]
        )
        return False


def build_dispatcher(provider: str = "brevo"):
    if provider == "smtp":
        return SmtpEmailDispatcher()
    if provider == "brevo":
        return BrevoEmailDispatcher()
    raise ValueError(f"Unsupported EMAIL_PROVIDER: {provider}")
