from __future__ import annotations

import datetime as dt
import json

import httpx
import pytest

from apps.api import notifications
from apps.api.notifications import (
    BrevoEmailDispatcher,
    SmtpEmailDispatcher,
    build_dispatcher,
    render_message,
)
from packages.core.reminders.models import (
    MessageTemplate,
    ReminderCategory,
    ReminderNotification,
)


def _notification(template=None, recipients=None):
    return ReminderNotification(
        recipients=recipients or ["ops@acme.test", "cfo@acme.test"],
        recipient_name="Acme LLC",
        category=ReminderCategory.SERVICE,
        offset_days=7,
        days_until_expiry=7,
        expiry_date=dt.date(2024, 6, 8),
        display_fields={
            "service_name": "Trade License",
            "invoice_number": "INV-100",
            "total_amount": 525.0,
            "company_name": "Acme LLC",
            "individual_name": None,
        },
        template=template or MessageTemplate(),
    )


BREVO_CONFIG = {
    "api_key": "key-123",
    "sender_email": "noreply@example.com",
    "sender_name": "Reminders",
}


def test_render_default_message():
    subject, body = render_message(_notification())
    assert subject == "Service Expiry Reminder - Trade License"
    assert body.startswith("Dear Acme LLC,")
    assert "expires on 2024-06-08" in body
    assert "7 day(s)" in body


def test_render_operator_template_keeps_unknown_placeholders():
    template = MessageTemplate(
        subject="{service_name} due in {days_until_expiry} days",
        body="Hi {recipient_name}, {individual_name} {not_a_field}",
    )
    subject, body = render_message(_notification(template=template))
    assert subject == "Trade License due in 7 days"
    assert body == "Hi Acme LLC, N/A {not_a_field}"


def test_brevo_dispatch_posts_primary_and_cc():
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["payload"] = json.loads(request.content)
        return httpx.Response(201, json={"messageId": "m-1"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    dispatcher = BrevoEmailDispatcher(config=BREVO_CONFIG, client=client)

    assert dispatcher.send(_notification()) is True
    assert captured["url"] == "https://api.brevo.com/v3/smtp/email"
    assert captured["headers"]["api-key"] == "key-123"
    assert captured["payload"]["to"] == [{"email": "ops@acme.test", "name": "Acme LLC"}]
    assert captured["payload"]["cc"] == [{"email": "cfo@acme.test"}]


def test_brevo_dispatch_returns_false_on_error_response():
    client = httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(400, text="bad sender"))
    )
    dispatcher = BrevoEmailDispatcher(config=BREVO_CONFIG, client=client)
    assert dispatcher.send(_notification(recipients=["ops@acme.test"])) is False


def test_brevo_without_api_key_returns_false():
    dispatcher = BrevoEmailDispatcher(config={**BREVO_CONFIG, "api_key": ""})
    assert dispatcher.send(_notification()) is False


def test_smtp_dispatch_sends_to_all_recipients(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port):
            self.host = host
            self.port = port

        def __enter__(self):
            return self

        def __exit__(self, *args):
            return False

        def starttls(self):
            pass

        def login(self, user, password):
            pass

        def send_message(self, message):
            sent.append(message)

    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    dispatcher = SmtpEmailDispatcher(
        config={
            "host": "smtp.example.com",
            "port": 587,
            "user": "u",
            "password": "p",
            "from_email": "noreply@example.com",
            "use_tls": True,
        }
    )

    assert dispatcher.send(_notification()) is True
    assert sent[0]["To"] == "ops@acme.test, cfo@acme.test"
    assert sent[0]["Subject"] == "Service Expiry Reminder - Trade License"


def test_smtp_without_host_raises(monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    monkeypatch.delenv("SMTP_FROM", raising=False)
    with pytest.raises(RuntimeError):
        SmtpEmailDispatcher().send(_notification())


def test_build_dispatcher_rejects_unknown_provider():
    assert isinstance(build_dispatcher("smtp"), SmtpEmailDispatcher)
    assert isinstance(build_dispatcher("brevo"), BrevoEmailDispatcher)
    with pytest.raises(ValueError):
        build_dispatcher("carrier-pigeon")
