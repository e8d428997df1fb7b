import smtplib

import pytest
import requests

from xpired.core.exceptions import TransportError
from xpired.reminders import transports
from xpired.reminders.config import ReminderSettings
from xpired.reminders.transports import (
    HttpSmsTransport,
    LoggingEmailTransport,
    LoggingSmsTransport,
    SmtpEmailTransport,
    build_email_transport,
    build_sms_transport,
)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host, self.port, self.timeout = host, port, timeout
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        return False

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username))

    def sendmail(self, from_addr, to_addrs, msg):
        self.calls.append(("sendmail", from_addr, tuple(to_addrs)))
        return {}


class TestSmtpEmailTransport:
    def _transport(self, **overrides):
        fields = dict(
            server="smtp.example.com",
            port=587,
            username="mailer",
            password="pw",
            from_email="reminders@xpired.test",
            timeout=3.0,
        )
        fields.update(overrides)
        return SmtpEmailTransport(**fields)

    def test_sends_with_starttls(self, monkeypatch):
        FakeSMTP.instances = []
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

        response = self._transport().send_email("ada@example.com", "Subject", "<p>hi</p>", "hi")

        smtp = FakeSMTP.instances[0]
        assert smtp.timeout == 3.0
        assert smtp.calls == [
            "starttls",
            ("login", "mailer"),
            ("sendmail", "reminders@xpired.test", ("ada@example.com",)),
        ]
        assert response["provider"] == "smtp"

    def test_connection_failure_raises_transport_error(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)

        with pytest.raises(TransportError) as exc_info:
            self._transport().send_email("ada@example.com", "Subject", "<p>hi</p>", "hi")
        assert exc_info.value.channel == "email"

    def test_smtp_error_raises_transport_error(self, monkeypatch):
        class RejectingSMTP(FakeSMTP):
            def sendmail(self, *args):
                raise smtplib.SMTPRecipientsRefused({"ada@example.com": (550, b"no such user")})

        monkeypatch.setattr(smtplib, "SMTP", RejectingSMTP)
        with pytest.raises(TransportError):
            self._transport().send_email("ada@example.com", "Subject", "<p>hi</p>", "hi")


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {"id": "msg-1"}
        self.text = str(self._payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._payload


class TestHttpSmsTransport:
    def test_posts_message(self, monkeypatch):
        captured = {}

        def fake_post(url, json=None, headers=None, timeout=None):
            captured.update(url=url, json=json, headers=headers, timeout=timeout)
            return FakeResponse()

        monkeypatch.setattr(transports.requests, "post", fake_post)
        sms = HttpSmsTransport(api_url="https://sms.test/send", api_key="k", sender="XPIRED", timeout=2.0)

        response = sms.send_sms("+15550100", "hello")

        assert captured["json"] == {"to": "+15550100", "message": "hello", "from": "XPIRED"}
        assert captured["headers"]["Authorization"] == "Bearer k"
        assert captured["timeout"] == 2.0
        assert response["response"] == {"id": "msg-1"}

    def test_timeout_raises_transport_error(self, monkeypatch):
        def timeout(*args, **kwargs):
            raise requests.Timeout("read timed out")

        monkeypatch.setattr(transports.requests, "post", timeout)

        with pytest.raises(TransportError) as exc_info:
            HttpSmsTransport(api_url="https://sms.test/send").send_sms("+15550100", "hello")
        assert exc_info.value.channel == "sms"

    def test_http_error_keeps_response(self, monkeypatch):
        monkeypatch.setattr(transports.requests, "post", lambda *a, **kw: FakeResponse(503, {"error": "busy"}))

        with pytest.raises(TransportError) as exc_info:
            HttpSmsTransport(api_url="https://sms.test/send").send_sms("+15550100", "hello")
        assert exc_info.value.response["status_code"] == 503


class TestBuilders:
    def test_unconfigured_channels_log_only(self):
        cfg = ReminderSettings(SMTP_SERVER=None, SMS_API_URL=None)
        assert isinstance(build_email_transport(cfg), LoggingEmailTransport)
        assert isinstance(build_sms_transport(cfg), LoggingSmsTransport)

    def test_configured_channels(self):
        cfg = ReminderSettings(SMTP_SERVER="smtp.example.com", SMS_API_URL="https://sms.test/send")
        assert isinstance(build_email_transport(cfg), SmtpEmailTransport)
        assert isinstance(build_sms_transport(cfg), HttpSmsTransport)
