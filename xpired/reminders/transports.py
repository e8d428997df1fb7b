"""
Outbound notification channels.

Every transport call is bounded by a timeout and reports failure by raising
TransportError; callers decide whether a failed channel matters.
"""
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional
import logging
import smtplib
import ssl

import requests

from xpired.core.exceptions import TransportError
from .config import ReminderSettings

logger = logging.getLogger(__name__)

EMAIL_CHANNEL = "email"
SMS_CHANNEL = "sms"


class EmailTransport(ABC):
    channel = EMAIL_CHANNEL

    @abstractmethod
    def send_email(self, to: str, subject: str, html: str, text: str) -> Dict[str, Any]:
        """Send one message. Returns a provider response summary."""


class SmsTransport(ABC):
    channel = SMS_CHANNEL

    @abstractmethod
    def send_sms(self, to: str, message: str) -> Dict[str, Any]:
        """Send one text message. Returns a provider response summary."""


class SmtpEmailTransport(EmailTransport):
    def __init__(
        self,
        *,
        server: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        from_email: str,
        use_ssl: bool = False,
        timeout: float = 10.0,
    ):
        self.server = server
        self.port = int(port)
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_ssl = use_ssl
        self.timeout = timeout

    def send_email(self, to: str, subject: str, html: str, text: str) -> Dict[str, Any]:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_ssl or self.port == 465:
                server = smtplib.SMTP_SSL(self.server, self.port, timeout=self.timeout, context=context)
            else:
                server = smtplib.SMTP(self.server, self.port, timeout=self.timeout)
            with server:
                if not (self.use_ssl or self.port == 465):
                    server.starttls(context=context)
                if self.username and self.password:
                    server.login(self.username, self.password)
                refused = server.sendmail(self.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(EMAIL_CHANNEL, f"SMTP delivery to {to} failed: {e}") from e
        if refused:
            raise TransportError(EMAIL_CHANNEL, f"SMTP server refused {to}", response={"refused": str(refused)})
        logger.info(f"[Email] Sent '{subject}' to {to} via {self.server}:{self.port}")
        return {"provider": "smtp", "server": self.server, "to": to}


class HttpSmsTransport(SmsTransport):
    """Posts messages to an HTTP SMS gateway as JSON."""

    def __init__(self, *, api_url: str, api_key: Optional[str] = None, sender: Optional[str] = None, timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    def send_sms(self, to: str, message: str) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        body = {"to": to, "message": message}
        if self.sender:
            body["from"] = self.sender
        try:
            resp = requests.post(self.api_url, json=body, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            response = None
            if getattr(e, "response", None) is not None:
                response = {"status_code": e.response.status_code, "body": e.response.text[:500]}
            raise TransportError(SMS_CHANNEL, f"SMS delivery to {to} failed: {e}", response=response) from e
        logger.info(f"[SMS] Sent reminder to {to}")
        try:
            payload = resp.json()
        except ValueError:
            payload = {"body": resp.text[:500]}
        return {"provider": "http", "status_code": resp.status_code, "response": payload}


class LoggingEmailTransport(EmailTransport):
    """Used when SMTP is not configured: records the send in the log only."""

    def send_email(self, to: str, subject: str, html: str, text: str) -> Dict[str, Any]:
        logger.warning(f"[Email] SMTP not configured; would send '{subject}' to {to}")
        return {"provider": "log", "to": to}


class LoggingSmsTransport(SmsTransport):
    def send_sms(self, to: str, message: str) -> Dict[str, Any]:
        logger.warning(f"[SMS] Gateway not configured; would send to {to}: {message}")
        return {"provider": "log", "to": to}


def build_email_transport(cfg: ReminderSettings) -> EmailTransport:
    if not cfg.SMTP_SERVER:
        return LoggingEmailTransport()
    return SmtpEmailTransport(
        server=cfg.SMTP_SERVER,
        port=cfg.SMTP_PORT,
        username=cfg.SMTP_USERNAME,
        password=cfg.SMTP_PASSWORD,
        from_email=cfg.FROM_EMAIL,
        use_ssl=cfg.SMTP_USE_SSL,
        timeout=cfg.SMTP_TIMEOUT_SECONDS,
    )


def build_sms_transport(cfg: ReminderSettings) -> SmsTransport:
    if not cfg.SMS_API_URL:
        return LoggingSmsTransport()
    return HttpSmsTransport(
        api_url=cfg.SMS_API_URL,
        api_key=cfg.SMS_API_KEY,
        sender=cfg.SMS_SENDER,
        timeout=cfg.SMS_TIMEOUT_SECONDS,
    )
