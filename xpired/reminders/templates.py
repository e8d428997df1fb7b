"""Content of expiration reminders for each channel."""
from dataclasses import dataclass
from datetime import date
from html import escape


@dataclass(frozen=True)
class ReminderMessage:
    subject: str
    html: str
    text: str
    sms: str


def format_expiration_date(value: date) -> str:
    """Human form used in every channel, e.g. ``Mon, 10 Mar, 2025``."""
    return f"{value:%a}, {value.day} {value:%b}, {value.year}"


def build_reminder_message(
    *,
    document_name: str,
    expiration_date: date,
    user_name: str,
    interval_label: str,
    frontend_url: str,
) -> ReminderMessage:
    expires_on = format_expiration_date(expiration_date)
    manage_url = f"{frontend_url.rstrip('/')}/documents"
    return ReminderMessage(
        subject=f"Reminder: {document_name} expires on {expires_on}",
        html=_create_reminder_html(document_name, expires_on, user_name or "there", interval_label, manage_url),
        text=_create_reminder_text(document_name, expires_on, user_name or "there", interval_label, manage_url),
        sms=(
            f"Reminder: Your document '{document_name}' is expiring on {expires_on}. "
            "Please take action to renew it."
        ),
    )


def _create_reminder_html(document_name: str, expires_on: str, user_name: str, interval_label: str, manage_url: str) -> str:
    name = escape(document_name)
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
            <title>Reminder: Your Document is Expiring Soon</title>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background-color: #2c3e50; color: white; padding: 20px; text-align: center; }}
                .content {{ padding: 30px; background-color: #f9f9f9; }}
                .button {{ display: inline-block; background-color: #2c3e50; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; margin: 20px 0; }}
                .footer {{ padding: 20px; text-align: center; color: #666; font-size: 12px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header">
                    <h1>Xpired</h1>
                </div>
                <div class="content">
                    <h2>Reminder: Your Document is Expiring Soon</h2>
                    <p>Hello {escape(user_name)},</p>
                    <p>This is your {escape(interval_label.lower())} reminder: <strong>{name}</strong> expires on <strong>{expires_on}</strong>.</p>
                    <p>Please take action to renew it before it expires.</p>
                    <a href="{manage_url}" class="button">Manage Your Documents</a>
                </div>
                <div class="footer">
                    <p>You are receiving this email because you enabled reminders for this document in Xpired.</p>
                </div>
            </div>
        </body>
        </html>
        """


def _create_reminder_text(document_name: str, expires_on: str, user_name: str, interval_label: str, manage_url: str) -> str:
    return (
        f"Hello {user_name},\n\n"
        f"This is your {interval_label.lower()} reminder: {document_name} expires on {expires_on}.\n"
        "Please take action to renew it before it expires.\n\n"
        f"Manage your documents: {manage_url}\n"
    )
