import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from config import settings

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, html_content: str, text_content: str | None = None) -> bool:
    """Send one transactional email. Returns False when disabled, raises on SMTP failure."""
    if not settings.EMAIL_ENABLED:
        logger.info(f"Email disabled, would send to {to_email}: {subject}")
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to_email
    if text_content:
        msg.attach(MIMEText(text_content, "plain"))
    msg.attach(MIMEText(html_content, "html"))

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    return True


def send_password_reset(to_email: str, name: str, reset_url: str) -> bool:
    minutes = settings.PASSWORD_RESET_TTL_MINUTES
    subject = f"{settings.APP_NAME}: reset your password"
    html = (
        f"<p>Hi {name},</p>"
        f"<p>We received a request to reset your password. The link below is valid for {minutes} minutes.</p>"
        f'<p><a href="{reset_url}">Reset password</a></p>'
        "<p>If you did not ask for this, you can ignore this email.</p>"
    )
    text = (
        f"Hi {name},\n\nReset your password within {minutes} minutes:\n{reset_url}\n\n"
        "If you did not ask for this, you can ignore this email."
    )
    return send_email(to_email, subject, html, text)
