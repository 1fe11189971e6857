import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formatdate

from backend.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    pass


def send_email(to_email: str, subject: str, body: str, settings: Settings = default_settings) -> None:
    """Send a plain text e-mail through the configured SMTP relay."""
    if not settings.smtp_host:
        raise MailDeliveryError("SMTP_HOST is not configured")

    message = MIMEText(body, "plain", "utf-8")
    message["From"] = settings.mail_from
    message["To"] = to_email
    message["Subject"] = subject
    message["Date"] = formatdate(localtime=True)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.mail_from, [to_email], message.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise MailDeliveryError(str(exc)) from exc

    logger.info("Sent '%s' e-mail to %s", subject, to_email)


def send_password_reset_email(to_email: str, reset_url: str) -> None:
    body = (
        "You are receiving this email because you (or someone else) has requested "
        "the reset of a password. Please make a PUT request to:\n\n"
        f"{reset_url}\n"
    )
    send_email(to_email, "Password reset token", body)
