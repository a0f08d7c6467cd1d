import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from shop_assistant.core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


def _send_via_console(to_email: str, subject: str, text_body: str, html_body: str | None) -> None:
    logger.info("Email to %s: %s\n%s", to_email, subject, text_body)


def _send_via_smtp(to_email: str, subject: str, text_body: str, html_body: str | None) -> None:
    if not settings.smtp_host:
        raise EmailDeliveryError("SMTP host is not configured")

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{settings.app_name} <{settings.email_from}>"
    message["To"] = to_email
    message.attach(MIMEText(text_body, "plain", "utf-8"))
    if html_body:
        message.attach(MIMEText(html_body, "html", "utf-8"))

    smtp_class = smtplib.SMTP_SSL if settings.smtp_use_ssl else smtplib.SMTP
    try:
        with smtp_class(
            host=settings.smtp_host,
            port=settings.smtp_port,
            timeout=settings.smtp_timeout_seconds,
        ) as client:
            if settings.smtp_starttls and not settings.smtp_use_ssl:
                client.starttls()
            if settings.smtp_username:
                client.login(settings.smtp_username, settings.smtp_password)
            client.sendmail(settings.email_from, [to_email], message.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailDeliveryError(str(exc)) from exc


def _send_via_sendgrid(to_email: str, subject: str, text_body: str, html_body: str | None) -> None:
    if not settings.sendgrid_api_key:
        raise EmailDeliveryError("SENDGRID_API_KEY is not configured")

    message = Mail(
        from_email=Email(settings.email_from, settings.app_name),
        to_emails=To(to_email),
        subject=subject,
    )
    message.add_content(Content("text/plain", text_body))
    if html_body:
        message.add_content(Content("text/html", html_body))

    try:
        response = SendGridAPIClient(settings.sendgrid_api_key).send(message)
    except Exception as exc:
        raise EmailDeliveryError(str(exc)) from exc
    if response.status_code >= 400:
        raise EmailDeliveryError(f"SendGrid error status: {response.status_code}")


def send_email(to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
    senders = {
        "console": _send_via_console,
        "smtp": _send_via_smtp,
        "sendgrid": _send_via_sendgrid,
    }
    sender = senders.get(settings.email_provider)
    if sender is None:
        raise EmailDeliveryError(f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")
    sender(to_email, subject, text_body, html_body)


def build_password_reset_message(token: str) -> tuple[str, str, str]:
    reset_url = f"{settings.frontend_base_url.rstrip('/')}/reset-password?token={token}"
    expire_minutes = settings.password_reset_token_expire_minutes
    subject = f"Reset your password - {settings.app_name}"
    text = (
        "We received a request to reset the password of your account.\n\n"
        f"Open this link to choose a new password: {reset_url}\n\n"
        f"The link expires in {expire_minutes} minutes. "
        "If you did not request a reset you can ignore this email.\n"
    )
    html = (
        f"<h2>{settings.app_name}</h2>"
        "<p>We received a request to reset the password of your account.</p>"
        f"<p><a href=\"{reset_url}\">Reset your password</a></p>"
        f"<p>If the button does not work, copy this link into your browser: {reset_url}</p>"
        f"<p>The link expires in {expire_minutes} minutes. "
        "If you did not request a reset you can ignore this email.</p>"
    )
    return subject, text, html
