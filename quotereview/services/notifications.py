"""
Email delivery for workflow notifications.

Delivery is fire-and-forget: every failure is logged and reported through the
return value, never raised into the workflow that triggered it.
"""
import smtplib
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from quotereview.core.config import settings
from quotereview.core.logging import get_logger
from quotereview.services.email_templates import EmailMessageSpec

logger = get_logger(__name__)


class LogTransport:
    """Console transport used when no SMTP host is configured."""

    def send(self, to: str, message: EmailMessageSpec) -> str:
        logger.info(
            f"=== EMAIL (Mock) === To: {to} | Subject: {message.subject} | Text: {message.text}"
        )
        return f"mock-{int(time.time() * 1000)}"


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int = 587,
        secure: bool = False,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "noreply@quotationreview.com",
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.secure = secure
        self.user = user
        self.password = password
        self.sender = sender
        self.timeout = timeout

    def _build(self, to: str, message: EmailMessageSpec) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def send(self, to: str, message: EmailMessageSpec) -> str:
        mime = self._build(to, message)
        smtp_class = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_class(self.host, self.port, timeout=self.timeout) as server:
            if not self.secure:
                server.starttls()
            if self.user:
                server.login(self.user, self.password or "")
            server.sendmail(self.sender, [to], mime.as_string())
        return mime.get("Message-ID") or f"smtp-{int(time.time() * 1000)}"


def default_transport():
    if not settings.EMAIL_HOST:
        logger.warning("Email not configured. Using console logging instead.")
        return LogTransport()
    return SmtpTransport(
        host=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        secure=settings.EMAIL_SECURE,
        user=settings.EMAIL_USER,
        password=settings.EMAIL_PASSWORD,
        sender=settings.EMAIL_FROM,
    )


def deliver(to: str, subject: str, html: str, transport=None) -> Dict[str, Any]:
    """Send one email synchronously, reporting success or the error text."""
    transport = transport or default_transport()
    try:
        message_id = transport.send(to, EmailMessageSpec(subject=subject, html=html))
        logger.info(f"Email sent: {message_id}")
        return {"success": True, "messageId": message_id}
    except Exception as e:
        logger.error(f"Error sending email to {to}: {e}")
        return {"success": False, "error": str(e)}


class Notifier:
    """Sends notification emails inline or through the RQ queue."""

    def __init__(self, transport=None, use_queue: Optional[bool] = None):
        self.transport = transport
        self.use_queue = settings.NOTIFICATIONS_ASYNC if use_queue is None else use_queue

    def send(self, to: Optional[str], message: EmailMessageSpec) -> Dict[str, Any]:
        if not to:
            return {"success": False, "error": "No recipient"}

        if self.use_queue:
            try:
                from quotereview.workers.jobs import enqueue_notification
                job = enqueue_notification(to, message.subject, message.html)
                return {"success": True, "jobId": getattr(job, "id", None)}
            except Exception as e:
                logger.error(f"Failed to enqueue notification for {to}: {e}")
                return {"success": False, "error": str(e)}

        return deliver(to, message.subject, message.html, transport=self.transport)
