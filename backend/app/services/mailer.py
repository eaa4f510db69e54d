"""SMTP delivery of prepared email payloads.

The mailer reports the outcome instead of raising; deciding whether to retry is
left to whoever called it.
"""

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from backend.app.core.settings import get_settings
from backend.app.services.render import EmailPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    sent: bool
    reason: Optional[str] = None


def build_message(payload: EmailPayload, sender: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = payload.subject
    msg["From"] = sender
    msg["To"] = payload.recipient
    msg.set_content(payload.text_body or "")
    msg.add_alternative(payload.html_body, subtype="html")
    for attachment in payload.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        msg.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return msg


class SmtpMailer:
    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    def send(self, payload: EmailPayload) -> DeliveryResult:
        settings = self.settings
        if not settings.smtp_host:
            logger.warning("Email not sent: SMTP is not configured")
            return DeliveryResult(sent=False, reason="SMTP is not configured")

        sender = settings.smtp_from_email or settings.smtp_username
        msg = build_message(payload, sender)
        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
                if settings.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())
                if settings.smtp_username:
                    server.login(settings.smtp_username, settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email delivery failed: %s", exc.__class__.__name__)
            return DeliveryResult(sent=False, reason=str(exc) or exc.__class__.__name__)

        logger.info("Email delivered (%d attachment(s))", len(payload.attachments))
        return DeliveryResult(sent=True)


def get_mailer() -> SmtpMailer:
    return SmtpMailer()
