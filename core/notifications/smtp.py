"""
SMTP delivery for notifications.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from core.notifications.base import DeliveryResult, TemplateNotifier
from core.notifications.render import MessageRenderer, RenderedMessage
from core.otp.model import DestinationKind
from utils.config import Config

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


class SmtpNotifier(TemplateNotifier):
    """
    Sends email through an SMTP relay.

    Phone destinations are refused: there is no SMS gateway behind this
    notifier, so callers roll back codes addressed to a phone.
    """

    def __init__(self, config: Config, renderer: Optional[MessageRenderer] = None):
        super().__init__(renderer or MessageRenderer(config=config))
        self._config = config

    def _deliver(self, kind: DestinationKind, message: RenderedMessage) -> DeliveryResult:
        if kind != DestinationKind.EMAIL:
            return DeliveryResult.failed("SMS delivery is not configured")

        email = EmailMessage()
        email["From"] = self._config.mail_from
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)

        try:
            with smtplib.SMTP(
                self._config.smtp_host, self._config.smtp_port, timeout=SMTP_TIMEOUT_SECONDS
            ) as client:
                if self._config.smtp_use_tls:
                    client.starttls()
                if self._config.smtp_username:
                    client.login(self._config.smtp_username, self._config.smtp_password or "")
                client.send_message(email)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP delivery to %s failed: %s", message.to, e)
            return DeliveryResult.failed(str(e))

        logger.info("Sent %r to %s", message.subject, message.to)
        return DeliveryResult.ok()
