"""
Outbound notifications (codes, verification outcomes, contact alerts).
"""

from typing import Optional

from core.notifications.base import (
    DeliveryResult,
    LogNotifier,
    Notifier,
    TemplateNotifier,
)
from core.notifications.render import MessageRenderer, RenderedMessage
from core.notifications.smtp import SmtpNotifier
from utils.config import Config


def build_notifier(config: Optional[Config] = None) -> Notifier:
    """Notifier selected by ``Config.notifier`` (``log`` or ``smtp``)."""
    config = config or Config.load()
    if config.notifier == "smtp":
        return SmtpNotifier(config)
    return LogNotifier(MessageRenderer(config=config))


__all__ = [
    "DeliveryResult",
    "LogNotifier",
    "MessageRenderer",
    "Notifier",
    "RenderedMessage",
    "SmtpNotifier",
    "TemplateNotifier",
    "build_notifier",
]
