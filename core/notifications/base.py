"""
Notifier Contract

The core never assumes delivery succeeds. Every send returns a
DeliveryResult and callers decide whether a failure matters (code delivery)
or is only logged (verification outcomes, contact alerts).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol

from core.listing.schema import AgentProfile, Property, VerificationStatus
from core.notifications.render import MessageRenderer, RenderedMessage
from core.otp.model import CodePurpose, DestinationKind, classify_destination

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""

    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "DeliveryResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "DeliveryResult":
        return cls(success=False, error=error)


class Notifier(Protocol):
    """What the core needs from an email/SMS delivery service."""

    def send_code(
        self,
        destination: str,
        recipient_name: str,
        code: str,
        purpose: CodePurpose,
    ) -> DeliveryResult:
        ...

    def send_verification_outcome(
        self,
        agent: AgentProfile,
        prop: Property,
        outcome: VerificationStatus,
    ) -> DeliveryResult:
        ...

    def send_contact_alert(
        self,
        recipient_email: str,
        recipient_name: str,
        prop: Property,
        requester_email: str,
    ) -> DeliveryResult:
        ...


class TemplateNotifier(ABC):
    """
    Notifier that renders every message from templates and hands it to a
    transport implemented by subclasses.
    """

    def __init__(self, renderer: Optional[MessageRenderer] = None):
        self._renderer = renderer or MessageRenderer()

    @abstractmethod
    def _deliver(self, kind: DestinationKind, message: RenderedMessage) -> DeliveryResult:
        """Send one rendered message over the given channel."""

    def send_code(
        self,
        destination: str,
        recipient_name: str,
        code: str,
        purpose: CodePurpose,
    ) -> DeliveryResult:
        """Deliver a one-time code by email or SMS depending on the destination."""
        kind = classify_destination(destination)
        if kind is None:
            return DeliveryResult.failed(f"Unsupported destination {destination!r}")
        message = self._renderer.render_code(destination, recipient_name, code, purpose)
        return self._deliver(kind, message)

    def send_verification_outcome(
        self,
        agent: AgentProfile,
        prop: Property,
        outcome: VerificationStatus,
    ) -> DeliveryResult:
        """Tell the uploading agent how verification went."""
        message = self._renderer.render_verification_outcome(agent, prop, outcome)
        return self._deliver(DestinationKind.EMAIL, message)

    def send_contact_alert(
        self,
        recipient_email: str,
        recipient_name: str,
        prop: Property,
        requester_email: str,
    ) -> DeliveryResult:
        """Tell an agent or admin that someone obtained a listing's contact details."""
        message = self._renderer.render_contact_alert(
            recipient_email, recipient_name, prop, requester_email
        )
        return self._deliver(DestinationKind.EMAIL, message)


class LogNotifier(TemplateNotifier):
    """Development notifier: writes messages to the log and always succeeds."""

    def _deliver(self, kind: DestinationKind, message: RenderedMessage) -> DeliveryResult:
        logger.info("[%s] to=%s subject=%s", kind.value, message.to, message.subject)
        logger.debug("Message body:\n%s", message.body)
        return DeliveryResult.ok()
