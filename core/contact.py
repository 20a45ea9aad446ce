"""
Contact Disclosure Service

Owner contact details are released only to someone who proves possession
of a one-time code sent to them, and only for verified listings.

Two flows share the same durable code store and rules:
- Authenticated: the requester is a signed-in user, codes are addressed by id
- Anonymous: the requester is identified by email only, codes are addressed
  by (email, property) and stored under an ``anon:<email>`` subject
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.audit import (
    ActivityAction,
    ActivityCategory,
    ActivityStatus,
    AuditLog,
    RequestContext,
    Severity,
)
from core.errors import (
    AuthorizationError,
    DeliveryFailedError,
    InvalidCodeError,
    MarketplaceError,
    ValidationError,
)
from core.listing import Property, PropertyRepository
from core.notifications import Notifier
from core.otp import (
    CodePurpose,
    CodeStatus,
    DestinationKind,
    OneTimeCode,
    OneTimeCodeEngine,
    anonymous_subject,
    classify_destination,
)
from core.validators import normalize_email, validate_email
from utils.clock import Clock, utcnow
from utils.config import Config

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


def mask_destination(destination: str) -> str:
    """Hide most of a phone number or email for display."""
    if "@" in destination:
        local, _, domain = destination.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"{destination[:3]}******{destination[-2:]}"


@dataclass(frozen=True)
class CodeIssued:
    """Returned after a code has been issued and delivered."""

    code_id: str
    destination: str
    expiry_time: datetime
    attempts_remaining: int
    debug_code: Optional[str] = None  # only populated in debug mode

    def to_dict(self) -> dict:
        data = {
            "code_id": self.code_id,
            "destination": mask_destination(self.destination),
            "expiry_time": self.expiry_time.isoformat(),
            "attempts_remaining": self.attempts_remaining,
        }
        if self.debug_code:
            data["code"] = self.debug_code
        return data


@dataclass(frozen=True)
class ContactDisclosure:
    """Owner and agent contact released after a successful confirmation."""

    property_summary: dict
    owner_details: dict
    agent: dict
    verified_at: datetime
    contact_request_count: int

    def to_dict(self) -> dict:
        return {
            "property": self.property_summary,
            "owner_details": self.owner_details,
            "agent": self.agent,
            "verified_at": self.verified_at.isoformat(),
            "contact_request_count": self.contact_request_count,
        }


# =============================================================================
# Service
# =============================================================================


class ContactDisclosureService:
    """Gates owner contact details behind validated one-time codes."""

    def __init__(
        self,
        properties: PropertyRepository,
        codes: OneTimeCodeEngine,
        audit: AuditLog,
        notifier: Notifier,
        config: Optional[Config] = None,
        clock: Clock = utcnow,
    ):
        self._properties = properties
        self._codes = codes
        self._audit = audit
        self._notifier = notifier
        self._config = config or Config.load()
        self._clock = clock

    # =========================================================================
    # Shared Steps
    # =========================================================================

    def _require_verified(
        self, property_id: str, actor_id: Optional[str], request: RequestContext
    ) -> Property:
        """Load a listing that may disclose contacts, or refuse."""
        prop = self._properties.require(property_id)
        if not prop.is_verified:
            self._audit.record(
                ActivityAction.UNAUTHORIZED_PROPERTY_ACCESS,
                ActivityCategory.SECURITY,
                actor_id=actor_id,
                property_id=property_id,
                details=f"Contact requested for unverified property: {prop.title}",
                metadata=request.to_metadata(verification_status=prop.verification_status.value),
                severity=Severity.MEDIUM,
                status=ActivityStatus.FAILED,
            )
            raise AuthorizationError(
                "Contact details are only available for verified properties",
                details={"property_id": property_id},
            )
        return prop

    def _deliver(self, code: OneTimeCode, recipient_name: str) -> None:
        """Send a code, rolling it back if delivery fails."""
        try:
            result = self._notifier.send_code(
                code.destination, recipient_name, code.code, code.purpose
            )
            error = None if result.success else result.error
        except Exception as e:
            logger.exception("Code delivery for %s raised", code.code_id)
            error = str(e)

        if error is not None:
            self._codes.discard(code.code_id)
            raise DeliveryFailedError(
                "Failed to send the code. Please try again",
                details={"reason": error},
            )

    def _issued(self, code: OneTimeCode) -> CodeIssued:
        return CodeIssued(
            code_id=code.code_id,
            destination=code.destination,
            expiry_time=code.expiry_time,
            attempts_remaining=code.attempts_remaining(self._codes.max_attempts),
            debug_code=code.code if self._config.debug else None,
        )

    def _audit_request(
        self,
        code: OneTimeCode,
        prop: Property,
        actor_id: Optional[str],
        request: RequestContext,
        resend: bool = False,
    ) -> None:
        self._audit.record(
            ActivityAction.OTP_REQUEST,
            ActivityCategory.OTP,
            actor_id=actor_id,
            target_user_id=prop.uploaded_by,
            property_id=prop.property_id,
            details=f"{'Resent' if resend else 'Requested'} contact code for: {prop.title}",
            metadata=request.to_metadata(
                code_id=code.code_id,
                destination=mask_destination(code.destination),
                subject_id=code.subject_id,
            ),
        )

    def _audit_failure(
        self,
        error: MarketplaceError,
        actor_id: Optional[str],
        property_id: Optional[str],
        code_id: Optional[str],
        request: RequestContext,
    ) -> None:
        extra = {"error_code": error.error_code, "code_id": code_id}
        if isinstance(error, InvalidCodeError):
            extra["attempts_remaining"] = error.attempts_remaining
        self._audit.record(
            ActivityAction.OTP_VERIFY,
            ActivityCategory.SECURITY,
            actor_id=actor_id,
            property_id=property_id,
            details=f"Failed code verification: {error.message}",
            metadata=request.to_metadata(**extra),
            severity=Severity.MEDIUM,
            status=ActivityStatus.FAILED,
        )

    def _disclose(
        self,
        prop: Property,
        code: OneTimeCode,
        actor_id: Optional[str],
        request: RequestContext,
    ) -> ContactDisclosure:
        """Count the contact, audit it and build the response."""
        count = self._properties.increment_contact_requests(prop.property_id)

        self._audit.record(
            ActivityAction.OTP_VERIFY,
            ActivityCategory.OTP,
            actor_id=actor_id,
            property_id=prop.property_id,
            details=f"Contact code verified for: {prop.title}",
            metadata=request.to_metadata(code_id=code.code_id),
        )
        self._audit.record(
            ActivityAction.CONTACT_REQUEST,
            ActivityCategory.PROPERTY,
            actor_id=actor_id,
            target_user_id=prop.uploaded_by,
            property_id=prop.property_id,
            details=f"Owner contact disclosed for: {prop.title}",
            metadata=request.to_metadata(
                subject_id=code.subject_id,
                contact_request_count=count,
            ),
        )

        owner = prop.owner_details
        agent = prop.agent
        return ContactDisclosure(
            property_summary=prop.summary(),
            owner_details={
                "name": owner.name or agent.name or "Property Owner",
                "phone": owner.phone or agent.phone or "Not available",
                "email": owner.email or agent.email,
                "alternate_phone": owner.alternate_phone,
            },
            agent={"name": agent.name, "email": agent.email, "phone": agent.phone},
            verified_at=code.verified_at or self._clock(),
            contact_request_count=count,
        )

    # =========================================================================
    # Authenticated Flow
    # =========================================================================

    def request_code(
        self,
        user_id: str,
        property_id: str,
        contact_method: DestinationKind,
        destination: str,
        recipient_name: str = "",
        request: Optional[RequestContext] = None,
    ) -> CodeIssued:
        """
        Issue and deliver a contact code for a verified listing.

        Args:
            user_id: Requesting user
            property_id: Listing whose owner contact is wanted
            contact_method: Channel the requester chose
            destination: Requester's phone or email for that channel
            recipient_name: Name used in the message
            request: Request metadata

        Raises:
            NotFoundError: No such property
            AuthorizationError: Property is not verified
            ValidationError: Destination does not fit the chosen channel
            RateLimitError: Cooldown or daily cap reached
            DeliveryFailedError: Delivery failed (code rolled back)
        """
        request = request or RequestContext()
        prop = self._require_verified(property_id, user_id, request)
        self._check_channel(contact_method, destination)

        code = self._codes.issue(
            subject_id=user_id,
            purpose=CodePurpose.PROPERTY_CONTACT,
            destination=destination,
            target_id=prop.property_id,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )
        self._deliver(code, recipient_name)
        self._audit_request(code, prop, user_id, request)
        return self._issued(code)

    def resend_code(
        self,
        user_id: str,
        property_id: str,
        contact_method: DestinationKind,
        destination: str,
        recipient_name: str = "",
        request: Optional[RequestContext] = None,
    ) -> CodeIssued:
        """
        Replace a contact code that can no longer be used.

        Raises:
            ConflictError: The previous code is still valid
            (plus everything ``request_code`` raises)
        """
        request = request or RequestContext()
        prop = self._require_verified(property_id, user_id, request)
        self._check_channel(contact_method, destination)

        code = self._codes.resend(
            subject_id=user_id,
            purpose=CodePurpose.PROPERTY_CONTACT,
            destination=destination,
            target_id=prop.property_id,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )
        self._deliver(code, recipient_name)
        self._audit_request(code, prop, user_id, request, resend=True)
        return self._issued(code)

    def confirm_code(
        self,
        user_id: str,
        code_id: str,
        submitted: str,
        request: Optional[RequestContext] = None,
    ) -> ContactDisclosure:
        """
        Redeem a contact code and disclose the owner's details.

        Failures are audited as security events and re-raised unchanged so
        the caller can show the precise reason.

        Raises:
            NotFoundError, AuthorizationError, CodeAlreadyUsedError,
            AttemptsExhaustedError, CodeExpiredError, InvalidCodeError
        """
        request = request or RequestContext()
        try:
            code = self._codes.validate(code_id, submitted, user_id)
            if code.purpose != CodePurpose.PROPERTY_CONTACT or not code.target_id:
                raise AuthorizationError("This code cannot be used to view contact details")
            prop = self._properties.require(code.target_id)
            if not prop.is_verified:
                raise AuthorizationError(
                    "Contact details are only available for verified properties"
                )
        except MarketplaceError as e:
            self._audit_failure(e, user_id, None, code_id, request)
            raise

        logger.info("Contact disclosed for %s to user %s", prop.property_id, user_id)
        return self._disclose(prop, code, user_id, request)

    def code_status(self, user_id: str, code_id: str) -> CodeStatus:
        """Owner's view of a code. Unknown and foreign codes look the same."""
        return self._codes.status(code_id, user_id)

    @staticmethod
    def _check_channel(contact_method: DestinationKind, destination: str) -> None:
        if classify_destination(destination or "") != contact_method:
            raise ValidationError(
                f"A valid {contact_method.value} is required",
                field_errors={"destination": f"Must be a valid {contact_method.value}"},
            )

    # =========================================================================
    # Anonymous Flow
    # =========================================================================

    def request_anonymous_code(
        self,
        email: str,
        property_id: str,
        request: Optional[RequestContext] = None,
    ) -> CodeIssued:
        """
        Email a contact code to someone without an account.

        Raises:
            ValidationError: Email is malformed
            NotFoundError: No such property
            AuthorizationError: Property is not verified
            RateLimitError: Cooldown or daily cap reached
            DeliveryFailedError: Delivery failed (code rolled back)
        """
        request = request or RequestContext()
        if not validate_email(email or ""):
            raise ValidationError("Invalid email format", field_errors={"email": "Invalid email"})
        email = normalize_email(email)
        prop = self._require_verified(property_id, None, request)

        code = self._codes.issue(
            subject_id=anonymous_subject(email),
            purpose=CodePurpose.PROPERTY_CONTACT,
            destination=email,
            target_id=prop.property_id,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )
        self._deliver(code, "")
        self._audit_request(code, prop, None, request)
        return self._issued(code)

    def confirm_anonymous_code(
        self,
        email: str,
        property_id: str,
        submitted: str,
        requester_user_id: Optional[str] = None,
        request: Optional[RequestContext] = None,
    ) -> ContactDisclosure:
        """
        Redeem the latest anonymous code for (email, property).

        On success the agent and every configured admin get a best-effort
        alert; alert failures never fail the confirmation.
        """
        request = request or RequestContext()
        email = normalize_email(email or "")
        prop = self._require_verified(property_id, requester_user_id, request)
        try:
            code = self._codes.validate_latest(
                anonymous_subject(email), prop.property_id, CodePurpose.PROPERTY_CONTACT, submitted
            )
        except MarketplaceError as e:
            self._audit_failure(e, requester_user_id, property_id, None, request)
            raise

        disclosure = self._disclose(prop, code, requester_user_id, request)
        self._alert_contact(prop, email)
        return disclosure

    def _alert_contact(self, prop: Property, requester_email: str) -> None:
        """Best-effort alerts to the agent and admins."""
        recipients = [(prop.agent.email, prop.agent.name)]
        recipients += [
            (admin, "Admin") for admin in self._config.admin_emails if admin != prop.agent.email
        ]
        for address, name in recipients:
            try:
                result = self._notifier.send_contact_alert(address, name, prop, requester_email)
            except Exception:
                logger.exception("Contact alert to %s raised", address)
                continue
            if not result.success:
                logger.warning("Contact alert to %s failed: %s", address, result.error)

