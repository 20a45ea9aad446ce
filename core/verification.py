"""
Verification Engine - Property Verification State Machine

Moves listings between verification states.

States:
- PENDING: initial state, awaiting a decision
- VERIFIED: positive registry match or admin approval
- REJECTED: registry mismatch/absence or admin rejection

Transitions:
- PENDING -> VERIFIED | REJECTED via automatic check or manual decision
- VERIFIED <-> REJECTED via admin override only
- Nothing ever returns to PENDING

Principles:
- VERIFIED is only reachable through an explicit registry match or an
  explicit admin action
- A registry failure leaves the listing PENDING for manual review
- Notification and audit failures never change the decision
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from core.audit import (
    ActivityAction,
    ActivityCategory,
    ActivityStatus,
    AuditLog,
    RequestContext,
    Severity,
)
from core.errors import ValidationError
from core.listing import (
    AutoRejection,
    AutoVerification,
    ManualDecision,
    Property,
    PropertyRepository,
    RejectionReason,
    VerificationDetails,
    VerificationStatus,
)
from core.notifications import Notifier
from core.registry import RegistryLookup
from core.settings import AdminSettingsStore, SettingChange, VerificationMode, parse_verification_mode
from utils.clock import Clock, utcnow
from utils.config import Config

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


class AutoResult(Enum):
    """What happened to a listing at submission time."""

    PENDING = "pending"  # manual mode, or no parcel identifier
    VERIFIED = "verified"
    REJECTED = "rejected"
    LOOKUP_FAILED = "lookup_failed"  # registry error, left for manual review


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of submitting a listing."""

    property: Property
    mode: VerificationMode
    auto_attempted: bool
    result: AutoResult

    @property
    def message(self) -> str:
        if self.result == AutoResult.VERIFIED:
            return "Property verified against land records and is now live"
        if self.result == AutoResult.REJECTED:
            return "Property could not be verified against land records"
        return "Property submitted and pending admin verification"

    def to_dict(self) -> dict:
        return {
            "property": self.property.to_public_dict(),
            "verification_details": (
                self.property.verification_details.to_dict()
                if self.property.verification_details
                else None
            ),
            "mode": self.mode.value,
            "auto_attempted": self.auto_attempted,
            "result": self.result.value,
            "message": self.message,
        }


def _parse_decision(decision: Union[VerificationStatus, str]) -> VerificationStatus:
    """Accept verified/rejected (or approve/reject) and nothing else."""
    if isinstance(decision, VerificationStatus):
        status = decision
    else:
        aliases = {"approve": "verified", "approved": "verified", "reject": "rejected"}
        value = str(decision).strip().lower()
        try:
            status = VerificationStatus(aliases.get(value, value))
        except ValueError:
            status = None
    if status not in (VerificationStatus.VERIFIED, VerificationStatus.REJECTED):
        raise ValidationError(
            "Decision must be 'verified' or 'rejected'",
            field_errors={"decision": "Must be 'verified' or 'rejected'"},
        )
    return status


# =============================================================================
# Engine
# =============================================================================


class VerificationEngine:
    """Decides and records verification outcomes."""

    def __init__(
        self,
        properties: PropertyRepository,
        registry: RegistryLookup,
        settings: AdminSettingsStore,
        audit: AuditLog,
        notifier: Notifier,
        config: Optional[Config] = None,
        clock: Clock = utcnow,
    ):
        self._properties = properties
        self._registry = registry
        self._settings = settings
        self._audit = audit
        self._notifier = notifier
        self._config = config or Config.load()
        self._clock = clock

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        prop: Property,
        mode: Optional[Union[VerificationMode, str]] = None,
        request: Optional[RequestContext] = None,
    ) -> SubmissionOutcome:
        """
        Store a new listing and, in auto mode, check it against the registry.

        Args:
            prop: Freshly created pending property
            mode: Verification mode; read from settings when None
            request: Request metadata for the audit trail

        Returns:
            SubmissionOutcome describing the final state
        """
        request = request or RequestContext()
        active_mode = parse_verification_mode(mode) if mode else self._settings.get_verification_mode()
        stored = self._properties.create(prop)

        result = AutoResult.PENDING
        auto_attempted = False
        if active_mode == VerificationMode.AUTO and stored.parcel_identifier:
            auto_attempted = True
            stored, result = self._auto_verify(stored, request)

        self._audit.record(
            ActivityAction.PROPERTY_UPLOAD,
            ActivityCategory.PROPERTY,
            actor_id=stored.uploaded_by,
            property_id=stored.property_id,
            details=(
                f"Uploaded {stored.kind.value} property: {stored.title} in "
                f"{stored.location.district} - {result.value}"
            ),
            metadata=request.to_metadata(
                property_kind=stored.kind.value,
                district=stored.location.district,
                verification_status=stored.verification_status.value,
                parcel_identifier=stored.parcel_identifier,
                auto_attempted=auto_attempted,
                verification_mode=active_mode.value,
            ),
        )
        return SubmissionOutcome(stored, active_mode, auto_attempted, result)

    def _auto_verify(
        self, prop: Property, request: RequestContext
    ) -> tuple[Property, AutoResult]:
        """Registry-driven decision for a pending listing."""
        identifier = prop.parcel_identifier
        location = prop.location
        now = self._clock()

        try:
            record = self._registry.match_with_location(
                identifier, location.district, location.sub_district
            )
            existing = None if record else self._registry.match_by_identifier_only(identifier)
        except Exception:
            logger.exception(
                "Registry lookup failed for %s (%s); leaving for manual review",
                prop.property_id, identifier,
            )
            self._audit_auto(prop, AutoResult.LOOKUP_FAILED, request)
            return prop, AutoResult.LOOKUP_FAILED

        details: VerificationDetails
        if record is not None:
            status = VerificationStatus.VERIFIED
            details = AutoVerification(verified_at=now, registry_snapshot=record.to_public_dict())
            result = AutoResult.VERIFIED
        elif existing is not None:
            status = VerificationStatus.REJECTED
            details = AutoRejection(
                rejected_at=now,
                rejection_reason=RejectionReason.LOCATION_MISMATCH,
                rejection_notes=(
                    f"Parcel {identifier} exists but location details do not match. "
                    f"Expected: {existing.district}, {existing.sub_district}. "
                    f"Provided: {location.district}, {location.sub_district}"
                ),
                diagnostics={
                    "expected": {
                        "district": existing.district,
                        "sub_district": existing.sub_district,
                    },
                    "provided": {
                        "district": location.district,
                        "sub_district": location.sub_district,
                    },
                },
            )
            result = AutoResult.REJECTED
        else:
            status = VerificationStatus.REJECTED
            details = AutoRejection(
                rejected_at=now,
                rejection_reason=RejectionReason.IDENTIFIER_NOT_FOUND,
                rejection_notes=f"Parcel {identifier} not found in the land registry",
                diagnostics={"parcel_identifier": identifier},
            )
            result = AutoResult.REJECTED

        _, updated = self._properties.transition_verification(
            prop.property_id, status, details, expected=VerificationStatus.PENDING
        )
        logger.info("Auto verification of %s: %s", prop.property_id, result.value)
        self._audit_auto(updated, result, request)
        self._notify_agent(updated)
        return updated, result

    def _audit_auto(self, prop: Property, result: AutoResult, request: RequestContext) -> None:
        outcome_status = {
            AutoResult.VERIFIED: ActivityStatus.SUCCESS,
            AutoResult.REJECTED: ActivityStatus.FAILED,
        }.get(result, ActivityStatus.PENDING)
        reason = None
        if isinstance(prop.verification_details, AutoRejection):
            reason = prop.verification_details.rejection_reason.value
        self._audit.record(
            ActivityAction.PROPERTY_VERIFICATION,
            ActivityCategory.PROPERTY_VERIFICATION,
            actor_id=None,
            target_user_id=prop.uploaded_by,
            property_id=prop.property_id,
            details=f"Automatic verification {result.value}: {prop.title}",
            metadata=request.to_metadata(
                verification_mode=VerificationMode.AUTO.value,
                outcome=result.value,
                parcel_identifier=prop.parcel_identifier,
                rejection_reason=reason,
            ),
            severity=Severity.MEDIUM if result == AutoResult.LOOKUP_FAILED else Severity.LOW,
            status=outcome_status,
        )

    # =========================================================================
    # Admin Decisions
    # =========================================================================

    def manual_decide(
        self,
        property_id: str,
        decision: Union[VerificationStatus, str],
        notes: Optional[str],
        admin_id: str,
        request: Optional[RequestContext] = None,
    ) -> Property:
        """
        Decide a pending listing.

        Args:
            property_id: Listing to decide
            decision: verified or rejected
            notes: Admin notes; required when rejecting
            admin_id: Deciding admin
            request: Request metadata for the audit trail

        Returns:
            Updated property

        Raises:
            ValidationError: Bad decision, or rejection without notes
            NotFoundError: No such property
            ConflictError: Property is no longer pending
        """
        status = _parse_decision(decision)
        notes = (notes or "").strip()
        if status == VerificationStatus.REJECTED and not notes:
            raise ValidationError(
                "A reason is required to reject a property",
                field_errors={"notes": "Required when rejecting"},
            )

        details = ManualDecision(
            verified_by=admin_id,
            verified_at=self._clock(),
            notes=notes,
            rejection_reason=notes if status == VerificationStatus.REJECTED else None,
        )
        previous, updated = self._properties.transition_verification(
            property_id, status, details, expected=VerificationStatus.PENDING
        )
        self._record_decision(
            ActivityAction.PROPERTY_VERIFICATION, previous, updated, admin_id, notes, request
        )
        self._notify_agent(updated)
        return updated

    def admin_override(
        self,
        property_id: str,
        decision: Union[VerificationStatus, str],
        reason: Optional[str],
        admin_id: str,
        request: Optional[RequestContext] = None,
    ) -> Property:
        """
        Approve or reject a listing whatever its current state.

        Rejection needs a reason of at least ``rejection_reason_min_length``
        characters after trimming.

        Raises:
            ValidationError: Bad decision or reason too short
            NotFoundError: No such property
        """
        status = _parse_decision(decision)
        reason = (reason or "").strip()
        min_length = self._config.rejection_reason_min_length
        if status == VerificationStatus.REJECTED and len(reason) < min_length:
            raise ValidationError(
                f"Rejection reason must be at least {min_length} characters",
                field_errors={"reason": f"At least {min_length} characters"},
            )

        details = ManualDecision(
            verified_by=admin_id,
            verified_at=self._clock(),
            notes=reason,
            rejection_reason=reason if status == VerificationStatus.REJECTED else None,
        )
        previous, updated = self._properties.transition_verification(
            property_id, status, details, expected=None
        )
        action = (
            ActivityAction.PROPERTY_APPROVE
            if status == VerificationStatus.VERIFIED
            else ActivityAction.PROPERTY_REJECT
        )
        self._record_decision(action, previous, updated, admin_id, reason, request)
        self._notify_agent(updated)
        return updated

    def _record_decision(
        self,
        action: ActivityAction,
        previous: VerificationStatus,
        updated: Property,
        admin_id: str,
        notes: str,
        request: Optional[RequestContext],
    ) -> None:
        status = updated.verification_status
        logger.info(
            "Property %s %s -> %s by %s", updated.property_id, previous.value, status.value, admin_id
        )
        self._audit.record(
            action,
            ActivityCategory.PROPERTY_VERIFICATION,
            actor_id=admin_id,
            target_user_id=updated.uploaded_by,
            property_id=updated.property_id,
            details=f"Property {status.value}: {updated.title} - {notes or 'No notes'}",
            metadata=(request or RequestContext()).to_metadata(
                previous_value=previous.value,
                new_value=status.value,
                property_kind=updated.kind.value,
                district=updated.location.district,
            ),
        )

    def change_mode(
        self,
        mode: Union[VerificationMode, str],
        admin_id: str,
        request: Optional[RequestContext] = None,
    ) -> SettingChange:
        """
        Switch between manual and automatic verification.

        Raises:
            ValidationError: Unknown mode
        """
        change = self._settings.set_verification_mode(mode, admin_id)
        self._audit.record(
            ActivityAction.ADMIN_SETTINGS_UPDATE,
            ActivityCategory.ADMIN,
            actor_id=admin_id,
            details=(
                f"Verification mode changed from {change.previous.value} "
                f"to {change.current.value}"
            ),
            metadata=(request or RequestContext()).to_metadata(
                previous_value=change.previous.value,
                new_value=change.current.value,
            ),
            severity=Severity.MEDIUM,
        )
        return change

    # =========================================================================
    # Notifications
    # =========================================================================

    def _notify_agent(self, prop: Property) -> None:
        """Best-effort outcome message to the uploading agent."""
        try:
            result = self._notifier.send_verification_outcome(
                prop.agent, prop, prop.verification_status
            )
        except Exception:
            logger.exception("Verification notification for %s raised", prop.property_id)
            return
        if not result.success:
            logger.warning(
                "Verification notification for %s failed: %s", prop.property_id, result.error
            )
