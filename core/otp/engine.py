"""
One-Time Code Engine

Issues, validates and reports on one-time codes. Delivery is not done here:
callers deliver the code themselves and call ``discard`` if delivery fails,
which leaves the system as if the code had never been issued.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from core.errors import (
    AttemptsExhaustedError,
    AuthorizationError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    ConflictError,
    InvalidCodeError,
    NotFoundError,
    ValidationError,
)
from core.otp.model import (
    ALLOWED_DESTINATIONS,
    CodePurpose,
    CodeStatus,
    OneTimeCode,
    classify_destination,
    create_one_time_code,
)
from core.otp.repository import AttemptOutcome, OneTimeCodeRepository
from utils.clock import Clock, utcnow
from utils.config import Config

logger = logging.getLogger(__name__)


class OneTimeCodeEngine:
    """Lifecycle of short-lived verification codes."""

    def __init__(
        self,
        repository: OneTimeCodeRepository,
        config: Optional[Config] = None,
        clock: Clock = utcnow,
    ):
        self._repository = repository
        self._config = config or Config.load()
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self._config.max_code_attempts

    def lifetime_for(self, purpose: CodePurpose) -> timedelta:
        """How long a code of this purpose stays valid."""
        if purpose == CodePurpose.PASSWORD_RESET:
            return timedelta(minutes=self._config.password_reset_code_expiry_minutes)
        return timedelta(minutes=self._config.contact_code_expiry_minutes)

    def cooldown_for(self, purpose: CodePurpose) -> timedelta:
        """Minimum spacing between codes for the same scope."""
        if purpose == CodePurpose.PROPERTY_CONTACT:
            return timedelta(seconds=self._config.contact_code_cooldown_seconds)
        return timedelta(seconds=self._config.registration_code_cooldown_seconds)

    # =========================================================================
    # Issue
    # =========================================================================

    def issue(
        self,
        subject_id: str,
        purpose: CodePurpose,
        destination: str,
        target_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> OneTimeCode:
        """
        Issue a new code.

        Args:
            subject_id: Requester
            purpose: What the code unlocks
            destination: Phone or email to deliver to
            target_id: Property or account the code is scoped to
            ip_address: Request metadata
            user_agent: Request metadata
            context: Extra data needed at validation time

        Returns:
            The stored code (including the clear code for delivery)

        Raises:
            ValidationError: Destination is not acceptable for the purpose
            RateLimitError: Cooldown or daily cap reached
        """
        kind = classify_destination(destination or "")
        if kind is None or kind not in ALLOWED_DESTINATIONS[purpose]:
            allowed = " or ".join(k.value for k in ALLOWED_DESTINATIONS[purpose])
            raise ValidationError(
                f"A valid {allowed} is required",
                field_errors={"destination": f"Must be a valid {allowed}"},
            )

        code = create_one_time_code(
            subject_id=subject_id,
            purpose=purpose,
            destination=destination,
            now=self._clock(),
            lifetime=self.lifetime_for(purpose),
            target_id=target_id,
            ip_address=ip_address,
            user_agent=user_agent,
            context=context,
        )
        stored = self._repository.insert_if_allowed(
            code,
            cooldown=self.cooldown_for(purpose),
            daily_cap=self._config.daily_code_cap,
        )
        logger.info(
            "Issued %s code %s for subject %s", purpose.value, stored.code_id, subject_id
        )
        logger.debug("Code %s value %s", stored.code_id, stored.code)
        return stored

    def resend(
        self,
        subject_id: str,
        purpose: CodePurpose,
        destination: str,
        target_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> OneTimeCode:
        """
        Issue a replacement code once the previous one is no longer usable.

        Raises:
            ConflictError: The latest code for this scope can still be used
            RateLimitError: Cooldown or daily cap reached
        """
        latest = self._repository.latest_for(subject_id, target_id, purpose)
        if latest is not None and latest.is_usable(self._clock(), self.max_attempts):
            raise ConflictError(
                "Your previous code is still valid",
                details={
                    "code_id": latest.code_id,
                    "attempts_remaining": latest.attempts_remaining(self.max_attempts),
                    "expiry_time": latest.expiry_time.isoformat(),
                },
            )
        return self.issue(
            subject_id=subject_id,
            purpose=purpose,
            destination=destination,
            target_id=target_id,
            ip_address=ip_address,
            user_agent=user_agent,
            context=context,
        )

    def discard(self, code_id: str) -> bool:
        """Remove a code whose delivery failed. The daily cap is unaffected."""
        removed = self._repository.delete(code_id)
        if removed:
            logger.info("Discarded code %s", code_id)
        return removed

    # =========================================================================
    # Validate
    # =========================================================================

    def _load_live(self, code_id: str) -> Optional[OneTimeCode]:
        """Fetch a code unless it is gone or past the hard retention window."""
        code = self._repository.get(code_id)
        if code is None:
            return None
        retention = timedelta(seconds=self._config.code_retention_seconds)
        if code.created_at + retention <= self._clock():
            return None
        return code

    def validate(self, code_id: str, submitted: str, requester_id: str) -> OneTimeCode:
        """
        Redeem a code.

        Args:
            code_id: Code record id
            submitted: Code entered by the requester
            requester_id: Actor submitting the code

        Returns:
            The code, now marked used

        Raises:
            NotFoundError: No such code
            AuthorizationError: Code belongs to someone else
            CodeAlreadyUsedError: Code was already redeemed
            AttemptsExhaustedError: No attempts left
            CodeExpiredError: Code is past its expiry
            InvalidCodeError: Wrong code (carries attempts remaining)
        """
        code = self._load_live(code_id)
        if code is None:
            raise NotFoundError("Code not found or has expired", details={"code_id": code_id})
        if code.subject_id != requester_id:
            raise AuthorizationError("This code was not issued to you")

        result = self._repository.apply_attempt(
            code_id, submitted, self.max_attempts, self._clock()
        )

        if result.outcome == AttemptOutcome.MATCHED:
            logger.info("Code %s verified", code_id)
            return result.code
        if result.outcome == AttemptOutcome.NOT_FOUND:
            raise NotFoundError("Code not found or has expired", details={"code_id": code_id})
        if result.outcome == AttemptOutcome.ALREADY_USED:
            raise CodeAlreadyUsedError("This code has already been used")
        if result.outcome == AttemptOutcome.EXHAUSTED:
            raise AttemptsExhaustedError(
                "Maximum attempts exceeded. Please request a new code"
            )
        if result.outcome == AttemptOutcome.EXPIRED:
            raise CodeExpiredError("This code has expired. Please request a new code")

        logger.info(
            "Code %s mismatch, %d attempts remaining", code_id, result.attempts_remaining
        )
        raise InvalidCodeError(
            f"Invalid code. {result.attempts_remaining} attempts remaining",
            attempts_remaining=result.attempts_remaining,
        )

    def validate_latest(
        self,
        subject_id: str,
        target_id: Optional[str],
        purpose: CodePurpose,
        submitted: str,
    ) -> OneTimeCode:
        """
        Redeem the newest code for a scope, for flows that have no code id.

        Raises:
            NotFoundError: No code exists for this scope
            (plus everything ``validate`` raises)
        """
        latest = self._repository.latest_for(subject_id, target_id, purpose)
        if latest is None:
            raise NotFoundError("No code found. Please request a new one")
        return self.validate(latest.code_id, submitted, subject_id)

    # =========================================================================
    # Status and Retention
    # =========================================================================

    def status(self, code_id: str, requester_id: str) -> CodeStatus:
        """
        Owner's view of a code.

        Unknown codes and codes owned by someone else raise the same error.

        Raises:
            NotFoundError
        """
        code = self._load_live(code_id)
        if code is None or code.subject_id != requester_id:
            raise NotFoundError("Code not found", details={"code_id": code_id})

        now = self._clock()
        expired = code.is_expired or code.is_past_expiry(now)
        remaining = code.attempts_remaining(self.max_attempts)
        return CodeStatus(
            code_id=code.code_id,
            purpose=code.purpose,
            is_used=code.is_used,
            is_expired=expired,
            attempts=code.attempts,
            attempts_remaining=remaining,
            expiry_time=code.expiry_time,
            can_retry=not code.is_used and not expired and remaining > 0,
        )

    def purge_expired(self) -> int:
        """Physically delete codes past expiry or retention."""
        return self._repository.purge_expired(
            self._clock(), timedelta(seconds=self._config.code_retention_seconds)
        )
