"""
Error Taxonomy for the Verification and Contact-Disclosure Workflow

Every business failure raised by the core is a MarketplaceError. The web
layer turns these into JSON responses using ``http_status`` and ``to_dict``,
so callers can tell "bad input" from "already decided" from "try later".
"""

from __future__ import annotations

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base class for all domain errors."""

    error_code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict:
        """Convert to the JSON error body."""
        return {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


# =============================================================================
# Input and State Errors
# =============================================================================


class ValidationError(MarketplaceError):
    """Malformed input. Carries per-field messages."""

    error_code = "VALIDATION_FAILED"
    http_status = 400

    def __init__(self, message: str, field_errors: Optional[dict[str, str]] = None):
        self.field_errors: dict[str, str] = dict(field_errors or {})
        super().__init__(message, {"field_errors": self.field_errors})


class NotFoundError(MarketplaceError):
    """Referenced property, code or registry record is absent."""

    error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(MarketplaceError):
    """A state precondition did not hold (e.g. property already decided)."""

    error_code = "CONFLICT"
    http_status = 409


class AuthorizationError(MarketplaceError):
    """Actor may not perform this operation on this resource."""

    error_code = "FORBIDDEN"
    http_status = 403


class RateLimitError(MarketplaceError):
    """Cooldown or daily cap hit. ``retry_after`` is in whole seconds."""

    error_code = "RATE_LIMITED"
    http_status = 429

    def __init__(self, message: str, retry_after: int, details: Optional[dict[str, Any]] = None):
        self.retry_after = max(1, int(retry_after))
        merged = dict(details or {})
        merged["retry_after"] = self.retry_after
        super().__init__(message, merged)


# =============================================================================
# One-Time Code Errors
# =============================================================================


class CodeExpiredError(MarketplaceError):
    """Code is past its expiry; a new one must be requested."""

    error_code = "CODE_EXPIRED"
    http_status = 400


class AttemptsExhaustedError(MarketplaceError):
    """Code has used all of its attempts; a new one must be requested."""

    error_code = "ATTEMPTS_EXHAUSTED"
    http_status = 400


class InvalidCodeError(MarketplaceError):
    """Submitted code did not match. The caller may try again."""

    error_code = "INVALID_CODE"
    http_status = 400

    def __init__(self, message: str, attempts_remaining: int):
        self.attempts_remaining = attempts_remaining
        super().__init__(message, {"attempts_remaining": attempts_remaining})


class CodeAlreadyUsedError(MarketplaceError):
    """Code was already redeemed."""

    error_code = "CODE_ALREADY_USED"
    http_status = 400


# =============================================================================
# Collaborator Errors
# =============================================================================


class ExternalServiceError(MarketplaceError):
    """A collaborator (registry, mail transport) failed."""

    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class RegistryUnavailableError(ExternalServiceError):
    """Reference registry could not be read or queried."""

    error_code = "REGISTRY_UNAVAILABLE"


class DeliveryFailedError(ExternalServiceError):
    """A code or notification could not be delivered."""

    error_code = "DELIVERY_FAILED"
