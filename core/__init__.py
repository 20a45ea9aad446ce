"""
Property Verification & Contact Disclosure - Core Business Logic

This package provides the listing verification workflow:
1. Listing submission (tagged-variant Property, single keyed store)
2. Verification (manual admin review or registry-driven automatic check)
3. Contact disclosure (one-time codes gate owner details)
4. Audit trail (hash-chained activity records)
"""

from .errors import (
    AttemptsExhaustedError,
    AuthorizationError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    ConflictError,
    DeliveryFailedError,
    ExternalServiceError,
    InvalidCodeError,
    MarketplaceError,
    NotFoundError,
    RateLimitError,
    RegistryUnavailableError,
    ValidationError,
)

# Audit trail
from .audit import ActivityAction, ActivityCategory, AuditLog, RequestContext

# One-time codes
from .otp import CodePurpose, OneTimeCodeEngine, OneTimeCodeRepository

# Registry
from .registry import RegistryLookup, RegistryRecord

# Listings
from .listing import (
    AgentProfile,
    Property,
    PropertyKind,
    PropertyRepository,
    VerificationStatus,
    create_property,
)

# Settings and workflow services
from .settings import AdminSettingsStore, VerificationMode
from .verification import AutoResult, SubmissionOutcome, VerificationEngine
from .contact import CodeIssued, ContactDisclosure, ContactDisclosureService
from .maintenance import SweepReport, sweep

__all__ = [
    # Errors
    "AttemptsExhaustedError",
    "AuthorizationError",
    "CodeAlreadyUsedError",
    "CodeExpiredError",
    "ConflictError",
    "DeliveryFailedError",
    "ExternalServiceError",
    "InvalidCodeError",
    "MarketplaceError",
    "NotFoundError",
    "RateLimitError",
    "RegistryUnavailableError",
    "ValidationError",
    # Audit trail
    "ActivityAction",
    "ActivityCategory",
    "AuditLog",
    "RequestContext",
    # One-time codes
    "CodePurpose",
    "OneTimeCodeEngine",
    "OneTimeCodeRepository",
    # Registry
    "RegistryLookup",
    "RegistryRecord",
    # Listings
    "AgentProfile",
    "Property",
    "PropertyKind",
    "PropertyRepository",
    "VerificationStatus",
    "create_property",
    # Workflow
    "AdminSettingsStore",
    "VerificationMode",
    "AutoResult",
    "SubmissionOutcome",
    "VerificationEngine",
    "CodeIssued",
    "ContactDisclosure",
    "ContactDisclosureService",
    "SweepReport",
    "sweep",
]
