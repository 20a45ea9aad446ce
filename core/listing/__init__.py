"""
Property listings: schema and storage.
"""

from core.listing.repository import PropertyRepository
from core.listing.schema import (
    AgentProfile,
    AutoRejection,
    AutoVerification,
    Location,
    ManualDecision,
    OwnerDetails,
    Property,
    PropertyKind,
    RejectionReason,
    VerificationDetails,
    VerificationStatus,
    create_property,
    details_match_status,
    generate_property_id,
    verification_details_from_dict,
)

__all__ = [
    "AgentProfile",
    "AutoRejection",
    "AutoVerification",
    "Location",
    "ManualDecision",
    "OwnerDetails",
    "Property",
    "PropertyKind",
    "PropertyRepository",
    "RejectionReason",
    "VerificationDetails",
    "VerificationStatus",
    "create_property",
    "details_match_status",
    "generate_property_id",
    "verification_details_from_dict",
]
