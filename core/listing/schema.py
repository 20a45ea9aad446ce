"""
Property Listing Schema

A single Property type covers land, house and rental listings. The ``kind``
field discriminates and kind-specific fields live in ``attributes``. Every
kind shares the verification and contact-disclosure contract.

Verification Invariant (checked on construction):
- pending_verification: no verification details
- verified: ManualDecision without a rejection reason, or AutoVerification
- rejected: ManualDecision with a rejection reason, or AutoRejection
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from core.errors import ValidationError
from core.validators import (
    normalize_email,
    validate_email,
    validate_phone,
    validate_postal_code,
)
from utils.clock import parse_timestamp, utcnow


# =============================================================================
# Enums
# =============================================================================


class PropertyKind(Enum):
    """Listing variant."""

    LAND = "land"
    HOUSE = "house"
    RENTAL = "rental"


class VerificationStatus(Enum):
    """Verification lifecycle state."""

    PENDING = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RejectionReason(Enum):
    """Why automatic verification rejected a listing."""

    LOCATION_MISMATCH = "location_mismatch"
    IDENTIFIER_NOT_FOUND = "identifier_not_found"


def generate_property_id() -> str:
    """Generate a unique property ID."""
    return f"PROP-{uuid.uuid4().hex[:12].upper()}"


# =============================================================================
# Value Objects
# =============================================================================


@dataclass(frozen=True)
class Location:
    """Where the property is."""

    district: str
    sub_district: str  # taluk
    address: str
    postal_code: str
    area: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "district": self.district,
            "sub_district": self.sub_district,
            "area": self.area,
            "address": self.address,
            "postal_code": self.postal_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        return cls(
            district=data["district"],
            sub_district=data["sub_district"],
            address=data["address"],
            postal_code=data["postal_code"],
            area=data.get("area", ""),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )


@dataclass(frozen=True)
class OwnerDetails:
    """Sensitive owner contact. Only released through contact disclosure."""

    name: str
    phone: str
    email: Optional[str] = None
    alternate_phone: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "alternate_phone": self.alternate_phone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OwnerDetails":
        return cls(
            name=data["name"],
            phone=data["phone"],
            email=data.get("email"),
            alternate_phone=data.get("alternate_phone"),
        )


@dataclass(frozen=True)
class AgentProfile:
    """Public contact of the uploading agent."""

    agent_id: str
    name: str
    email: str
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentProfile":
        return cls(
            agent_id=data["agent_id"],
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
        )


# =============================================================================
# Verification Details
# =============================================================================


@dataclass(frozen=True)
class ManualDecision:
    """Decision recorded by an admin (verify, reject or override)."""

    verified_by: str
    verified_at: datetime
    notes: str = ""
    rejection_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": "manual",
            "verified_by": self.verified_by,
            "verified_at": self.verified_at.isoformat(),
            "notes": self.notes,
            "rejection_reason": self.rejection_reason,
        }


@dataclass(frozen=True)
class AutoVerification:
    """Positive registry match."""

    verified_at: datetime
    registry_snapshot: dict[str, Any]
    method: str = "registry"

    @property
    def auto_verified(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {
            "type": "auto_verified",
            "auto_verified": True,
            "verified_at": self.verified_at.isoformat(),
            "method": self.method,
            "registry_snapshot": self.registry_snapshot,
        }


@dataclass(frozen=True)
class AutoRejection:
    """Registry lookup found a mismatch or nothing at all."""

    rejected_at: datetime
    rejection_reason: RejectionReason
    rejection_notes: str
    diagnostics: dict[str, Any] = field(default_factory=dict)

    @property
    def auto_verified(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            "type": "auto_rejected",
            "auto_verified": False,
            "rejected_at": self.rejected_at.isoformat(),
            "rejection_reason": self.rejection_reason.value,
            "rejection_notes": self.rejection_notes,
            "diagnostics": self.diagnostics,
        }


VerificationDetails = Union[ManualDecision, AutoVerification, AutoRejection]


def verification_details_from_dict(data: Optional[dict]) -> Optional[VerificationDetails]:
    """Rebuild verification details from their tagged dictionary form."""
    if not data:
        return None
    kind = data.get("type")
    if kind == "manual":
        return ManualDecision(
            verified_by=data["verified_by"],
            verified_at=parse_timestamp(data["verified_at"]),
            notes=data.get("notes", ""),
            rejection_reason=data.get("rejection_reason"),
        )
    if kind == "auto_verified":
        return AutoVerification(
            verified_at=parse_timestamp(data["verified_at"]),
            registry_snapshot=data.get("registry_snapshot", {}),
            method=data.get("method", "registry"),
        )
    if kind == "auto_rejected":
        return AutoRejection(
            rejected_at=parse_timestamp(data["rejected_at"]),
            rejection_reason=RejectionReason(data["rejection_reason"]),
            rejection_notes=data.get("rejection_notes", ""),
            diagnostics=data.get("diagnostics", {}),
        )
    raise ValueError(f"Unknown verification details type: {kind!r}")


def details_match_status(
    status: VerificationStatus, details: Optional[VerificationDetails]
) -> bool:
    """Check the shape of verification details against the status."""
    if status == VerificationStatus.PENDING:
        return details is None
    if status == VerificationStatus.VERIFIED:
        if isinstance(details, ManualDecision):
            return details.rejection_reason is None
        return isinstance(details, AutoVerification)
    if isinstance(details, ManualDecision):
        return bool(details.rejection_reason)
    return isinstance(details, AutoRejection)


# =============================================================================
# Property
# =============================================================================


@dataclass(frozen=True)
class Property:
    """
    A listing of any kind.

    Immutable: the repository replaces the stored instance on every change.
    """

    property_id: str
    kind: PropertyKind
    title: str
    uploaded_by: str
    agent: AgentProfile
    location: Location
    owner_details: OwnerDetails
    created_at: datetime
    updated_at: datetime
    parcel_identifier: Optional[str] = None
    price: Optional[float] = None
    description: str = ""
    attributes: dict[str, Any] = field(default_factory=dict)
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_details: Optional[VerificationDetails] = None
    contact_request_count: int = 0
    view_count: int = 0

    def __post_init__(self) -> None:
        """Enforce the variant and verification invariants."""
        if self.kind == PropertyKind.LAND and not self.parcel_identifier:
            raise ValueError("parcel_identifier is required for land")
        if not details_match_status(self.verification_status, self.verification_details):
            raise ValueError(
                f"verification details do not match status {self.verification_status.value}"
            )
        if self.contact_request_count < 0 or self.view_count < 0:
            raise ValueError("counters cannot be negative")

    @property
    def is_verified(self) -> bool:
        return self.verification_status == VerificationStatus.VERIFIED

    @property
    def is_pending(self) -> bool:
        return self.verification_status == VerificationStatus.PENDING

    def summary(self) -> dict:
        """Non-sensitive summary returned alongside disclosed contacts."""
        return {
            "property_id": self.property_id,
            "title": self.title,
            "kind": self.kind.value,
            "location": {
                "district": self.location.district,
                "sub_district": self.location.sub_district,
                "area": self.location.area,
            },
        }

    def to_public_dict(self) -> dict:
        """Listing view with owner details withheld."""
        return {
            "property_id": self.property_id,
            "kind": self.kind.value,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "location": self.location.to_dict(),
            "parcel_identifier": self.parcel_identifier,
            "attributes": self.attributes,
            "agent": {"name": self.agent.name},
            "verification_status": self.verification_status.value,
            "contact_request_count": self.contact_request_count,
            "view_count": self.view_count,
            "created_at": self.created_at.isoformat(),
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "property_id": self.property_id,
            "kind": self.kind.value,
            "title": self.title,
            "uploaded_by": self.uploaded_by,
            "agent": self.agent.to_dict(),
            "location": self.location.to_dict(),
            "owner_details": self.owner_details.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "parcel_identifier": self.parcel_identifier,
            "price": self.price,
            "description": self.description,
            "attributes": self.attributes,
            "verification_status": self.verification_status.value,
            "verification_details": (
                self.verification_details.to_dict() if self.verification_details else None
            ),
            "contact_request_count": self.contact_request_count,
            "view_count": self.view_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Property":
        """Create from dictionary."""
        return cls(
            property_id=data["property_id"],
            kind=PropertyKind(data["kind"]),
            title=data["title"],
            uploaded_by=data["uploaded_by"],
            agent=AgentProfile.from_dict(data["agent"]),
            location=Location.from_dict(data["location"]),
            owner_details=OwnerDetails.from_dict(data["owner_details"]),
            created_at=parse_timestamp(data["created_at"]),
            updated_at=parse_timestamp(data["updated_at"]),
            parcel_identifier=data.get("parcel_identifier"),
            price=data.get("price"),
            description=data.get("description", ""),
            attributes=data.get("attributes", {}),
            verification_status=VerificationStatus(data["verification_status"]),
            verification_details=verification_details_from_dict(
                data.get("verification_details")
            ),
            contact_request_count=data.get("contact_request_count", 0),
            view_count=data.get("view_count", 0),
        )


# =============================================================================
# Factory
# =============================================================================


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def create_property(
    data: dict[str, Any],
    agent: AgentProfile,
    now: Optional[datetime] = None,
) -> Property:
    """
    Validate raw listing data and build a pending Property.

    Args:
        data: Raw listing fields (kind, title, location, owner_details, ...)
        agent: Uploading agent
        now: Creation time (defaults to current UTC time)

    Returns:
        New Property in pending_verification

    Raises:
        ValidationError: With one message per offending field
    """
    errors: dict[str, str] = {}

    kind_value = data.get("kind")
    kind: Optional[PropertyKind] = None
    try:
        kind = PropertyKind(kind_value)
    except ValueError:
        errors["kind"] = "Must be one of land, house, rental"

    if _blank(data.get("title")):
        errors["title"] = "Title is required"

    location = data.get("location") or {}
    for key in ("district", "sub_district", "address"):
        if _blank(location.get(key)):
            errors[f"location.{key}"] = f"{key.replace('_', '-')} is required"
    postal_code = str(location.get("postal_code") or "")
    if not validate_postal_code(postal_code):
        errors["location.postal_code"] = "Postal code must be 6 digits"
    latitude = location.get("latitude")
    longitude = location.get("longitude")
    if latitude is not None and not -90 <= float(latitude) <= 90:
        errors["location.latitude"] = "Latitude must be between -90 and 90"
    if longitude is not None and not -180 <= float(longitude) <= 180:
        errors["location.longitude"] = "Longitude must be between -180 and 180"

    owner = data.get("owner_details") or {}
    if _blank(owner.get("name")):
        errors["owner_details.name"] = "Owner name is required"
    if not validate_phone(str(owner.get("phone") or "")):
        errors["owner_details.phone"] = "Phone must be a valid Indian mobile number (+91XXXXXXXXXX)"
    if owner.get("email") and not validate_email(owner["email"]):
        errors["owner_details.email"] = "Email address is not valid"
    if owner.get("alternate_phone") and not validate_phone(owner["alternate_phone"]):
        errors["owner_details.alternate_phone"] = "Alternate phone is not valid"

    parcel_identifier = (data.get("parcel_identifier") or "").strip() or None
    if kind == PropertyKind.LAND and parcel_identifier is None:
        errors["parcel_identifier"] = "Survey number is required for land"

    price = data.get("price")
    if price is not None and float(price) <= 0:
        errors["price"] = "Price must be positive"

    if errors:
        raise ValidationError("Property data is invalid", field_errors=errors)

    created = now or utcnow()
    return Property(
        property_id=generate_property_id(),
        kind=kind,
        title=data["title"].strip(),
        uploaded_by=agent.agent_id,
        agent=agent,
        location=Location(
            district=location["district"].strip(),
            sub_district=location["sub_district"].strip(),
            address=location["address"].strip(),
            postal_code=postal_code.strip(),
            area=(location.get("area") or "").strip(),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
        ),
        owner_details=OwnerDetails(
            name=owner["name"].strip(),
            phone=owner["phone"].strip(),
            email=normalize_email(owner["email"]) if owner.get("email") else None,
            alternate_phone=(owner.get("alternate_phone") or "").strip() or None,
        ),
        created_at=created,
        updated_at=created,
        parcel_identifier=parcel_identifier,
        price=float(price) if price is not None else None,
        description=(data.get("description") or "").strip(),
        attributes=dict(data.get("attributes") or {}),
    )
