"""
Registry Record - Reference Land-Parcel Data

Read-only records mirroring the state land registry. Only active, valid
records ever match a lookup.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from utils.clock import parse_timestamp


class LandType(Enum):
    """Land-use category recorded by the registry."""

    AGRICULTURAL = "agricultural"
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    INDUSTRIAL = "industrial"
    VACANT = "vacant"


class ParcelStatus(Enum):
    """Legal status of a parcel."""

    ACTIVE = "active"
    DISPUTED = "disputed"
    TRANSFERRED = "transferred"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RegistryRecord:
    """
    One parcel in the reference registry.

    Owner name and document number are registry-internal and never appear
    in ``to_public_dict``.
    """

    parcel_identifier: str
    district: str
    sub_district: str
    land_type: LandType = LandType.RESIDENTIAL
    status: ParcelStatus = ParcelStatus.ACTIVE
    valid: bool = True
    area_sqft: Optional[float] = None
    owner_name: Optional[str] = None
    document_number: Optional[str] = None
    registration_date: Optional[datetime] = None
    last_verified: Optional[datetime] = None

    def __post_init__(self):
        """Validate record data."""
        if not self.parcel_identifier or not self.parcel_identifier.strip():
            raise ValueError("parcel_identifier is required")
        if not self.district or not self.sub_district:
            raise ValueError("district and sub_district are required")

    @property
    def is_matchable(self) -> bool:
        """Only valid, active parcels take part in lookups."""
        return self.valid and self.status == ParcelStatus.ACTIVE

    @property
    def location_label(self) -> str:
        return f"{self.district}, {self.sub_district}"

    def to_public_dict(self) -> dict:
        """Fields safe to copy into a property's verification snapshot."""
        return {
            "parcel_identifier": self.parcel_identifier,
            "district": self.district,
            "sub_district": self.sub_district,
            "land_type": self.land_type.value,
            "area_sqft": self.area_sqft,
            "status": self.status.value,
            "last_verified": self.last_verified.isoformat() if self.last_verified else None,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = self.to_public_dict()
        data.update({
            "valid": self.valid,
            "owner_name": self.owner_name,
            "document_number": self.document_number,
            "registration_date": (
                self.registration_date.isoformat() if self.registration_date else None
            ),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RegistryRecord":
        """Create from dictionary."""
        return cls(
            parcel_identifier=data["parcel_identifier"].strip(),
            district=data["district"].strip(),
            sub_district=data["sub_district"].strip(),
            land_type=LandType(data.get("land_type", "residential")),
            status=ParcelStatus(data.get("status", "active")),
            valid=data.get("valid", True),
            area_sqft=data.get("area_sqft"),
            owner_name=data.get("owner_name"),
            document_number=data.get("document_number"),
            registration_date=(
                parse_timestamp(data["registration_date"])
                if data.get("registration_date")
                else None
            ),
            last_verified=(
                parse_timestamp(data["last_verified"]) if data.get("last_verified") else None
            ),
        )
