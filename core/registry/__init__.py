"""
Reference land registry used for automatic verification.
"""

from core.registry.lookup import (
    CheckOutcome,
    RegistryCheckResult,
    RegistryLookup,
    UnavailableRegistry,
)
from core.registry.record import LandType, ParcelStatus, RegistryRecord

__all__ = [
    "CheckOutcome",
    "LandType",
    "ParcelStatus",
    "RegistryCheckResult",
    "RegistryLookup",
    "RegistryRecord",
    "UnavailableRegistry",
]
