"""
Registry Routes - Public Land Record Checks

Routes:
- POST /api/registry/verify      - Check a parcel identifier (and location)
- GET  /api/registry/parcels     - Browse matchable parcels by district
- GET  /api/registry/statistics  - Per-district parcel counts and areas

Owner fields of registry records are never exposed here.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.errors import NotFoundError
from core.registry import CheckOutcome
from web.services import Services, get_services_from_request


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/registry", tags=["registry"])


class RegistryCheckInput(BaseModel):
    """Identifier to check, optionally with the claimed location."""
    parcel_identifier: str = Field(min_length=3, max_length=50)
    district: Optional[str] = Field(None, min_length=2, max_length=50)
    sub_district: Optional[str] = Field(None, min_length=2, max_length=50)


# =============================================================================
# Routes
# =============================================================================


@router.post("/verify")
async def verify_parcel(
    body: RegistryCheckInput,
    services: Services = Depends(get_services_from_request),
):
    """
    Check a parcel against the land records.

    Returns 200 on a match, 400 when the parcel exists elsewhere and 404
    when no active parcel has this identifier.
    """
    identifier = body.parcel_identifier.strip()
    result = services.registry.check(identifier, body.district, body.sub_district)

    if result.outcome == CheckOutcome.LOCATION_MISMATCH:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "Parcel exists but district/sub-district details do not match land records",
                "error_code": "LOCATION_MISMATCH",
                "details": result.to_dict(),
            },
        )
    if result.outcome == CheckOutcome.NOT_FOUND:
        raise NotFoundError(
            "Parcel not found in the land records. Please check the number "
            "or contact the land registration office.",
            details={"parcel_identifier": identifier},
        )

    return {
        "success": True,
        "message": "Parcel verified successfully",
        "record": result.record.to_public_dict(),
        "verified_at": services.clock().isoformat(),
    }


@router.get("/parcels")
async def list_parcels(
    district: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    services: Services = Depends(get_services_from_request),
):
    records = services.registry.list_by_district(district, limit=limit)
    return {
        "success": True,
        "count": len(records),
        "parcels": [r.to_public_dict() for r in records],
    }


@router.get("/statistics")
async def registry_statistics(services: Services = Depends(get_services_from_request)):
    return {"success": True, "statistics": services.registry.district_statistics()}
