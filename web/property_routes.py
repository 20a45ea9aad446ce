"""
Property Routes - Listing Submission and Public Views

Routes:
- POST   /api/properties       - Submit a listing (agent/admin)
- GET    /api/properties       - List verified listings
- GET    /api/properties/mine  - Caller's own listings, any status
- GET    /api/properties/{id}  - Public view of one listing
- DELETE /api/properties/{id}  - Remove a listing (uploader or admin)

Owner details never appear in these responses. They are released only
through the contact disclosure routes.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from core.audit import ActivityAction, ActivityCategory, Severity
from core.errors import AuthorizationError, NotFoundError
from core.listing import Property, create_property
from web.identity import (
    Actor,
    Role,
    get_current_actor,
    get_optional_actor,
    request_context,
    require_role,
)
from web.services import Services, get_services_from_request

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/properties", tags=["properties"])


# =============================================================================
# Request Models
# =============================================================================


class LocationInput(BaseModel):
    """Where the listing is."""
    district: str = ""
    sub_district: str = ""
    address: str = ""
    postal_code: str = ""
    area: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class OwnerInput(BaseModel):
    """Owner contact, withheld until disclosure."""
    name: str = ""
    phone: str = ""
    email: Optional[str] = None
    alternate_phone: Optional[str] = None


class PropertyInput(BaseModel):
    """A new listing."""
    kind: str
    title: str = ""
    location: LocationInput
    owner_details: OwnerInput
    parcel_identifier: Optional[str] = None
    price: Optional[float] = None
    description: str = ""
    attributes: dict[str, Any] = {}


# =============================================================================
# Helpers
# =============================================================================


def can_see_unverified(prop: Property, actor: Optional[Actor]) -> bool:
    """Unverified listings are visible to their uploader and admins only."""
    if prop.is_verified:
        return True
    return actor is not None and (actor.is_admin or actor.user_id == prop.uploaded_by)


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=201)
async def submit_property(
    body: PropertyInput,
    request: Request,
    actor: Actor = Depends(require_role(Role.AGENT, Role.ADMIN)),
    services: Services = Depends(get_services_from_request),
):
    """Create a listing and run verification in the active mode."""
    prop = create_property(body.model_dump(), actor.as_agent(), now=services.clock())
    outcome = services.verification.submit(prop, request=request_context(request))
    return {"success": True, **outcome.to_dict()}


@router.get("")
async def list_properties(
    district: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    services: Services = Depends(get_services_from_request),
):
    """Verified listings, newest first."""
    listings = services.properties.list_visible()
    if district:
        needle = district.strip().casefold()
        listings = [p for p in listings if needle in p.location.district.casefold()]
    return {
        "success": True,
        "properties": [p.to_public_dict() for p in listings[:limit]],
        "total": len(listings),
    }


@router.get("/mine")
async def my_properties(
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    """The caller's uploads with their verification details."""
    listings = services.properties.list_by_uploader(actor.user_id)
    return {
        "success": True,
        "properties": [
            {
                **p.to_public_dict(),
                "verification_details": (
                    p.verification_details.to_dict() if p.verification_details else None
                ),
            }
            for p in listings
        ],
    }


@router.get("/{property_id}")
async def get_property(
    property_id: str,
    request: Request,
    actor: Optional[Actor] = Depends(get_optional_actor),
    services: Services = Depends(get_services_from_request),
):
    """Public view of a listing. Counts the view when the listing is live."""
    prop = services.properties.get(property_id)
    if prop is None or not can_see_unverified(prop, actor):
        raise NotFoundError("Property not found", details={"property_id": property_id})

    if prop.is_verified:
        if services.properties.record_view(property_id) is not None:
            prop = services.properties.get(property_id) or prop
        services.audit.record(
            ActivityAction.PROPERTY_VIEW,
            ActivityCategory.USER_ACTION,
            actor_id=actor.user_id if actor else None,
            target_user_id=prop.uploaded_by,
            property_id=property_id,
            details=f"Viewed property: {prop.title}",
            metadata=request_context(request).to_metadata(),
            severity=Severity.LOW,
        )
    return {"success": True, "property": prop.to_public_dict()}


@router.delete("/{property_id}")
async def delete_property(
    property_id: str,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    """Remove a listing. Only the uploader or an admin may do this."""
    prop = services.properties.require(property_id)
    if not (actor.is_admin or actor.user_id == prop.uploaded_by):
        raise AuthorizationError(
            "Only the uploader or an admin can delete this property",
            details={"property_id": property_id},
        )

    services.properties.delete(property_id)
    services.audit.record(
        ActivityAction.PROPERTY_DELETE,
        ActivityCategory.PROPERTY,
        actor_id=actor.user_id,
        target_user_id=prop.uploaded_by,
        property_id=property_id,
        details=f"Deleted property: {prop.title}",
        metadata=request_context(request).to_metadata(
            verification_status=prop.verification_status.value,
        ),
        severity=Severity.MEDIUM,
    )
    logger.info("Property %s deleted by %s", property_id, actor.user_id)
    return {"success": True, "message": "Property deleted"}
