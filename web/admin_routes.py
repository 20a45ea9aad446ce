"""
Admin Routes - Verification Review, Settings and Audit Queries

All routes under /api/admin/* require an admin bearer token.
Non-admin callers receive 403 Forbidden.

Routes:
- GET  /api/admin/properties/pending          - Review queue, oldest first
- POST /api/admin/properties/{id}/verify      - Decide a pending listing
- POST /api/admin/properties/{id}/approve     - Override to verified
- POST /api/admin/properties/{id}/reject      - Override to rejected
- GET  /api/admin/settings/verification       - Current verification mode
- PUT  /api/admin/settings/verification       - Change verification mode
- GET  /api/admin/activities                  - Filtered activity log
- GET  /api/admin/security-alerts             - Recent security alerts
- GET  /api/admin/activities/integrity        - Hash chain check
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from core.errors import ValidationError
from core.listing import VerificationStatus
from web.identity import Actor, request_context, require_admin
from web.services import Services, get_services_from_request


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/admin", tags=["admin"])


# =============================================================================
# Request Models
# =============================================================================


class DecisionInput(BaseModel):
    """Manual decision on a pending listing."""
    decision: str
    notes: Optional[str] = None


class OverrideInput(BaseModel):
    """Reason attached to an approve/reject override."""
    reason: Optional[str] = None


class VerificationModeInput(BaseModel):
    """New verification mode."""
    mode: str


def _decided(prop) -> dict:
    return {
        "success": True,
        "property": prop.to_public_dict(),
        "verification_details": (
            prop.verification_details.to_dict() if prop.verification_details else None
        ),
    }


# =============================================================================
# Review Queue
# =============================================================================


@router.get("/properties/pending")
async def pending_properties(
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Listings waiting for a decision, with owner details for review."""
    pending = services.properties.list_by_status(VerificationStatus.PENDING)
    return {
        "success": True,
        "properties": [
            {**p.to_public_dict(), "owner_details": p.owner_details.to_dict()}
            for p in pending
        ],
        "counts": services.properties.count_by_status(),
    }


@router.post("/properties/{property_id}/verify")
async def verify_property(
    property_id: str,
    body: DecisionInput,
    request: Request,
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Decide a pending listing. Fails with 409 if it was already decided."""
    prop = services.verification.manual_decide(
        property_id, body.decision, body.notes, admin.user_id, request_context(request)
    )
    return _decided(prop)


@router.post("/properties/{property_id}/approve")
async def approve_property(
    property_id: str,
    request: Request,
    body: Optional[OverrideInput] = None,
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Mark a listing verified regardless of its current status."""
    prop = services.verification.admin_override(
        property_id,
        VerificationStatus.VERIFIED,
        body.reason if body else None,
        admin.user_id,
        request_context(request),
    )
    return _decided(prop)


@router.post("/properties/{property_id}/reject")
async def reject_property(
    property_id: str,
    body: OverrideInput,
    request: Request,
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Mark a listing rejected regardless of its current status."""
    prop = services.verification.admin_override(
        property_id,
        VerificationStatus.REJECTED,
        body.reason,
        admin.user_id,
        request_context(request),
    )
    return _decided(prop)


# =============================================================================
# Settings
# =============================================================================


@router.get("/settings/verification")
async def get_verification_settings(
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    return {"success": True, **services.settings.to_dict()}


@router.put("/settings/verification")
async def update_verification_settings(
    body: VerificationModeInput,
    request: Request,
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Switch between manual and automatic verification."""
    change = services.verification.change_mode(body.mode, admin.user_id, request_context(request))
    return {"success": True, **change.to_dict()}


# =============================================================================
# Audit Trail
# =============================================================================


@router.get("/activities")
async def list_activities(
    actor_id: Optional[str] = Query(None),
    property_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    """Activity records matching every given filter, newest first."""
    try:
        records = services.audit.query(
            actor_id=actor_id,
            property_id=property_id,
            category=category,
            action=action,
            severity=severity,
            status=status,
            limit=limit,
        )
    except ValueError as e:
        raise ValidationError(f"Invalid activity filter: {e}") from None
    return {"success": True, "activities": [r.to_dict() for r in records]}


@router.get("/security-alerts")
async def security_alerts(
    limit: int = Query(20, ge=1, le=200),
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    records = services.audit.security_alerts(limit=limit)
    return {"success": True, "alerts": [r.to_dict() for r in records]}


@router.get("/activities/integrity")
async def activity_integrity(
    admin: Actor = Depends(require_admin),
    services: Services = Depends(get_services_from_request),
):
    return {"success": True, **services.audit.verify_integrity()}
