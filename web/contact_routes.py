"""
Contact Disclosure Routes - One-Time Codes for Owner Contact

Signed-in users:
- POST /api/otp/send               - Send a code for a verified listing
- POST /api/otp/resend             - Replace an unusable code
- POST /api/otp/verify             - Redeem a code, receive owner contact
- GET  /api/otp/status/{code_id}   - Inspect one of your own codes

Visitors without an account:
- POST /api/otp/send-email-contact    - Email a code
- POST /api/otp/verify-email-contact  - Redeem the latest emailed code

Codes are never returned in responses except in debug mode.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from core.errors import ValidationError
from core.otp import DestinationKind
from web.identity import Actor, get_current_actor, get_optional_actor, request_context
from web.services import Services, get_services_from_request


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/otp", tags=["contact"])


# =============================================================================
# Request Models
# =============================================================================


class SendCodeInput(BaseModel):
    """Where to send a contact code."""
    property_id: str
    contact_method: str = "phone"
    phone: Optional[str] = None
    email: Optional[str] = None


class VerifyCodeInput(BaseModel):
    code_id: str
    code: str


class EmailContactInput(BaseModel):
    email: str
    property_id: str


class VerifyEmailContactInput(BaseModel):
    email: str
    property_id: str
    code: str


def _destination(body: SendCodeInput, actor: Actor) -> tuple[DestinationKind, str]:
    """Chosen channel and address, defaulting to the caller's own contact."""
    try:
        method = DestinationKind(body.contact_method.strip().lower())
    except ValueError:
        raise ValidationError(
            "Contact method must be 'phone' or 'email'",
            field_errors={"contact_method": "Must be 'phone' or 'email'"},
        ) from None

    if method == DestinationKind.PHONE:
        return method, (body.phone or actor.phone or "").strip()
    return method, (body.email or actor.email or "").strip()


# =============================================================================
# Signed-in Flow
# =============================================================================


@router.post("/send")
async def send_code(
    body: SendCodeInput,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    method, destination = _destination(body, actor)
    issued = services.contact.request_code(
        actor.user_id,
        body.property_id,
        method,
        destination,
        recipient_name=actor.name,
        request=request_context(request),
    )
    return {"success": True, "message": "Verification code sent", **issued.to_dict()}


@router.post("/resend")
async def resend_code(
    body: SendCodeInput,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    """Issue a fresh code once the previous one is used, expired or exhausted."""
    method, destination = _destination(body, actor)
    issued = services.contact.resend_code(
        actor.user_id,
        body.property_id,
        method,
        destination,
        recipient_name=actor.name,
        request=request_context(request),
    )
    return {"success": True, "message": "Verification code resent", **issued.to_dict()}


@router.post("/verify")
async def verify_code(
    body: VerifyCodeInput,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    disclosure = services.contact.confirm_code(
        actor.user_id, body.code_id, body.code, request_context(request)
    )
    return {"success": True, "message": "Code verified", **disclosure.to_dict()}


@router.get("/status/{code_id}")
async def code_status(
    code_id: str,
    actor: Actor = Depends(get_current_actor),
    services: Services = Depends(get_services_from_request),
):
    status = services.contact.code_status(actor.user_id, code_id)
    return {"success": True, **status.to_dict()}


# =============================================================================
# Anonymous Flow
# =============================================================================


@router.post("/send-email-contact")
async def send_email_contact(
    body: EmailContactInput,
    request: Request,
    services: Services = Depends(get_services_from_request),
):
    issued = services.contact.request_anonymous_code(
        body.email, body.property_id, request_context(request)
    )
    return {"success": True, "message": "Verification code sent to your email", **issued.to_dict()}


@router.post("/verify-email-contact")
async def verify_email_contact(
    body: VerifyEmailContactInput,
    request: Request,
    actor: Optional[Actor] = Depends(get_optional_actor),
    services: Services = Depends(get_services_from_request),
):
    """Redeem an emailed code. A signed-in caller is recorded as the requester."""
    disclosure = services.contact.confirm_anonymous_code(
        body.email,
        body.property_id,
        body.code,
        requester_user_id=actor.user_id if actor else None,
        request=request_context(request),
    )
    return {"success": True, "message": "Code verified", **disclosure.to_dict()}
