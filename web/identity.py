"""
Request Identity - Signed Bearer Tokens from the Identity Service

Accounts and sign-in live in a separate identity service. It hands clients
a bearer token that this service only verifies:

    Authorization: Bearer base64(json_payload).signature

The payload carries the user id, role and contact fields plus an ``exp``
claim (unix seconds). The signature is HMAC-SHA256 over the encoded
payload with the shared ``IDENTITY_SECRET``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional

from fastapi import Depends, HTTPException, Request

from core.audit import RequestContext
from core.errors import AuthorizationError
from core.listing import AgentProfile

BEARER_PREFIX: Final[str] = "Bearer "
TOKEN_DURATION_SECONDS: Final[int] = 8 * 3600


# =============================================================================
# Actor
# =============================================================================


class Role(Enum):
    """Roles recognised by the marketplace."""

    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    user_id: str
    role: Role
    name: str = ""
    email: str = ""
    phone: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def as_agent(self) -> AgentProfile:
        """Public agent contact attached to listings this actor uploads."""
        return AgentProfile(
            agent_id=self.user_id,
            name=self.name or self.email,
            email=self.email,
            phone=self.phone,
        )

    def to_dict(self) -> dict:
        return {
            "sub": self.user_id,
            "role": self.role.value,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        return cls(
            user_id=data["sub"],
            role=Role(data["role"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone"),
        )


# =============================================================================
# Token Signing
# =============================================================================


def _signature(payload_b64: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def sign_identity(
    actor: Actor,
    secret: str,
    expires_at: Optional[float] = None,
) -> str:
    """
    Encode and sign an actor as a bearer token.

    The identity service owns issuance; this is used by tooling and tests.

    Format: base64(json_payload).signature
    """
    payload = actor.to_dict()
    payload["exp"] = int(expires_at if expires_at is not None else time.time() + TOKEN_DURATION_SECONDS)
    payload_b64 = base64.urlsafe_b64encode(
        json.dumps(payload, separators=(",", ":")).encode()
    ).decode()
    return f"{payload_b64}.{_signature(payload_b64, secret)}"


def verify_identity(token: str, secret: str, now: Optional[float] = None) -> Optional[Actor]:
    """
    Verify and decode a signed bearer token.

    Returns the Actor if the signature is valid and the token has not
    expired, None otherwise.
    """
    if not secret:
        return None
    try:
        payload_b64, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, _signature(payload_b64, secret)):
            return None

        data = json.loads(base64.urlsafe_b64decode(payload_b64.encode()).decode())
        if float(data["exp"]) <= (now if now is not None else time.time()):
            return None
        return Actor.from_dict(data)

    except (ValueError, KeyError, TypeError, json.JSONDecodeError):
        return None


# =============================================================================
# FastAPI Dependencies
# =============================================================================


def get_optional_actor(request: Request) -> Optional[Actor]:
    """Actor from the Authorization header, or None when absent or invalid."""
    header = request.headers.get("authorization", "")
    if not header.startswith(BEARER_PREFIX):
        return None
    secret = request.app.state.services.config.identity_secret
    return verify_identity(header[len(BEARER_PREFIX):].strip(), secret)


def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    """
    Dependency that requires a valid bearer token.

    Raises HTTPException(401) if not authenticated.
    """
    if actor is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_role(*roles: Role):
    """Dependency factory limiting a route to the given roles."""

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise AuthorizationError(
                "You do not have permission to perform this action",
                details={"required_roles": [r.value for r in roles]},
            )
        return actor

    return dependency


require_admin = require_role(Role.ADMIN)


def request_context(request: Request) -> RequestContext:
    """Client address and user agent for the audit trail."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
