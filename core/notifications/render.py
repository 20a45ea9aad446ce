"""
Message rendering with Jinja2 templates.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from core.listing.schema import AgentProfile, Property, VerificationStatus
from core.otp.model import CodePurpose
from utils.config import Config

TEMPLATES_DIR: Final[Path] = Path(__file__).parent / "templates"

CODE_SUBJECTS: Final[dict[CodePurpose, str]] = {
    CodePurpose.PROPERTY_CONTACT: "Your code to view owner contact details",
    CodePurpose.EMAIL_VERIFICATION: "Your email verification code",
    CodePurpose.PASSWORD_RESET: "Your password reset code",
    CodePurpose.PHONE_VERIFICATION: "Your phone verification code",
}


@dataclass(frozen=True)
class RenderedMessage:
    """A message ready for a transport."""

    to: str
    subject: str
    body: str


class MessageRenderer:
    """Renders plain-text notification bodies."""

    def __init__(self, templates_dir: Optional[Path] = None, config: Optional[Config] = None):
        self._config = config or Config.load()
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def _render(self, template_name: str, **context) -> str:
        return self._env.get_template(template_name).render(**context)

    def render_code(
        self,
        destination: str,
        recipient_name: str,
        code: str,
        purpose: CodePurpose,
    ) -> RenderedMessage:
        if purpose == CodePurpose.PASSWORD_RESET:
            expiry_minutes = self._config.password_reset_code_expiry_minutes
        else:
            expiry_minutes = self._config.contact_code_expiry_minutes
        body = self._render(
            "code.txt",
            recipient_name=recipient_name or "there",
            code=code,
            purpose=purpose.value,
            expiry_minutes=expiry_minutes,
            max_attempts=self._config.max_code_attempts,
        )
        return RenderedMessage(to=destination, subject=CODE_SUBJECTS[purpose], body=body)

    def render_verification_outcome(
        self,
        agent: AgentProfile,
        prop: Property,
        outcome: VerificationStatus,
    ) -> RenderedMessage:
        details = prop.verification_details.to_dict() if prop.verification_details else {}
        if outcome == VerificationStatus.VERIFIED:
            template = "verification_verified.txt"
            subject = f"Your property \"{prop.title}\" is verified"
        else:
            template = "verification_rejected.txt"
            subject = f"Your property \"{prop.title}\" could not be verified"
        body = self._render(
            template,
            agent_name=agent.name,
            title=prop.title,
            property_id=prop.property_id,
            parcel_identifier=prop.parcel_identifier or "",
            district=prop.location.district,
            sub_district=prop.location.sub_district,
            notes=details.get("rejection_notes") or details.get("notes") or "",
            reason=details.get("rejection_reason") or "",
        )
        return RenderedMessage(to=agent.email, subject=subject, body=body)

    def render_contact_alert(
        self,
        recipient_email: str,
        recipient_name: str,
        prop: Property,
        requester_email: str,
    ) -> RenderedMessage:
        body = self._render(
            "contact_alert.txt",
            recipient_name=recipient_name or "there",
            title=prop.title,
            property_id=prop.property_id,
            district=prop.location.district,
            requester_email=requester_email,
        )
        return RenderedMessage(
            to=recipient_email,
            subject=f"New contact request for \"{prop.title}\"",
            body=body,
        )
