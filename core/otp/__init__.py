"""
One-time code issuance and validation.
"""

from core.otp.engine import OneTimeCodeEngine
from core.otp.model import (
    CODE_DIGITS,
    CodePurpose,
    CodeStatus,
    DestinationKind,
    OneTimeCode,
    anonymous_subject,
    classify_destination,
    create_one_time_code,
    generate_numeric_code,
)
from core.otp.repository import (
    AttemptOutcome,
    AttemptResult,
    OneTimeCodeRepository,
)

__all__ = [
    "CODE_DIGITS",
    "AttemptOutcome",
    "AttemptResult",
    "CodePurpose",
    "CodeStatus",
    "DestinationKind",
    "OneTimeCode",
    "OneTimeCodeEngine",
    "OneTimeCodeRepository",
    "anonymous_subject",
    "classify_destination",
    "create_one_time_code",
    "generate_numeric_code",
]
