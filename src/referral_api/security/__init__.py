"""Input validation helpers shared by the request boundary and services."""

from referral_api.security.email_validator import (
    EMAIL_REGEX,
    is_valid_email,
    normalize_email,
)

__all__ = [
    "EMAIL_REGEX",
    "is_valid_email",
    "normalize_email",
]
