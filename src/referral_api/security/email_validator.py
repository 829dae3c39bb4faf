"""Email normalization and format validation.

Emails are compared case-insensitively: every lookup and insert goes
through normalize_email first.
"""

import re

# local@domain.tld with no whitespace and exactly one @ per part
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    """Strip surrounding whitespace and lower-case an email address."""
    return email.strip().lower()


def is_valid_email(email: str | None) -> bool:
    """Check an email against the accepted address format."""
    if not email:
        return False
    return bool(EMAIL_REGEX.match(email))
