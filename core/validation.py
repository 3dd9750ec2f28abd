"""
core/validation.py -- Email syntax checks shared by every service that takes an address.

Uses email-validator (the same library behind Pydantic's EmailStr) with the
DNS deliverability check turned off: syntax only, no network.
"""

from __future__ import annotations

from email_validator import EmailNotValidError, validate_email


def normalize_email(value: object) -> str | None:
    """Return the lowercased, stripped address, or None if it is not a valid email."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return None
    return value.strip().lower()
