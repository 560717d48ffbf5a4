"""Identifier validation for emails and E.164 phone numbers."""

import re

from pydantic.networks import validate_email
from pydantic_core import PydanticCustomError

PHONE_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def is_valid_email(value: str) -> bool:
    """Same check as ``EmailStr``, for identifiers that may be either kind."""
    try:
        validate_email(value)
    except PydanticCustomError:
        return False
    return True


def is_valid_phone(value: str) -> bool:
    return bool(PHONE_RE.match(value))


def is_email_identifier(identifier: str) -> bool:
    """Identifiers containing '@' are emails, everything else is a phone number."""
    return "@" in identifier


def normalise_identifier(identifier: str) -> str:
    identifier = identifier.strip()
    return identifier.lower() if is_email_identifier(identifier) else identifier
