"""
utils/validation_utils.py

Purpose: Input validation

- Mobile phone format (Taiwan, 09xxxxxxxx)
- Membership card number format
- Chat command matching (restart, cancel, edit field keywords)
- Input sanitization
"""

import re
from typing import Optional

from utils.constants import (
    RESTART_COMMANDS,
    CANCEL_COMMANDS,
    EDIT_FIELD_KEYWORDS,
)


PHONE_PATTERN = re.compile(r"^09[0-9]{8}$")
CARD_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9]{5,}$")


def validate_phone_number(phone: str) -> bool:
    """
    Validates a mobile number: exactly 10 digits starting with 09.
    ASCII digits only; full-width input is rejected.

    Args:
        phone: Phone number string (already trimmed)

    Returns:
        True if valid
    """
    if not phone:
        return False
    return bool(PHONE_PATTERN.fullmatch(phone))


def validate_card_number(card_number: str) -> bool:
    """
    Validates a membership card number: at least 5 ASCII letters or digits.

    Args:
        card_number: Card number string (already trimmed)

    Returns:
        True if valid
    """
    if not card_number:
        return False
    return bool(CARD_NUMBER_PATTERN.fullmatch(card_number))


def sanitize_input(text: Optional[str]) -> str:
    """
    Trims surrounding whitespace (str.strip also covers full-width spaces).
    """
    if not text:
        return ""
    return text.strip()


def is_restart_command(text: str) -> bool:
    return sanitize_input(text).lower() in RESTART_COMMANDS


def is_cancel_command(text: str) -> bool:
    return sanitize_input(text).lower() in CANCEL_COMMANDS


def match_edit_field(text: str) -> Optional[str]:
    """
    Finds which member field the user wants to edit.

    Args:
        text: Free text from the edit menu (e.g. "我要改電話")

    Returns:
        "phone", "card_number", "photo_url" or None if no keyword matched
    """
    lowered = sanitize_input(text).lower()
    if not lowered:
        return None
    for keyword, field in EDIT_FIELD_KEYWORDS:
        if keyword in lowered:
            return field
    return None


def mask_phone(phone: Optional[str]) -> str:
    """Masks the middle digits of a phone number for logs (0912***678)."""
    if not phone or len(phone) < 7:
        return phone or ""
    return f"{phone[:4]}***{phone[-3:]}"
