"""
Phone number helpers
"""
import re
from typing import Optional

WHATSAPP_PREFIX = "whatsapp:"

# E.164 allows at most 15 digits; anything under 7 is not a dialable number
_MIN_DIGITS = 7
_MAX_DIGITS = 15


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to "+<digits>".

    Strips a whatsapp: prefix and every non-digit. Returns None for empty or
    malformed input so callers can drop just the phone-dependent behavior.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if value.startswith(WHATSAPP_PREFIX):
        value = value[len(WHATSAPP_PREFIX):]
    digits = re.sub(r"\D", "", value)
    if not (_MIN_DIGITS <= len(digits) <= _MAX_DIGITS):
        return None
    return f"+{digits}"


def to_whatsapp_address(number: str) -> str:
    """Channel-prefixed address for the provider; idempotent."""
    number = number.strip()
    if number.startswith(WHATSAPP_PREFIX):
        return number
    return f"{WHATSAPP_PREFIX}{number}"


def strip_whatsapp_prefix(address: Optional[str]) -> str:
    if not address:
        return ""
    address = address.strip()
    if address.startswith(WHATSAPP_PREFIX):
        return address[len(WHATSAPP_PREFIX):]
    return address
