"""Ghana phone number validation and formatting."""
import re

GHANA_PHONE_REGEX = re.compile(r"^(?:\+233|0)([235][0-9]{8})$")


def _clean(phone: str) -> str:
    return re.sub(r"[\s-]", "", phone)


def is_valid_ghana_phone(phone: str) -> bool:
    return GHANA_PHONE_REGEX.match(_clean(phone)) is not None


def normalize_ghana_phone(phone: str) -> str:
    """
    Canonical +233XXXXXXXXX form.

    Raises:
        ValueError: Not a Ghana mobile or landline number
    """
    match = GHANA_PHONE_REGEX.match(_clean(phone))
    if match is None:
        raise ValueError("Invalid Ghana phone number")
    return f"+233{match.group(1)}"

