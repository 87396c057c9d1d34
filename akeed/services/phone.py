"""Phone normalization to E.164 for WhatsApp recipients."""

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat


class InvalidPhoneNumberError(ValueError):
    pass


def standardize_phone(phone: str | None, country_code: str | None = None) -> str:
    """Return ``phone`` in E.164 form.

    Numbers carrying ``+`` or an ``00`` international prefix are parsed as
    dialled. National numbers are resolved against ``country_code`` (ISO
    alpha-2, case-insensitive).

    Raises
    ------
    InvalidPhoneNumberError
        If the number is empty, cannot be parsed for the region, or is not a
        possible and valid number according to libphonenumber metadata.
    """
    cleaned = (phone or "").strip()
    if not cleaned:
        raise InvalidPhoneNumberError("Phone number is required.")
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    region = (country_code or "").strip().upper() or None
    try:
        parsed = phonenumbers.parse(cleaned, region)
    except NumberParseException as e:
        raise InvalidPhoneNumberError(f"Invalid phone number format: {phone!r}.") from e

    if not phonenumbers.is_possible_number(parsed):
        raise InvalidPhoneNumberError(f"Phone number is impossible: {phone!r}.")
    if not phonenumbers.is_valid_number(parsed):
        raise InvalidPhoneNumberError(f"Phone number is invalid: {phone!r}.")

    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)
