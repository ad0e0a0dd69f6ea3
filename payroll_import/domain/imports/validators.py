"""
Preset validators for payroll record fields.

Regex presets cover the format rules (email, Canadian postal code, employee
numbers, pay and deduction codes); the SIN check applies the weighted
modulus-10 (Luhn) algorithm.
"""

import re
from typing import Optional, Tuple


# Preset regex patterns for common validations
PRESET_PATTERNS = {
    # Contact
    "email": r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$",
    "postal_code_ca": r"^[A-Za-z]\d[A-Za-z][\s-]?\d[A-Za-z]\d$",

    # Identifiers & Codes
    "employee_number": r"^[A-Za-z0-9\-]{1,20}$",
    "pay_code": r"^[A-Za-z0-9\-_]{1,10}$",
    "deduction_code": r"^[A-Za-z0-9]{2,5}$",
}


# Human-readable descriptions for each preset
PRESET_DESCRIPTIONS = {
    "email": "Standard email format",
    "postal_code_ca": "Canadian postal code (A1A 1A1)",
    "employee_number": "Employee number (letters, digits, hyphens)",
    "pay_code": "Pay code (up to 10 letters, digits, hyphens or underscores)",
    "deduction_code": "Deduction code (2-5 letters or digits)",
}


def get_preset_pattern(preset_name: str) -> Optional[str]:
    return PRESET_PATTERNS.get(preset_name)


def get_preset_description(preset_name: str) -> Optional[str]:
    return PRESET_DESCRIPTIONS.get(preset_name)


def validate_with_preset(
    value: str,
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a preset pattern.

    Args:
        value: Value to validate
        preset_name: Name of the preset validator
        allow_null: Whether to allow null/empty values

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    pattern = get_preset_pattern(preset_name)
    if pattern is None:
        return False, f"Unknown preset validator: {preset_name}"

    str_val = str(value).strip()

    if not re.match(pattern, str_val):
        description = get_preset_description(preset_name)
        return False, f"Value '{str_val}' does not match {description or preset_name} format"
    return True, None


def luhn_checksum_valid(digits: str) -> bool:
    """
    Weighted modulus-10 check.

    From the rightmost digit, every second digit is doubled (subtracting 9
    when the product exceeds 9); the number is valid when the sum is a
    multiple of 10.
    """
    if not digits or not digits.isdigit():
        return False
    total = 0
    for position, char in enumerate(reversed(digits)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_sin(value: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate a Social Insurance Number given as digits.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or not str(value).strip():
        return True, None

    digits = re.sub(r'\D', '', str(value))
    if len(digits) != 9:
        return False, f"SIN must have 9 digits (got {len(digits)})"
    if set(digits) == {"0"}:
        return False, "SIN cannot be all zeros"
    if not luhn_checksum_valid(digits):
        return False, f"SIN {digits} fails the checksum"
    return True, None
