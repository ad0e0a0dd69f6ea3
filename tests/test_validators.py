"""
Tests for preset format validators and the SIN checksum.
"""

import pytest

from payroll_import.domain.imports.profiles import list_profiles
from payroll_import.domain.imports.validators import (
    PRESET_DESCRIPTIONS,
    PRESET_PATTERNS,
    get_preset_description,
    get_preset_pattern,
    luhn_checksum_valid,
    validate_sin,
    validate_with_preset,
)


class TestPresetPatternLookup:
    """Test helper functions for preset patterns."""

    def test_get_preset_pattern_exists(self):
        assert isinstance(get_preset_pattern("email"), str)

    def test_get_preset_pattern_missing(self):
        assert get_preset_pattern("nonexistent") is None

    def test_get_preset_description(self):
        assert "postal" in get_preset_description("postal_code_ca").lower()

    def test_every_preset_is_described(self):
        assert set(PRESET_DESCRIPTIONS) == set(PRESET_PATTERNS)

    def test_profile_presets_exist(self):
        presets = {f.preset for profile in list_profiles() for f in profile.fields if f.preset}

        assert presets == {"employee_number", "pay_code", "deduction_code"}
        assert presets <= set(PRESET_PATTERNS)


class TestValidateWithPreset:

    @pytest.mark.parametrize("value", ["jane.doe@example.com", "a+b@sub.example.ca"])
    def test_valid_emails(self, value):
        assert validate_with_preset(value, "email") == (True, None)

    @pytest.mark.parametrize("value", ["jane.doe", "jane@", "@example.com", "jane@example"])
    def test_invalid_emails(self, value):
        is_valid, message = validate_with_preset(value, "email")
        assert not is_valid
        assert "email" in message.lower()

    @pytest.mark.parametrize("value", ["K1A 0B1", "K1A0B1", "k1a-0b1"])
    def test_valid_postal_codes(self, value):
        assert validate_with_preset(value, "postal_code_ca")[0]

    @pytest.mark.parametrize("value", ["12345", "K1A 0B", "KKA 0B1"])
    def test_invalid_postal_codes(self, value):
        assert not validate_with_preset(value, "postal_code_ca")[0]

    def test_null_handling(self):
        assert validate_with_preset(None, "email") == (True, None)
        assert validate_with_preset("", "email", allow_null=False) == (False, "Value is required")

    def test_unknown_preset(self):
        is_valid, message = validate_with_preset("x", "nonexistent")
        assert not is_valid
        assert "Unknown preset" in message

    @pytest.mark.parametrize("value, valid", [
        ("REG", True),
        ("OT_1.5", False),
        ("VAC-PAY", True),
        ("WAY-TOO-LONG-CODE", False),
    ])
    def test_pay_codes(self, value, valid):
        assert validate_with_preset(value, "pay_code")[0] is valid


class TestSinChecksum:

    @pytest.mark.parametrize("digits", ["046454286", "130692544"])
    def test_luhn_valid(self, digits):
        assert luhn_checksum_valid(digits)

    @pytest.mark.parametrize("digits", ["046454287", "123456789", "", "04645428x"])
    def test_luhn_invalid(self, digits):
        assert not luhn_checksum_valid(digits)

    def test_valid_sin(self):
        assert validate_sin("046 454 286") == (True, None)

    def test_blank_sin_is_not_checked(self):
        assert validate_sin(None) == (True, None)
        assert validate_sin("  ") == (True, None)

    def test_wrong_length(self):
        assert validate_sin("04645428") == (False, "SIN must have 9 digits (got 8)")

    def test_all_zeros(self):
        assert validate_sin("000000000") == (False, "SIN cannot be all zeros")

    def test_checksum_failure(self):
        assert validate_sin("046454287") == (False, "SIN 046454287 fails the checksum")
