"""
Tests for value normalizers, flexible date parsing and province codes.
"""
from datetime import date, datetime

import pytest

from payroll_import.api.schemas.shared import FieldSchema
from payroll_import.domain.imports.normalizers import (
    TRANSFORMS,
    normalize_value,
    register_transform,
    split_person_name,
    stage_record,
    transform_for,
)
from payroll_import.domain.imports.profiles import get_profile
from payroll_import.utils.date import calculate_age, parse_flexible_date, parse_flexible_datetime
from payroll_import.utils.regions import standardize_province


def _field(value_type="string", normalizer=None, options=None):
    return FieldSchema(name="value", label="Value", value_type=value_type, normalizer=normalizer, options=options)


DATE = _field("date")
DATETIME = _field("datetime")
NUMBER = _field("number")
RATE = _field("number", normalizer="rate")
BOOLEAN = _field("boolean")
ENUM = _field("enum", options=["Salaried", "Hourly", "NonUnion"])
REGION = _field(normalizer="region_code")
PERSON = _field(normalizer="person_name")
IDENTIFIER = _field(normalizer="identifier")
POSTAL = _field(normalizer="postal_code")
EMAIL = _field(normalizer="email")
CODE = _field(normalizer="code")
CODES = _field(normalizer="code_list")
STRING = _field()


class TestDateParsing:

    @pytest.mark.parametrize("raw, expected", [
        ("2024-01-31", "2024-01-31"),
        ("2024-01-31T23:09:18Z", "2024-01-31"),
        ("31/01/2024", "2024-01-31"),
        ("01-31-24", "2024-01-31"),
        ("2024/1/31", "2024-01-31"),
        ("Jan 31, 2024", "2024-01-31"),
        ("31 January 2024", "2024-01-31"),
        (datetime(2024, 1, 31, 9, 30), "2024-01-31"),
        (date(2024, 1, 31), "2024-01-31"),
    ])
    def test_formats(self, raw, expected):
        assert parse_flexible_date(raw) == expected

    def test_ambiguous_dates_read_day_first(self):
        assert parse_flexible_date("01/02/2024") == "2024-02-01"

    def test_ambiguous_dates_month_first_when_asked(self):
        assert parse_flexible_date("01/02/2024", dayfirst=False) == "2024-01-02"

    @pytest.mark.parametrize("raw, expected", [
        ("15/03/24", "2024-03-15"),
        ("15/03/85", "1985-03-15"),
        ("15/03/69", "2069-03-15"),
        ("15/03/70", "1970-03-15"),
    ])
    def test_two_digit_years_pivot_at_seventy(self, raw, expected):
        assert parse_flexible_date(raw) == expected

    @pytest.mark.parametrize("raw", ["not a date", "31/31/2024", "2024-13-45", 12.5, None, ""])
    def test_unparseable_values_return_none(self, raw):
        assert parse_flexible_date(raw, log_failures=False) is None

    @pytest.mark.parametrize("raw, expected", [
        ("2024-01-31 08:15:00", "2024-01-31T08:15:00Z"),
        ("2024-01-31T08:15:00-05:00", "2024-01-31T13:15:00Z"),
        ("31/01/2024 08:15", "2024-01-31T08:15:00Z"),
        (datetime(2024, 1, 31, 8, 15), "2024-01-31T08:15:00Z"),
    ])
    def test_datetimes_are_utc(self, raw, expected):
        assert parse_flexible_datetime(raw) == expected

    def test_calculate_age(self):
        assert calculate_age(date(2000, 6, 2), date(2024, 6, 1)) == 23
        assert calculate_age(date(2000, 6, 1), date(2024, 6, 1)) == 24


class TestProvinceCodes:

    @pytest.mark.parametrize("raw, expected", [
        ("ON", "ON"),
        ("on", "ON"),
        ("Ontario", "ON"),
        ("ON - Ontario", "ON"),
        ("Ont.", "ON"),
        ("Québec", "QC"),
        ("Quebec", "QC"),
        ("British Columbia", "BC"),
        ("Nfld", "NL"),
        ("PEI", "PE"),
        ("Prince Edward Island", "PE"),
        ("Northwest Territories", "NT"),
        ("Yukon (YT)", "YT"),
        ("AB - Head Office", "AB"),
    ])
    def test_known_spellings(self, raw, expected):
        assert standardize_province(raw) == expected

    @pytest.mark.parametrize("raw", ["Texas", "XX", "", None])
    def test_unknown_values(self, raw):
        assert standardize_province(raw) is None


class TestTransforms:

    def test_blank_values_normalize_to_none_without_change(self):
        for schema_field in (STRING, DATE, NUMBER, ENUM):
            result = normalize_value(schema_field, "   ")
            assert result.normalized is None
            assert not result.has_changed
            assert not result.is_uninterpretable

    def test_change_tracking(self):
        assert not normalize_value(DATE, "2024-01-31").has_changed
        assert normalize_value(DATE, "31/01/2024").has_changed

    def test_uninterpretable_values_are_flagged(self):
        result = normalize_value(DATE, "sometime last spring")

        assert result.normalized is None
        assert result.is_uninterpretable

    @pytest.mark.parametrize("raw, expected", [
        ("25.50", 25.5),
        ("$1,234.50", 1234.5),
        ("(12.00)", -12.0),
        (" 1 000 ", 1000.0),
        (7, 7.0),
        ("n/a", None),
        ("1,5", None),
        ("12,34.5", None),
        ("-2,500", -2500.0),
    ])
    def test_number(self, raw, expected):
        assert normalize_value(NUMBER, raw).normalized == expected

    def test_rate_uses_the_numeric_parser(self):
        assert transform_for(RATE) is TRANSFORMS["number"]
        assert normalize_value(RATE, "$18.75").normalized == 18.75

    @pytest.mark.parametrize("raw, expected", [
        ("yes", True), ("Y", True), ("1", True), ("TRUE", True),
        ("no", False), ("off", False), ("0", False),
        ("maybe", None),
    ])
    def test_boolean(self, raw, expected):
        assert normalize_value(BOOLEAN, raw).normalized is expected

    @pytest.mark.parametrize("raw, expected", [
        ("hourly", "Hourly"),
        ("SALARIED", "Salaried"),
        ("non-union", "NonUnion"),
        ("Contract", None),
    ])
    def test_enum_matches_options(self, raw, expected):
        assert normalize_value(ENUM, raw).normalized == expected

    @pytest.mark.parametrize("raw, expected", [
        ("John Smith", ("John", "Smith")),
        ("Smith, John", ("John", "Smith")),
        ("Mary Anne van der Berg", ("Mary", "Anne van der Berg")),
        ("Cher", (None, "Cher")),
    ])
    def test_split_person_name(self, raw, expected):
        assert split_person_name(raw) == expected

    def test_person_name_canonical_form(self):
        assert normalize_value(PERSON, "  John   Smith ").normalized == "Smith, John"

    def test_identifier_keeps_digits(self):
        assert normalize_value(IDENTIFIER, "046-454 286").normalized == "046454286"

    def test_postal_code(self):
        assert normalize_value(POSTAL, "k1a 0b1").normalized == "K1A0B1"

    def test_email_is_lowercased(self):
        assert normalize_value(EMAIL, " Jane.Doe@Example.COM ").normalized == "jane.doe@example.com"

    def test_code_is_trimmed_and_uppercased(self):
        assert normalize_value(CODE, "  a002 ").normalized == "A002"

    def test_european_decimal_comma_is_uninterpretable(self):
        result = normalize_value(NUMBER, "1,5")

        assert result.normalized is None
        assert result.is_uninterpretable

    def test_code_list_dedupes_and_uppercases(self):
        assert normalize_value(CODES, "72r, ozc;72R  72s").normalized == "72R,OZC,72S"

    def test_string_collapses_whitespace(self):
        assert normalize_value(STRING, "  Payroll \t Clerk ").normalized == "Payroll Clerk"

    @pytest.mark.parametrize("schema_field, raw", [
        (STRING, "  Payroll   Clerk "),
        (DATE, "31/01/2024"),
        (DATETIME, "2024-01-31T08:15:00-05:00"),
        (NUMBER, "$1,234.50"),
        (RATE, "(3.25)"),
        (BOOLEAN, "yes"),
        (ENUM, "hourly"),
        (REGION, "Québec"),
        (PERSON, "John Smith"),
        (IDENTIFIER, "046 454 286"),
        (POSTAL, "k1a 0b1"),
        (EMAIL, "A@B.COM"),
        (CODE, " a002 "),
        (CODES, "72r ozc"),
    ])
    def test_normalizing_twice_changes_nothing(self, schema_field, raw):
        once = normalize_value(schema_field, raw).normalized
        twice = normalize_value(schema_field, once)

        assert twice.normalized == once
        assert not twice.has_changed

    def test_unknown_normalizer_name(self):
        with pytest.raises(KeyError, match="No normalizer registered"):
            transform_for(_field(normalizer="shoe_size"))

    def test_register_transform(self):
        @register_transform("upper_test")
        def _upper(raw, schema_field):
            return str(raw).upper()

        try:
            assert normalize_value(_field(normalizer="upper_test"), "abc").normalized == "ABC"
        finally:
            TRANSFORMS.pop("upper_test")


class TestStageRecord:

    def test_full_name_fills_first_and_last(self):
        profile = get_profile("employees")

        record = stage_record(profile, 2, {"employee_number": "A001", "full_name": "Smith, Jane"})

        assert record.values["first_name"] == "Jane"
        assert record.values["last_name"] == "Smith"
        assert record.values["full_name"] == "Smith, Jane"
        assert record.raw["full_name"] == "Smith, Jane"

    def test_explicit_names_are_kept(self):
        profile = get_profile("employees")

        record = stage_record(profile, 2, {"full_name": "Jane Smith", "last_name": "Doe"})

        assert record.values["last_name"] == "Doe"
        assert record.values["first_name"] is None

    def test_company_code_defaults(self):
        profile = get_profile("pay_codes")

        record = stage_record(profile, 2, {"code": "REG"})

        assert record.values["company_code"] == "72R"

    def test_results_keep_raw_values(self):
        profile = get_profile("employees")

        record = stage_record(profile, 5, {"hire_date": "31/01/2024"})

        assert record.row_number == 5
        assert record.values["hire_date"] == "2024-01-31"
        assert record.results["hire_date"].raw == "31/01/2024"
        assert record.results["hire_date"].has_changed
