"""
Record validation for staged imports.

Validation never changes records. It reads normalized values and the
per-field normalization results and reports :class:`ValidationIssue` entries
with an ``error`` or ``warning`` severity. Rows with errors are not imported;
warnings are informational.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence, Set, Tuple

from payroll_import.api.schemas.shared import FieldSchema, Severity, ValidationIssue
from payroll_import.core.config import settings
from payroll_import.domain.imports.normalizers import StagedRecord
from payroll_import.domain.imports.validators import validate_sin, validate_with_preset
from payroll_import.utils.date import calculate_age

if TYPE_CHECKING:
    from payroll_import.domain.imports.profiles import ImportProfile

logger = logging.getLogger(__name__)

Rule = Callable[[StagedRecord, date], Iterable[ValidationIssue]]

# Normalizers whose format problems are warnings, not interpretation errors
FORMAT_PRESETS = {
    "email": "email",
    "postal_code": "postal_code_ca",
}

NUMERIC_NORMALIZERS = {"number", "rate"}

UNION_OVERRIDES = ("PSAC", "NonUnion")


@dataclass
class ValidationReport:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == Severity.WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def rows_with_errors(self) -> Set[int]:
        return {issue.row for issue in self.errors}

    @property
    def rows_with_warnings(self) -> Set[int]:
        return {issue.row for issue in self.warnings}

    def has_error(self, row: int) -> bool:
        return row in self.rows_with_errors

    def issues_for(self, row: int) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.row == row]


def _issue(record: StagedRecord, field_name: str, severity: Severity, message: str) -> ValidationIssue:
    result = record.results.get(field_name)
    value = result.raw if result is not None else record.values.get(field_name)
    return ValidationIssue(row=record.row_number, field=field_name, severity=severity, message=message, value=value)


def _as_date(value) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _type_name(schema_field: FieldSchema) -> str:
    if schema_field.normalizer:
        return schema_field.normalizer.replace("_", " ")
    return schema_field.value_type


def validate_field(record: StagedRecord, schema_field: FieldSchema) -> List[ValidationIssue]:
    """Presence, interpretation, checksum, format and range checks for one field."""
    issues: List[ValidationIssue] = []
    name = schema_field.name
    label = schema_field.label
    result = record.results.get(name)
    value = record.values.get(name)

    if result is not None and result.is_uninterpretable and schema_field.normalizer not in FORMAT_PRESETS:
        issues.append(_issue(record, name, Severity.ERROR, f"Invalid {_type_name(schema_field)} for {label}: {result.raw}"))
        return issues

    if value is None:
        if schema_field.required:
            issues.append(_issue(record, name, Severity.ERROR, f"{label} is required"))
        return issues

    if schema_field.checksum:
        is_valid, message = validate_sin(value)
        if not is_valid:
            issues.append(_issue(record, name, Severity(settings.sin_checksum_severity), message))

    preset = schema_field.preset or FORMAT_PRESETS.get(schema_field.normalizer or "")
    if preset:
        # Multi-value fields are checked code by code
        candidates = value.split(",") if schema_field.normalizer == "code_list" else [value]
        for candidate in candidates:
            is_valid, message = validate_with_preset(candidate, preset)
            if not is_valid:
                issues.append(_issue(record, name, Severity.WARNING, f"{label}: {message}"))

    if schema_field.value_type == "number" or schema_field.normalizer in NUMERIC_NORMALIZERS:
        if value < 0:
            issues.append(_issue(record, name, Severity.ERROR, f"{label} cannot be negative"))
        elif schema_field.normalizer == "rate" and value > settings.rate_warning_threshold:
            issues.append(_issue(
                record, name, Severity.WARNING,
                f"{label} of {value:g} is unusually high (above {settings.rate_warning_threshold:g})",
            ))

    return issues


def validate_record(profile: "ImportProfile", record: StagedRecord, today: Optional[date] = None) -> List[ValidationIssue]:
    today = today or date.today()
    issues: List[ValidationIssue] = []
    for schema_field in profile.fields:
        issues.extend(validate_field(record, schema_field))
    for rule in profile.rules:
        issues.extend(rule(record, today))
    return issues


def validate_records(
    profile: "ImportProfile",
    records: Sequence[StagedRecord],
    today: Optional[date] = None,
    extra_rules: Sequence[Rule] = (),
) -> ValidationReport:
    """
    Validate staged records in file order.

    Args:
        profile: Import profile supplying field schemas and cross-field rules
        records: Normalized records
        today: Reference date for age and future-date rules
        extra_rules: Additional rules run after the profile's own
    """
    today = today or date.today()
    report = ValidationReport()
    for record in records:
        report.issues.extend(validate_record(profile, record, today))
        for rule in extra_rules:
            report.issues.extend(rule(record, today))

    logger.info(
        "Validated %d %s rows: %d errors, %d warnings",
        len(records), profile.name, len(report.errors), len(report.warnings),
    )
    return report


# Cross-field rules

def minimum_age_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    birth_date = _as_date(record.values.get("birth_date"))
    if birth_date is None:
        return []
    age = calculate_age(birth_date, today)
    if age < settings.minimum_employee_age:
        return [_issue(
            record, "birth_date", Severity.ERROR,
            f"Employee must be at least {settings.minimum_employee_age} years old (age {age})",
        )]
    return []


def future_hire_date_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    hire_date = _as_date(record.values.get("hire_date"))
    if hire_date is not None and hire_date > today:
        return [_issue(record, "hire_date", Severity.WARNING, f"Hire date {hire_date.isoformat()} is in the future")]
    return []


def hire_after_birth_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    hire_date = _as_date(record.values.get("hire_date"))
    birth_date = _as_date(record.values.get("birth_date"))
    if hire_date and birth_date and hire_date < birth_date:
        return [_issue(record, "hire_date", Severity.ERROR, "Hire date is before date of birth")]
    return []


def name_present_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    """Last name must come from its own column or from a full name."""
    if record.values.get("last_name"):
        return []
    return [_issue(record, "last_name", Severity.ERROR, "Last Name is required (map Last Name or Full Name)")]


def pay_type_rate_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    pay_type = record.values.get("pay_type")
    if pay_type == "Salaried" and record.values.get("hourly_rate") is not None:
        return [_issue(record, "hourly_rate", Severity.WARNING, "Hourly rate provided for salaried employee (will be ignored)")]
    if pay_type == "Hourly" and record.values.get("salary") is not None:
        return [_issue(record, "salary", Severity.WARNING, "Salary provided for hourly employee (will be ignored)")]
    return []


def effective_range_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    effective_from = _as_date(record.values.get("effective_from"))
    effective_to = _as_date(record.values.get("effective_to"))
    if effective_from and effective_to and effective_to < effective_from:
        return [_issue(record, "effective_to", Severity.ERROR, "Effective To is before Effective From")]
    return []


@dataclass(frozen=True)
class DeductionResolution:
    union: Optional[str]
    group: Optional[str]
    province: Optional[str]
    errors: Tuple[str, ...] = ()


def resolve_deduction_codes(
    codes: Optional[str],
    default_province: Optional[str],
    union_override: Optional[str] = None,
    province_override: Optional[str] = None,
) -> DeductionResolution:
    """
    Derive union, group and province from an employee's deduction codes.

    - ``72S``: union UNIFOR
    - ``OZC``: group Kitsault, province BC
    - ``72R``: union must come from the override (PSAC or NonUnion); the
      province override is optional and may only be BC. Without it the
      province is ON and the union defaults to NonUnion.
    """
    code_set = {code for code in (codes or "").split(",") if code}
    union: Optional[str] = None
    group: Optional[str] = None
    province = default_province
    errors: List[str] = []

    if "72S" in code_set:
        union = "UNIFOR"

    if "OZC" in code_set:
        group = "Kitsault"
        province = "BC"

    if "72R" in code_set:
        if not union_override:
            errors.append("72R code requires a union override (PSAC or NonUnion)")
        elif union_override in UNION_OVERRIDES:
            union = union_override
        else:
            errors.append("Invalid union override; must be PSAC or NonUnion")

        if province_override:
            if province_override == "BC":
                province = "BC"
            else:
                errors.append("Invalid province override; must be BC")
        else:
            province = "ON"
            union = union or "NonUnion"

    return DeductionResolution(union=union, group=group, province=province, errors=tuple(errors))


def deduction_code_rule(record: StagedRecord, today: date) -> List[ValidationIssue]:
    codes = record.values.get("deduction_codes")
    if not codes:
        return []
    resolution = resolve_deduction_codes(
        codes,
        record.values.get("province"),
        record.values.get("union_override"),
        record.values.get("province_override"),
    )
    return [_issue(record, "deduction_codes", Severity.ERROR, message) for message in resolution.errors]
