"""
Import profiles: one field registry per import flow.

A profile tells the mapper which headers to look for, the normalizer how to
coerce each value, the validator which rules apply, and the importer which
table and natural key to write against. Header aliases follow the column
names found in ADP exports.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from payroll_import.api.schemas.shared import FieldSchema
from payroll_import.core.config import settings
from payroll_import.core.exceptions import UnknownProfileError
from payroll_import.domain.imports.normalizers import split_person_name
from payroll_import.domain.imports.validation import (
    Rule,
    deduction_code_rule,
    effective_range_rule,
    future_hire_date_rule,
    hire_after_birth_rule,
    minimum_age_rule,
    name_present_rule,
    pay_type_rate_rule,
    resolve_deduction_codes,
)

COMPANY_CODES = ["72R", "72S", "OZC"]


@dataclass(frozen=True)
class ImportProfile:
    name: str
    description: str
    table: str
    fields: List[FieldSchema]
    business_key: Sequence[str]
    conflict_key: Sequence[str]
    rules: Sequence[Rule] = ()
    derive: Optional[Callable[[Dict[str, Any]], None]] = None
    derived_fields: Sequence[str] = ()

    def get_field(self, name: str) -> FieldSchema:
        for schema_field in self.fields:
            if schema_field.name == name:
                return schema_field
        raise KeyError(name)

    @property
    def required_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    @property
    def column_names(self) -> List[str]:
        """Every value key a staged record of this profile can carry."""
        return [f.name for f in self.fields] + list(self.derived_fields)


def _default_company_code(values: Dict[str, Any]) -> None:
    if not values.get("company_code"):
        values["company_code"] = settings.default_company_code


def _derive_employee(values: Dict[str, Any]) -> None:
    """Fill first/last name from the full name when they are not supplied."""
    _default_company_code(values)
    if values.get("full_name") and not (values.get("first_name") or values.get("last_name")):
        first_name, last_name = split_person_name(values["full_name"])
        values["first_name"] = first_name
        values["last_name"] = last_name


def _derive_employee_id(values: Dict[str, Any]) -> None:
    resolution = resolve_deduction_codes(
        values.get("deduction_codes"),
        values.get("province"),
        values.get("union_override"),
        values.get("province_override"),
    )
    values["union"] = resolution.union
    values["group"] = resolution.group
    values["province"] = resolution.province


EMPLOYEE_FIELDS = [
    FieldSchema(name="employee_number", label="Associate ID", required=True, normalizer="code",
                preset="employee_number",
                aliases=["Associate ID", "Employee Number", "Employee #", "Emp No", "Associate Number"]),
    FieldSchema(name="company_code", label="Company Code", value_type="enum", options=COMPANY_CODES,
                aliases=["Company Code", "Co Code", "Company"]),
    FieldSchema(name="full_name", label="Full Name", normalizer="person_name",
                aliases=["Name", "Employee Name", "Associate Name"]),
    FieldSchema(name="first_name", label="First Name", aliases=["First Name", "Given Name", "First"]),
    FieldSchema(name="last_name", label="Last Name", aliases=["Last Name", "Surname", "Family Name", "Last"]),
    FieldSchema(name="sin", label="Tax ID (SIN)", normalizer="identifier", checksum=True,
                aliases=["Tax ID", "SIN", "Social Insurance Number", "SIN Number"]),
    FieldSchema(name="birth_date", label="Date of Birth", value_type="date",
                aliases=["Date of Birth", "Birth Date", "DOB", "Birthdate"]),
    FieldSchema(name="hire_date", label="Hire Date", value_type="date", required=True,
                aliases=["Hire Date", "Date Hired", "Start Date", "Original Hire Date"]),
    FieldSchema(name="job_title", label="Job Title", aliases=["Job Title", "Position", "Title"]),
    FieldSchema(name="home_department", label="Department", aliases=["Home Department", "Department", "Dept"]),
    FieldSchema(name="province_code", label="Province", required=True, normalizer="region_code",
                aliases=["Province", "Province/Territory", "Province Code", "Prov", "Work Province"]),
    FieldSchema(name="status", label="Status", value_type="enum",
                options=["Active", "Terminated", "Leave", "Inactive"],
                aliases=["Status", "Position Status", "Employment Status"]),
    FieldSchema(name="rate_type", label="Rate Type", value_type="enum", options=["Salaried", "Hourly", "Contract"],
                aliases=["Rate Type", "Pay Type", "Regular Pay Rate Description"]),
    FieldSchema(name="rate", label="Rate", value_type="number", normalizer="rate",
                aliases=["Rate", "Regular Pay Rate Amount", "Pay Rate"]),
    FieldSchema(name="standard_hours", label="Standard Hours", value_type="number",
                aliases=["Standard Hours", "Scheduled Hours"]),
    FieldSchema(name="email", label="Email", normalizer="email",
                aliases=["Email", "Work Email", "E-mail", "Personal Email"]),
    FieldSchema(name="phone", label="Phone", aliases=["Phone", "Mobile", "Phone Number", "Work Phone"]),
    FieldSchema(name="address_line1", label="Address Line 1", aliases=["Address Line 1", "Address", "Street"]),
    FieldSchema(name="city", label="City", aliases=["City", "Town"]),
    FieldSchema(name="postal_code", label="Postal Code", normalizer="postal_code",
                aliases=["Postal Code", "Zip", "Zip Code", "Postal"]),
    FieldSchema(name="union_code", label="Union Code", aliases=["Union Code", "Union"]),
    FieldSchema(name="pay_frequency", label="Pay Frequency", value_type="enum",
                options=["Weekly", "Biweekly", "SemiMonthly", "Monthly"],
                aliases=["Pay Frequency", "Pay Cycle"]),
]

EMPLOYEE_ID_FIELDS = [
    FieldSchema(name="employee_id", label="Employee ID", required=True, normalizer="code",
                preset="employee_number",
                aliases=["Employee ID", "Emp ID", "EmployeeID", "Associate ID"]),
    FieldSchema(name="first_name", label="First Name", aliases=["First Name", "Given Name"]),
    FieldSchema(name="last_name", label="Last Name", aliases=["Last Name", "Surname"]),
    FieldSchema(name="job_title", label="Job Title", aliases=["Job Title", "Position"]),
    FieldSchema(name="department", label="Department", aliases=["Department", "Home Department"]),
    FieldSchema(name="province", label="Province (default)", required=True, normalizer="region_code",
                aliases=["Province", "Default Province", "Province/Territory"]),
    FieldSchema(name="hire_date", label="Hire Date", value_type="date", aliases=["Hire Date", "Start Date"]),
    FieldSchema(name="pay_type", label="Pay Type", value_type="enum", options=["Salaried", "Hourly"],
                aliases=["Pay Type", "Rate Type"]),
    FieldSchema(name="salary", label="Salary (Annual)", value_type="number",
                aliases=["Salary", "Annual Salary"]),
    FieldSchema(name="hourly_rate", label="Hourly Rate", value_type="number", normalizer="rate",
                aliases=["Hourly Rate", "Hourly"]),
    FieldSchema(name="standard_hours", label="Standard Hours", value_type="number", aliases=["Standard Hours"]),
    FieldSchema(name="deduction_codes", label="Deduction Codes (multi-value)", normalizer="code_list",
                preset="deduction_code",
                aliases=["Deduction Codes", "Deductions", "Deduction Code"]),
    FieldSchema(name="union_override", label="Union Override (for 72R)", value_type="enum",
                options=["PSAC", "NonUnion"], aliases=["Union Override"]),
    FieldSchema(name="province_override", label="Province Override (for 72R)", normalizer="region_code",
                aliases=["Province Override"]),
]

PAY_CODE_FIELDS = [
    FieldSchema(name="code", label="Pay Code", required=True, normalizer="code", preset="pay_code",
                aliases=["Pay Code", "Code", "Paycode"]),
    FieldSchema(name="company_code", label="Company Code", value_type="enum", options=COMPANY_CODES,
                aliases=["Company Code", "Co Code"]),
    FieldSchema(name="name", label="Name", required=True,
                aliases=["Pay Code Name", "Pay Code Description", "Name"]),
    FieldSchema(name="category", label="Category", value_type="enum", required=True,
                options=["earning", "overtime", "pto", "premium", "bank", "deduction", "benefit"],
                aliases=["Category", "Pay Code Category"]),
    FieldSchema(name="description", label="Description", aliases=["Description"]),
    FieldSchema(name="taxable_federal", label="Federal Taxable", value_type="boolean",
                aliases=["Federal Taxable", "Taxable Federal"]),
    FieldSchema(name="taxable_cpp", label="CPP Taxable", value_type="boolean", aliases=["CPP Taxable", "Taxable CPP"]),
    FieldSchema(name="taxable_ei", label="EI Taxable", value_type="boolean", aliases=["EI Taxable", "Taxable EI"]),
    FieldSchema(name="rate_type", label="Rate Type", value_type="enum", required=True,
                options=["multiplier", "flat_hourly", "flat_amount"], aliases=["Rate Type"]),
    FieldSchema(name="multiplier", label="Multiplier", value_type="number", aliases=["Multiplier", "Rate Multiplier"]),
    FieldSchema(name="flat_hourly_rate", label="Flat Hourly Rate", value_type="number", normalizer="rate",
                aliases=["Flat Hourly Rate", "Hourly Rate"]),
    FieldSchema(name="requires_hours", label="Requires Hours", value_type="boolean", aliases=["Requires Hours"]),
    FieldSchema(name="requires_amount", label="Requires Amount", value_type="boolean", aliases=["Requires Amount"]),
    FieldSchema(name="gl_earnings_code", label="GL Earnings Code",
                aliases=["GL Earnings Code", "GL Code", "Earnings Code"]),
    FieldSchema(name="province", label="Province", normalizer="region_code", aliases=["Province"]),
    FieldSchema(name="union_code", label="Union Code", aliases=["Union Code"]),
    FieldSchema(name="worksite_code", label="Worksite Code", aliases=["Worksite Code", "Worksite"]),
    FieldSchema(name="effective_from", label="Effective From", value_type="date", aliases=["Effective From"]),
    FieldSchema(name="effective_to", label="Effective To", value_type="date", aliases=["Effective To"]),
    FieldSchema(name="active", label="Active", value_type="boolean", aliases=["Active", "Is Active"]),
]

PUNCH_FIELDS = [
    FieldSchema(name="device_serial", label="Device Serial", required=True,
                aliases=["Device Serial", "Serial", "Device", "Terminal Serial", "Serial Number"]),
    FieldSchema(name="badge_id", label="Badge ID", required=True,
                aliases=["Badge ID", "Badge", "Badge Number", "Card Number"]),
    FieldSchema(name="punch_at", label="Punch Time", value_type="datetime", required=True,
                aliases=["Punch At", "Punch Time", "Punch Timestamp", "Timestamp", "Date Time"]),
    FieldSchema(name="direction", label="Direction", value_type="enum", required=True, options=["IN", "OUT"],
                aliases=["Direction", "In/Out", "Punch Type"]),
    FieldSchema(name="method", label="Method", aliases=["Method", "Verify Method", "Verification"]),
    FieldSchema(name="employee_id", label="Employee ID", aliases=["Employee ID", "Associate ID"]),
]


PROFILES: Dict[str, ImportProfile] = {
    profile.name: profile
    for profile in (
        ImportProfile(
            name="employees",
            description="Employee master records from an ADP employee export",
            table="employees",
            fields=EMPLOYEE_FIELDS,
            business_key=("company_code", "employee_number"),
            conflict_key=("company_code", "employee_number"),
            rules=(name_present_rule, minimum_age_rule, future_hire_date_rule, hire_after_birth_rule),
            derive=_derive_employee,
        ),
        ImportProfile(
            name="employee_ids",
            description="Employee identifiers with deduction-code union and group resolution",
            table="employee_ids",
            fields=EMPLOYEE_ID_FIELDS,
            business_key=("employee_id",),
            conflict_key=("employee_id",),
            rules=(future_hire_date_rule, pay_type_rate_rule, deduction_code_rule),
            derive=_derive_employee_id,
            derived_fields=("union", "group"),
        ),
        ImportProfile(
            name="pay_codes",
            description="Pay code definitions per company code",
            table="pay_codes",
            fields=PAY_CODE_FIELDS,
            business_key=("company_code", "code"),
            conflict_key=("company_code", "code"),
            rules=(effective_range_rule,),
            derive=_default_company_code,
        ),
        ImportProfile(
            name="punches",
            description="Time clock punches exported from badge devices",
            table="punches",
            fields=PUNCH_FIELDS,
            business_key=("device_serial", "badge_id", "punch_at", "direction"),
            conflict_key=("device_serial", "badge_id", "punch_at", "direction"),
        ),
    )
}


def list_profiles() -> List[ImportProfile]:
    return list(PROFILES.values())


def get_profile(name: str) -> ImportProfile:
    try:
        return PROFILES[name]
    except KeyError:
        raise UnknownProfileError(name, sorted(PROFILES)) from None
