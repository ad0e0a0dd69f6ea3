"""
Value normalizers for imported records.

Each transform turns one raw cell into its canonical form. Transforms are
registered by name; a field uses its explicit ``normalizer`` or the default
for its ``value_type``. All transforms are idempotent: feeding a normalized
value back in returns it unchanged.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple

from payroll_import.api.schemas.shared import FieldSchema
from payroll_import.utils.date import parse_flexible_date, parse_flexible_datetime
from payroll_import.utils.regions import standardize_province

if TYPE_CHECKING:
    from payroll_import.domain.imports.profiles import ImportProfile

logger = logging.getLogger(__name__)

Transform = Callable[[Any, FieldSchema], Any]

TRANSFORMS: Dict[str, Transform] = {}

DEFAULT_TRANSFORM_BY_TYPE = {
    "string": "string",
    "number": "number",
    "boolean": "boolean",
    "date": "date",
    "datetime": "datetime",
    "enum": "enum",
}

TRUE_VALUES = {"true", "yes", "y", "1", "on"}
FALSE_VALUES = {"false", "no", "n", "0", "off"}

# Commas are accepted only as thousands separators: "1,000.50", not "1,5"
THOUSANDS_PATTERN = re.compile(r'^\d{1,3}(,\d{3})+(\.\d+)?$')


@dataclass(frozen=True)
class NormalizationResult:
    raw: Any
    normalized: Any
    has_changed: bool

    @property
    def is_uninterpretable(self) -> bool:
        """A value was supplied but no canonical form could be derived."""
        return self.normalized is None and not is_blank(self.raw)


@dataclass
class StagedRecord:
    """A mapped row carried through normalization, validation and dedupe."""
    row_number: int
    raw: Dict[str, Any]
    values: Dict[str, Any]
    results: Dict[str, NormalizationResult] = field(default_factory=dict)
    is_duplicate: bool = False
    duplicate_of: Optional[int] = None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def register_transform(name: str) -> Callable[[Transform], Transform]:
    def decorator(func: Transform) -> Transform:
        TRANSFORMS[name] = func
        return func
    return decorator


def _text(raw: Any) -> str:
    return re.sub(r'\s+', ' ', str(raw)).strip()


@register_transform("string")
def normalize_string(raw: Any, field: FieldSchema) -> Optional[str]:
    text = _text(raw)
    return text or None


@register_transform("code")
def normalize_code(raw: Any, field: FieldSchema) -> Optional[str]:
    """Identifiers and codes are stored upper-case so in-file and stored keys agree."""
    text = _text(raw).upper()
    return text or None


@register_transform("date")
def normalize_date(raw: Any, field: FieldSchema) -> Optional[str]:
    return parse_flexible_date(raw, log_context=field.name)


@register_transform("datetime")
def normalize_datetime(raw: Any, field: FieldSchema) -> Optional[str]:
    return parse_flexible_datetime(raw, log_context=field.name)


@register_transform("region_code")
def normalize_region_code(raw: Any, field: FieldSchema) -> Optional[str]:
    return standardize_province(raw)


def split_person_name(raw: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a person's name into ``(first_name, last_name)``.

    "Last, First" is taken at face value. Otherwise the first token is the
    first name and the remaining tokens are the last name; a single token is
    a last name.
    """
    if is_blank(raw):
        return None, None
    text = _text(raw)

    if "," in text:
        last, _, first = text.partition(",")
        last, first = last.strip(), first.strip()
        if not last:
            return None, first or None
        return first or None, last

    tokens = text.split(" ")
    if len(tokens) == 1:
        return None, tokens[0]
    return tokens[0], " ".join(tokens[1:])


def format_person_name(first_name: Optional[str], last_name: Optional[str]) -> Optional[str]:
    if last_name and first_name:
        return f"{last_name}, {first_name}"
    return last_name or first_name or None


@register_transform("person_name")
def normalize_person_name(raw: Any, field: FieldSchema) -> Optional[str]:
    first, last = split_person_name(raw)
    return format_person_name(first, last)


@register_transform("identifier")
def normalize_identifier(raw: Any, field: FieldSchema) -> Optional[str]:
    digits = re.sub(r'\D', '', str(raw))
    return digits or None


@register_transform("postal_code")
def normalize_postal_code(raw: Any, field: FieldSchema) -> Optional[str]:
    text = re.sub(r'\s+', '', str(raw)).upper()
    return text or None


@register_transform("number")
def normalize_number(raw: Any, field: FieldSchema) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return None if math.isnan(raw) else float(raw)

    text = str(raw).strip()
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]
    text = text.replace("$", "").replace(" ", "")
    if "," in text:
        if not THOUSANDS_PATTERN.match(text.lstrip("-")):
            return None
        text = text.replace(",", "")
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return -value if negative else value


# Rates share the numeric parser; range rules live in validation
TRANSFORMS["rate"] = normalize_number


@register_transform("boolean")
def normalize_boolean(raw: Any, field: FieldSchema) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    token = str(raw).strip().lower()
    if token in TRUE_VALUES:
        return True
    if token in FALSE_VALUES:
        return False
    return None


def _option_key(value: Any) -> str:
    return re.sub(r'[^a-z0-9]', '', str(value).lower())


@register_transform("enum")
def normalize_enum(raw: Any, field: FieldSchema) -> Optional[str]:
    key = _option_key(raw)
    for option in field.options or []:
        if _option_key(option) == key:
            return option
    return None


@register_transform("email")
def normalize_email(raw: Any, field: FieldSchema) -> Optional[str]:
    text = str(raw).strip().lower()
    return text or None


@register_transform("code_list")
def normalize_code_list(raw: Any, field: FieldSchema) -> Optional[str]:
    codes = []
    for token in re.split(r'[\s,;]+', str(raw)):
        code = token.strip().upper()
        if code and code not in codes:
            codes.append(code)
    return ",".join(codes) or None


def transform_for(field: FieldSchema) -> Transform:
    name = field.normalizer or DEFAULT_TRANSFORM_BY_TYPE[field.value_type]
    try:
        return TRANSFORMS[name]
    except KeyError:
        raise KeyError(f"No normalizer registered as '{name}' (field '{field.name}')") from None


def normalize_value(field: FieldSchema, raw: Any) -> NormalizationResult:
    if is_blank(raw):
        return NormalizationResult(raw=raw, normalized=None, has_changed=False)
    normalized = transform_for(field)(raw, field)
    return NormalizationResult(raw=raw, normalized=normalized, has_changed=normalized != raw)


def normalize_record(
    profile: "ImportProfile",
    mapped_row: Mapping[str, Any],
) -> Tuple[Dict[str, Any], Dict[str, NormalizationResult]]:
    """
    Normalize every field of a mapped row.

    Returns:
        Tuple of (normalized values by field name, per-field results)
    """
    results = {f.name: normalize_value(f, mapped_row.get(f.name)) for f in profile.fields}
    values = {name: result.normalized for name, result in results.items()}
    if profile.derive is not None:
        profile.derive(values)
    return values, results


def stage_record(profile: "ImportProfile", row_number: int, mapped_row: Mapping[str, Any]) -> StagedRecord:
    values, results = normalize_record(profile, mapped_row)
    return StagedRecord(row_number=row_number, raw=dict(mapped_row), values=values, results=results)
