"""
Map source file headers onto a profile's canonical fields.

Auto-detection compares normalized header text against each field's name,
label and aliases. The user can then override any assignment before the
mapping is confirmed.
"""
import logging
import re
from collections import Counter
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from payroll_import.api.schemas.shared import FieldSchema
from payroll_import.core.exceptions import MappingError

logger = logging.getLogger(__name__)


def normalize_header(text: Any) -> str:
    """Lowercase and strip everything that is not a letter or a digit."""
    if text is None:
        return ""
    return re.sub(r'[^a-z0-9]', '', str(text).lower())


def _candidate_names(field: FieldSchema) -> List[str]:
    names = [normalize_header(alias) for alias in field.aliases]
    names.append(normalize_header(field.name))
    names.append(normalize_header(field.label))
    return [name for name in names if name]


def detect_mapping(fields: Sequence[FieldSchema], headers: Sequence[str]) -> Dict[str, Optional[str]]:
    """
    Suggest a header for each field, in schema order.

    The first header whose normalized text equals any of the field's
    normalized aliases wins. A header claimed by an earlier field is not
    offered again.
    """
    normalized_headers = [(header, normalize_header(header)) for header in headers]
    claimed: set = set()
    mapping: Dict[str, Optional[str]] = {}

    for schema_field in fields:
        candidates = set(_candidate_names(schema_field))
        match = None
        for header, normalized in normalized_headers:
            if header in claimed:
                continue
            if normalized and normalized in candidates:
                match = header
                break
        mapping[schema_field.name] = match
        if match is not None:
            claimed.add(match)

    detected = sum(1 for header in mapping.values() if header)
    logger.info("Auto-detected %d of %d field mappings", detected, len(fields))
    return mapping


class ColumnMapper:
    """Mapping state for one parsed file against one field registry."""

    def __init__(self, fields: Sequence[FieldSchema], headers: Sequence[str], auto_detect: bool = True):
        self.fields = list(fields)
        self.headers = list(headers)
        self._fields_by_name = {f.name: f for f in self.fields}
        if auto_detect:
            self._mapping = detect_mapping(self.fields, self.headers)
        else:
            self._mapping = {f.name: None for f in self.fields}

    @property
    def mapping(self) -> Mapping[str, Optional[str]]:
        return MappingProxyType(self._mapping)

    def header_for(self, field_name: str) -> Optional[str]:
        return self._mapping.get(field_name)

    def set_mapping(self, field_name: str, header: Optional[str]) -> None:
        """Assign ``header`` to ``field_name``; ``None`` clears the field."""
        if field_name not in self._fields_by_name:
            raise MappingError(f"Unknown field '{field_name}'")
        if header is not None and header not in self.headers:
            raise MappingError(f"Column '{header}' is not present in the uploaded file")
        self._mapping[field_name] = header

    def update(self, assignments: Mapping[str, Optional[str]]) -> None:
        for field_name, header in assignments.items():
            self.set_mapping(field_name, header)

    @property
    def missing_required_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.required and not self._mapping.get(f.name)]

    @property
    def duplicate_columns(self) -> List[str]:
        """Headers assigned to more than one field, in header order."""
        counts = Counter(header for header in self._mapping.values() if header)
        return [header for header in self.headers if counts.get(header, 0) > 1]

    @property
    def can_proceed(self) -> bool:
        return not self.missing_required_fields and not self.duplicate_columns

    def require_complete(self) -> None:
        if not self.can_proceed:
            raise MappingError(
                missing_required_fields=self.missing_required_fields,
                duplicate_columns=self.duplicate_columns,
            )

    def apply(self, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Project raw rows onto canonical field names; unmapped fields are None."""
        projected = []
        for row in rows:
            projected.append({
                name: (row.get(header) if header else None)
                for name, header in self._mapping.items()
            })
        return projected

    def apply_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return self.apply([row])[0]
