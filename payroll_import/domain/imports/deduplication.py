"""
In-file duplicate detection.

Records are compared on the profile's business key. The first occurrence of
a key is kept; later ones are flagged so the caller can exclude them from the
import or include them on purpose.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from payroll_import.domain.imports.normalizers import StagedRecord, is_blank

logger = logging.getLogger(__name__)


def _normalize_key_value(value: Any) -> Any:
    """Lightweight normalization so keys are stable for in-file dedupe."""
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().casefold() or None
    if isinstance(value, (int, float, bool)):
        return value
    return str(value)


def business_key(values: Mapping[str, Any], key_fields: Sequence[str]) -> Optional[Tuple[Any, ...]]:
    """
    Build the comparison key for one record.

    Returns None when every key field is empty; such records are never
    treated as duplicates of each other.
    """
    if all(is_blank(values.get(name)) for name in key_fields):
        return None
    return tuple(_normalize_key_value(values.get(name)) for name in key_fields)


def flag_duplicates(records: Sequence[StagedRecord], key_fields: Sequence[str]) -> List[StagedRecord]:
    """
    Return copies of ``records`` with ``is_duplicate`` set on repeats.

    Walks in file order; ``duplicate_of`` points at the row number of the
    first occurrence.
    """
    first_seen: Dict[Tuple[Any, ...], int] = {}
    flagged: List[StagedRecord] = []
    duplicate_count = 0

    for record in records:
        key = business_key(record.values, key_fields)
        if key is None:
            flagged.append(replace(record, is_duplicate=False, duplicate_of=None))
            continue
        if key in first_seen:
            duplicate_count += 1
            flagged.append(replace(record, is_duplicate=True, duplicate_of=first_seen[key]))
            continue
        first_seen[key] = record.row_number
        flagged.append(replace(record, is_duplicate=False, duplicate_of=None))

    if duplicate_count:
        logger.info("Flagged %d in-file duplicates on key %s", duplicate_count, list(key_fields))
    return flagged
