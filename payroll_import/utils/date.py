"""
Date parsing utilities for flexible date format handling.

Spreadsheet exports carry dates in whatever shape the source system or the
person typing them used. This module turns them into canonical ISO strings:
``YYYY-MM-DD`` for calendar dates and ``YYYY-MM-DDTHH:MM:SSZ`` for punch
timestamps.
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Optional, Tuple

import pandas as pd

from payroll_import.core.config import settings

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100
TWO_DIGIT_YEAR_PIVOT = 70

_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}(?:[T ].*)?$')
_NUMERIC_DATE_RE = re.compile(r'^(\d{1,4})[/-](\d{1,2})[/-](\d{1,4})(?:[T ](.*))?$')

_failure_stats: dict = {}


def _record_parse_failure(value: Any, context: Optional[str], error: Exception) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
    stats["count"] += 1
    count = stats["count"]

    if len(stats["samples"]) < FAILED_SAMPLE_LIMIT:
        stats["samples"].append(value)
        logger.warning("Failed to parse date%s value '%s': %s", f" ({key})" if context else "", value, error)
        return

    # Emit a single summary when suppression starts, then periodically.
    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            stats["samples"],
        )


def _expand_year(year: int, digits: int) -> int:
    if digits > 2:
        return year
    return 2000 + year if year < TWO_DIGIT_YEAR_PIVOT else 1900 + year


def _split_numeric_date(value: str, dayfirst: bool) -> Optional[Tuple[date, Optional[str]]]:
    """
    Interpret ``D/M/Y``, ``M/D/Y`` or ``Y/M/D`` strings (``/`` or ``-`` separators).

    A segment greater than 12 can only be the day. When both leading segments
    are 12 or less the ``dayfirst`` policy decides, and the other reading is
    tried only if the preferred one is not a real calendar date.
    """
    match = _NUMERIC_DATE_RE.match(value)
    if not match:
        return None

    head, middle, tail, remainder = match.groups()
    first, second, third = int(head), int(middle), int(tail)

    if len(head) == 4:
        candidates = [(first, second, third)]
    elif len(tail) in (2, 4):
        year = _expand_year(third, len(tail))
        if first > 12 and second <= 12:
            dayfirst_preferred = True
        elif second > 12 and first <= 12:
            dayfirst_preferred = False
        else:
            dayfirst_preferred = dayfirst

        day_month = (year, second, first)
        month_day = (year, first, second)
        candidates = [day_month, month_day] if dayfirst_preferred else [month_day, day_month]
    else:
        return None

    for year, month, day in candidates:
        try:
            return date(year, month, day), remainder
        except ValueError:
            continue
    return None


def parse_flexible_date(
    value: Any,
    *,
    dayfirst: Optional[bool] = None,
    log_context: Optional[str] = None,
    log_failures: bool = True,
) -> Optional[str]:
    """
    Parse a date value from various formats and return ``YYYY-MM-DD``.

    Supports formats:
    - ISO 8601: "2024-01-31", "2024-01-31T23:09:18Z" (date part as written)
    - D/M/Y and M/D/Y: "31/01/2024", "01-31-24"
    - Y/M/D: "2024/1/31"
    - Month names via pandas inference: "Jan 31, 2024", "31 January 2024"
    - datetime/date/Timestamp objects from spreadsheet cells

    Ambiguous numeric dates (both leading segments <= 12) follow
    ``settings.date_default_dayfirst`` unless ``dayfirst`` is given.

    Returns:
        ISO date string or None if parsing fails
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return None
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str):
        if log_failures:
            _record_parse_failure(value, log_context, TypeError(f"unsupported type {type(value).__name__}"))
        return None

    text = value.strip()
    if not text:
        return None

    prefer_dayfirst = settings.date_default_dayfirst if dayfirst is None else dayfirst
    last_error: Optional[Exception] = None

    if _ISO_DATE_RE.match(text):
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
        except ValueError as exc:
            last_error = exc

    numeric = _split_numeric_date(text, prefer_dayfirst)
    if numeric is not None:
        return numeric[0].isoformat()

    # Month names and other spelled-out forms
    if re.search(r'[A-Za-z]{3,}', text):
        try:
            parsed = pd.to_datetime(text, dayfirst=prefer_dayfirst, errors='raise')
            return parsed.date().isoformat()
        except (ValueError, OverflowError, TypeError) as exc:
            last_error = exc

    if log_failures:
        _record_parse_failure(value, log_context, last_error or ValueError("Unable to determine format"))
    return None


def parse_flexible_datetime(
    value: Any,
    *,
    dayfirst: Optional[bool] = None,
    log_context: Optional[str] = None,
    log_failures: bool = True,
) -> Optional[str]:
    """
    Parse a timestamp and return ISO 8601 in UTC (``YYYY-MM-DDTHH:MM:SSZ``).

    Timezone-aware values are converted to UTC; naive values are assumed to
    already be UTC. Numeric date parts follow the same day/month policy as
    :func:`parse_flexible_date`.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and pd.isna(value):
        return None

    prefer_dayfirst = settings.date_default_dayfirst if dayfirst is None else dayfirst
    parsed: Optional[pd.Timestamp] = None
    last_error: Optional[Exception] = None

    try:
        if isinstance(value, (pd.Timestamp, datetime, date)):
            parsed = pd.Timestamp(value)
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            numeric = _split_numeric_date(text, prefer_dayfirst)
            if numeric is not None:
                day, remainder = numeric
                parsed = pd.Timestamp(f"{day.isoformat()} {remainder or '00:00:00'}")
            elif _ISO_DATE_RE.match(text) or re.search(r'[A-Za-z]{3,}', text):
                parsed = pd.to_datetime(text, dayfirst=prefer_dayfirst, errors='raise')
    except (ValueError, OverflowError, TypeError) as exc:
        last_error = exc
        parsed = None

    if parsed is None or pd.isna(parsed):
        if log_failures:
            _record_parse_failure(value, log_context, last_error or ValueError("Unable to determine format"))
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert('UTC')
    return parsed.strftime('%Y-%m-%dT%H:%M:%SZ')


def calculate_age(birth_date: date, on: date) -> int:
    """Whole years between ``birth_date`` and ``on``."""
    years = on.year - birth_date.year
    if (on.month, on.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
