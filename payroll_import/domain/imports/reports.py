"""
CSV exports for validation issues and import outcomes.
"""
import csv
from io import StringIO
from typing import Any, Iterable, Iterator, List, Sequence

from payroll_import.api.schemas.shared import ImportOutcome, ValidationIssue

VALIDATION_ISSUE_COLUMNS = ["Row", "Field", "Severity", "Message"]


def _label(field_name: str) -> str:
    return field_name.replace("_", " ").title()


def generate_csv_stream(rows: Iterable[Sequence[Any]], columns: Sequence[str]) -> Iterator[str]:
    """
    Generator function to stream CSV data row by row.

    Args:
        rows: Row value sequences
        columns: Column names

    Yields:
        CSV data chunks as strings
    """
    buffer = StringIO()
    writer = csv.writer(buffer)

    writer.writerow(columns)
    yield buffer.getvalue()
    buffer.seek(0)
    buffer.truncate(0)

    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
        yield buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)


def validation_issue_rows(issues: Iterable[ValidationIssue]) -> Iterator[List[Any]]:
    for issue in issues:
        yield [issue.row, issue.field, issue.severity.value, issue.message]


def import_outcome_columns(key_fields: Sequence[str]) -> List[str]:
    return ["Row"] + [_label(name) for name in key_fields] + ["Status", "Reason"]


def import_outcome_rows(outcome: ImportOutcome, key_fields: Sequence[str]) -> Iterator[List[Any]]:
    for row in outcome.rows:
        yield [row.row] + [row.key.get(name) for name in key_fields] + [row.status.value, row.reason]


def validation_issues_csv(issues: Iterable[ValidationIssue]) -> str:
    """Render issues as ``Row, Field, Severity, Message``."""
    return "".join(generate_csv_stream(validation_issue_rows(issues), VALIDATION_ISSUE_COLUMNS))


def import_outcome_csv(outcome: ImportOutcome, key_fields: Sequence[str]) -> str:
    """Render per-row outcomes as ``Row, <key fields>, Status, Reason``."""
    return "".join(generate_csv_stream(import_outcome_rows(outcome, key_fields), import_outcome_columns(key_fields)))
