"""
Import session state machine.

A session moves through explicit stages::

    idle -> parsed -> mapped -> validated -> importing -> complete

Each transition is a function that checks the current stage, does its work
and records the result on the session. ``go_back`` discards whatever the
later stages produced. Only parse and mapping failures raise; validation
issues, duplicates and row write failures are carried as data.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, List, Mapping, Optional

from payroll_import.api.schemas.shared import DuplicateHandling, ImportOutcome, ValidationSummary
from payroll_import.core.exceptions import InvalidTransitionError
from payroll_import.domain.imports.column_mapper import ColumnMapper
from payroll_import.domain.imports.deduplication import flag_duplicates
from payroll_import.domain.imports.importer import (
    BatchImporter,
    CancellationToken,
    ImportBatch,
    ProgressCallback,
    RecordStore,
)
from payroll_import.domain.imports.normalizers import StagedRecord, stage_record
from payroll_import.domain.imports.processors.file_parser import ParsedFile, parse_file
from payroll_import.domain.imports.profiles import ImportProfile, get_profile
from payroll_import.domain.imports.validation import ValidationReport, validate_records as run_validation

logger = logging.getLogger(__name__)


class ImportStage(str, Enum):
    IDLE = "idle"
    PARSED = "parsed"
    MAPPED = "mapped"
    VALIDATED = "validated"
    IMPORTING = "importing"
    COMPLETE = "complete"


@dataclass
class ImportSession:
    profile: ImportProfile
    stage: ImportStage = ImportStage.IDLE
    parsed: Optional[ParsedFile] = None
    mapper: Optional[ColumnMapper] = None
    records: List[StagedRecord] = field(default_factory=list)
    report: Optional[ValidationReport] = None
    summary: Optional[ValidationSummary] = None
    outcome: Optional[ImportOutcome] = None
    include_duplicates: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


def create_session(profile_name: str) -> ImportSession:
    return ImportSession(profile=get_profile(profile_name))


def _require_stage(session: ImportSession, allowed: Iterable[ImportStage], action: str) -> None:
    if session.stage not in tuple(allowed):
        raise InvalidTransitionError(session.stage.value, action)


def _discard_validation(session: ImportSession) -> None:
    session.records = []
    session.report = None
    session.summary = None
    session.include_duplicates = False


def parse_upload(
    session: ImportSession,
    content: bytes,
    file_name: str,
    max_size_mb: Optional[int] = None,
) -> ImportSession:
    """Parse the uploaded file and auto-detect a column mapping."""
    _require_stage(session, [ImportStage.IDLE], "parse a file")
    parsed = parse_file(content, file_name, max_size_mb=max_size_mb)

    session.parsed = parsed
    session.mapper = ColumnMapper(session.profile.fields, parsed.headers)
    session.stage = ImportStage.PARSED
    return session


def update_mapping(session: ImportSession, assignments: Mapping[str, Optional[str]]) -> ImportSession:
    """
    Change field assignments before validation.

    A confirmed mapping that is edited has to be confirmed again.
    """
    _require_stage(session, [ImportStage.PARSED, ImportStage.MAPPED], "change the column mapping")
    session.mapper.update(assignments)
    session.stage = ImportStage.PARSED
    return session


def confirm_mapping(
    session: ImportSession,
    assignments: Optional[Mapping[str, Optional[str]]] = None,
) -> ImportSession:
    """Apply optional assignments and lock the mapping; raises MappingError if incomplete."""
    _require_stage(session, [ImportStage.PARSED, ImportStage.MAPPED], "confirm the column mapping")
    if assignments:
        session.mapper.update(assignments)
    session.mapper.require_complete()
    session.stage = ImportStage.MAPPED
    return session


def summarize(records: List[StagedRecord], report: ValidationReport, include_duplicates: bool = False) -> ValidationSummary:
    error_rows = report.rows_with_errors
    warning_rows = report.rows_with_warnings

    error_count = sum(1 for record in records if record.row_number in error_rows)
    duplicate_count = sum(1 for record in records if record.is_duplicate)
    valid_count = sum(
        1 for record in records
        if record.row_number not in error_rows and not record.is_duplicate
    )
    importable = sum(
        1 for record in records
        if record.row_number not in error_rows and (include_duplicates or not record.is_duplicate)
    )
    return ValidationSummary(
        total_rows=len(records),
        valid_rows=valid_count,
        error_rows=error_count,
        warning_rows=sum(1 for record in records if record.row_number in warning_rows),
        duplicate_rows=duplicate_count,
        importable_rows=importable,
        can_import=importable > 0,
    )


def validate_records(
    session: ImportSession,
    include_duplicates: bool = False,
    today: Optional[date] = None,
) -> ImportSession:
    """Normalize, validate and dedupe every parsed row."""
    _require_stage(session, [ImportStage.MAPPED], "validate records")
    session.mapper.require_complete()

    profile = session.profile
    staged = [
        stage_record(profile, row.row_number, session.mapper.apply_row(row.values))
        for row in session.parsed.rows
    ]
    report = run_validation(profile, staged, today=today)
    records = flag_duplicates(staged, profile.business_key)

    session.records = records
    session.report = report
    session.include_duplicates = include_duplicates
    session.summary = summarize(records, report, include_duplicates)
    session.stage = ImportStage.VALIDATED

    summary = session.summary
    logger.info(
        "Session %s validated: %d rows, %d valid, %d errors, %d warnings, %d duplicates",
        session.id, summary.total_rows, summary.valid_rows, summary.error_rows,
        summary.warning_rows, summary.duplicate_rows,
    )
    return session


def importable_records(session: ImportSession) -> List[StagedRecord]:
    if session.report is None:
        return []
    error_rows = session.report.rows_with_errors
    return [
        record for record in session.records
        if record.row_number not in error_rows and (session.include_duplicates or not record.is_duplicate)
    ]


async def run_import(
    session: ImportSession,
    store: RecordStore,
    duplicate_handling: DuplicateHandling = "skip",
    batch_size: Optional[int] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ImportOutcome:
    """Persist the importable records and move the session to complete."""
    _require_stage(session, [ImportStage.VALIDATED], "start the import")
    importer = BatchImporter(
        session.profile,
        store,
        batch_size=batch_size,
        progress_callback=progress_callback,
        cancel_token=cancel_token,
    )
    session.stage = ImportStage.IMPORTING
    batch = ImportBatch(records=importable_records(session), duplicate_handling=duplicate_handling)
    try:
        outcome = await importer.run(batch)
    except Exception:
        session.stage = ImportStage.VALIDATED
        raise

    session.outcome = outcome
    session.stage = ImportStage.COMPLETE
    return outcome


def go_back(session: ImportSession) -> ImportSession:
    """Step back one stage, discarding what the later stages produced."""
    if session.stage == ImportStage.VALIDATED:
        _discard_validation(session)
        session.stage = ImportStage.MAPPED
    elif session.stage in (ImportStage.MAPPED, ImportStage.PARSED):
        _discard_validation(session)
        session.parsed = None
        session.mapper = None
        session.stage = ImportStage.IDLE
    else:
        raise InvalidTransitionError(session.stage.value, "go back")
    return session
