"""
Interactive import endpoints: upload, map, validate, execute, download reports.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from payroll_import.api.dependencies import get_import_session, get_record_store, save_session
from payroll_import.api.schemas.shared import (
    ExecuteImportRequest,
    ImportSessionResponse,
    MappingStatus,
    ProfileInfo,
    ProfilesListResponse,
    UpdateMappingRequest,
    ValidateRequest,
)
from payroll_import.core.exceptions import (
    InvalidTransitionError,
    MappingError,
    ParseError,
    UnknownProfileError,
)
from payroll_import.domain.imports.importer import RecordStore
from payroll_import.domain.imports.pipeline import (
    ImportSession,
    ImportStage,
    confirm_mapping,
    create_session,
    go_back,
    parse_upload,
    run_import,
    update_mapping,
    validate_records,
)
from payroll_import.domain.imports.processors.file_parser import check_file_size, max_upload_bytes
from payroll_import.domain.imports.profiles import list_profiles
from payroll_import.domain.imports.reports import (
    VALIDATION_ISSUE_COLUMNS,
    generate_csv_stream,
    import_outcome_columns,
    import_outcome_rows,
    validation_issue_rows,
)

router = APIRouter(prefix="/imports", tags=["imports"])

logger = logging.getLogger(__name__)

PREVIEW_ROWS = 5


def _session_response(session: ImportSession) -> ImportSessionResponse:
    response = ImportSessionResponse(
        session_id=session.id,
        profile=session.profile.name,
        stage=session.stage.value,
    )
    if session.parsed is not None:
        response.file_name = session.parsed.file_name
        response.headers = session.parsed.headers
        response.total_rows = session.parsed.total_rows
        response.dropped_rows = session.parsed.dropped_rows
        response.preview = session.parsed.preview(PREVIEW_ROWS)
    if session.mapper is not None:
        response.mapping = MappingStatus(
            mapping=dict(session.mapper.mapping),
            missing_required_fields=session.mapper.missing_required_fields,
            duplicate_columns=session.mapper.duplicate_columns,
            can_proceed=session.mapper.can_proceed,
        )
    if session.report is not None:
        response.summary = session.summary
        response.issues = session.report.issues
    response.outcome = session.outcome
    return response


def _csv_response(chunks, filename: str) -> StreamingResponse:
    return StreamingResponse(
        chunks,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/profiles", response_model=ProfilesListResponse)
async def list_import_profiles():
    """List the available import profiles and their canonical fields."""
    return ProfilesListResponse(
        profiles=[
            ProfileInfo(
                name=profile.name,
                description=profile.description,
                business_key=list(profile.business_key),
                conflict_key=list(profile.conflict_key),
                fields=profile.fields,
            )
            for profile in list_profiles()
        ]
    )


@router.post("/{profile}/upload", response_model=ImportSessionResponse)
async def upload_import_file(profile: str, file: UploadFile = File(...)):
    """
    Start an import session from an uploaded CSV or Excel file.

    The response carries the detected headers, a preview and the
    auto-detected column mapping.
    """
    try:
        session = create_session(profile)
    except UnknownProfileError as e:
        raise HTTPException(status_code=404, detail=str(e))

    file_name = file.filename or "upload.csv"
    try:
        # Reject by declared size first, then read no more than one byte past the limit
        if file.size is not None:
            check_file_size(file.size, file_name)
        content = await file.read(max_upload_bytes() + 1)
        check_file_size(len(content), file_name)
        logger.info("Received %s upload '%s' (%d bytes)", profile, file_name, len(content))
        parse_upload(session, content, file_name)
    except ParseError as e:
        logger.warning("Upload rejected: %s", e.message)
        raise HTTPException(status_code=400, detail={"reason": e.reason, "message": e.message})

    save_session(session)
    return _session_response(session)


@router.get("/sessions/{session_id}", response_model=ImportSessionResponse)
async def get_session(session_id: str):
    return _session_response(get_import_session(session_id))


@router.put("/sessions/{session_id}/mapping", response_model=ImportSessionResponse)
async def put_mapping(session_id: str, request: UpdateMappingRequest):
    """Assign headers to fields and, unless ``confirm`` is false, lock the mapping."""
    session = get_import_session(session_id)
    try:
        if request.confirm:
            confirm_mapping(session, request.mapping)
        else:
            update_mapping(session, request.mapping)
    except MappingError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": e.message,
                "missing_required_fields": e.missing_required_fields,
                "duplicate_columns": e.duplicate_columns,
            },
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return _session_response(session)


@router.post("/sessions/{session_id}/validate", response_model=ImportSessionResponse)
async def validate_session(session_id: str, request: Optional[ValidateRequest] = None):
    """Normalize, validate and dedupe the parsed rows."""
    session = get_import_session(session_id)
    request = request or ValidateRequest()
    try:
        if session.stage == ImportStage.PARSED:
            confirm_mapping(session)
        validate_records(session, include_duplicates=request.include_duplicates)
    except MappingError as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": e.message,
                "missing_required_fields": e.missing_required_fields,
                "duplicate_columns": e.duplicate_columns,
            },
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return _session_response(session)


@router.post("/sessions/{session_id}/back", response_model=ImportSessionResponse)
async def step_back(session_id: str):
    session = get_import_session(session_id)
    try:
        go_back(session)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return _session_response(session)


@router.post("/sessions/{session_id}/execute", response_model=ImportSessionResponse)
async def execute_import(
    session_id: str,
    request: Optional[ExecuteImportRequest] = None,
    store: RecordStore = Depends(get_record_store),
):
    """Write the importable rows; failed rows are reported, not raised."""
    session = get_import_session(session_id)
    request = request or ExecuteImportRequest()
    try:
        await run_import(
            session,
            store,
            duplicate_handling=request.duplicate_handling,
            batch_size=request.batch_size,
        )
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except Exception as e:
        logger.exception("Import execution failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))
    return _session_response(session)


@router.get("/sessions/{session_id}/errors.csv")
async def download_validation_issues(session_id: str):
    session = get_import_session(session_id)
    if session.report is None:
        raise HTTPException(status_code=409, detail="Session has not been validated yet")
    return _csv_response(
        generate_csv_stream(validation_issue_rows(session.report.issues), VALIDATION_ISSUE_COLUMNS),
        f"{session.profile.name}_validation_errors.csv",
    )


@router.get("/sessions/{session_id}/report.csv")
async def download_import_report(session_id: str):
    session = get_import_session(session_id)
    if session.outcome is None:
        raise HTTPException(status_code=409, detail="Import has not run yet")
    key_fields = list(session.profile.business_key)
    return _csv_response(
        generate_csv_stream(import_outcome_rows(session.outcome, key_fields), import_outcome_columns(key_fields)),
        f"{session.profile.name}_import_report.csv",
    )
