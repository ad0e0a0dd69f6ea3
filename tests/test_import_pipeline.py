"""
End-to-end tests for the import session state machine.
"""
import pytest

from conftest import TODAY, build_csv
from payroll_import.api.schemas.shared import RowStatus
from payroll_import.core.exceptions import InvalidTransitionError, MappingError, ParseError, UnknownProfileError
from payroll_import.domain.imports.pipeline import (
    ImportStage,
    confirm_mapping,
    create_session,
    go_back,
    importable_records,
    parse_upload,
    run_import,
    update_mapping,
    validate_records,
)


def _validated_session(content, include_duplicates=False):
    session = create_session("employees")
    parse_upload(session, content, "adp_export.csv")
    confirm_mapping(session)
    validate_records(session, include_duplicates=include_duplicates, today=TODAY)
    return session


class TestSessionFlow:

    def test_twelve_row_export(self, employee_csv):
        session = _validated_session(employee_csv)
        summary = session.summary

        assert session.stage == ImportStage.VALIDATED
        assert summary.total_rows == 12
        assert summary.valid_rows == 10
        assert summary.error_rows == 1
        assert summary.duplicate_rows == 1
        assert summary.importable_rows == 10
        assert summary.can_import

        assert session.report.rows_with_errors == {12}
        duplicate = next(record for record in session.records if record.is_duplicate)
        assert duplicate.row_number == 13
        assert duplicate.duplicate_of == 3

    def test_values_are_normalized(self, employee_csv):
        session = _validated_session(employee_csv)
        by_row = {record.row_number: record.values for record in session.records}

        assert by_row[2]["sin"] == "046454286"
        assert by_row[2]["birth_date"] == "1985-03-15"
        assert by_row[2]["hire_date"] == "2020-02-01"
        assert by_row[2]["province_code"] == "ON"
        assert by_row[4]["province_code"] == "QC"
        assert by_row[6]["rate"] == 1000.0
        assert by_row[10]["province_code"] == "NL"

    def test_including_duplicates(self, employee_csv):
        session = _validated_session(employee_csv, include_duplicates=True)

        assert session.summary.importable_rows == 11
        assert session.summary.valid_rows == 10
        assert len(importable_records(session)) == 11

    @pytest.mark.asyncio
    async def test_import_writes_importable_rows(self, employee_csv, memory_store):
        session = _validated_session(employee_csv)
        progress = []

        outcome = await run_import(session, memory_store, batch_size=4, progress_callback=progress.append)

        assert session.stage == ImportStage.COMPLETE
        assert session.outcome is outcome
        assert (outcome.imported, outcome.skipped, outcome.errored) == (10, 0, 0)
        assert progress == [33, 66, 100]
        imported_rows = {row.row for row in outcome.rows if row.status == RowStatus.IMPORTED}
        assert 12 not in imported_rows
        assert 13 not in imported_rows

    @pytest.mark.asyncio
    async def test_same_pay_code_under_two_companies(self, memory_store):
        content = build_csv("Company Code,Pay Code,Pay Code Name,Category,Rate Type", [
            "72R,REG,Regular,earning,multiplier",
            "72S,REG,Regular,earning,multiplier",
            "72r, reg ,Regular again,earning,multiplier",
        ])
        session = create_session("pay_codes")
        parse_upload(session, content, "pay_codes.csv")
        confirm_mapping(session)
        validate_records(session, today=TODAY)

        assert session.summary.duplicate_rows == 1
        assert session.summary.importable_rows == 2
        duplicate = next(record for record in session.records if record.is_duplicate)
        assert (duplicate.row_number, duplicate.duplicate_of) == (4, 2)

        outcome = await run_import(session, memory_store)

        assert outcome.imported == 2
        stored = {(row["company_code"], row["code"]) for row in memory_store.rows("pay_codes")}
        assert stored == {("72R", "REG"), ("72S", "REG")}
        assert [row.key for row in outcome.rows] == [
            {"company_code": "72R", "code": "REG"},
            {"company_code": "72S", "code": "REG"},
        ]

    @pytest.mark.asyncio
    async def test_included_case_variant_duplicate_hits_the_stored_key(self, employee_csv, memory_store):
        session = _validated_session(employee_csv, include_duplicates=True)

        outcome = await run_import(session, memory_store)

        assert (outcome.imported, outcome.skipped) == (10, 1)
        assert len(memory_store.rows("employees")) == 10

    @pytest.mark.asyncio
    async def test_second_import_skips_existing(self, employee_csv, memory_store):
        await run_import(_validated_session(employee_csv), memory_store)

        outcome = await run_import(_validated_session(employee_csv), memory_store)

        assert (outcome.imported, outcome.skipped) == (0, 10)

    @pytest.mark.asyncio
    async def test_aborted_run_returns_session_to_validated(self, employee_csv, memory_store):
        def broken_progress(percent):
            raise RuntimeError("progress sink closed")

        session = _validated_session(employee_csv)

        with pytest.raises(RuntimeError):
            await run_import(session, memory_store, progress_callback=broken_progress)
        assert session.stage == ImportStage.VALIDATED
        assert session.outcome is None

    @pytest.mark.asyncio
    async def test_invalid_batch_size_leaves_session_validated(self, employee_csv, memory_store):
        session = _validated_session(employee_csv)

        with pytest.raises(ValueError):
            await run_import(session, memory_store, batch_size=-1)
        assert session.stage == ImportStage.VALIDATED


class TestMapping:

    def test_upload_auto_detects_mapping(self, employee_csv):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")

        assert session.stage == ImportStage.PARSED
        assert session.parsed.total_rows == 12
        assert session.mapper.header_for("employee_number") == "Associate ID"
        assert session.mapper.can_proceed

    def test_missing_required_column_blocks_confirmation(self):
        content = build_csv("Associate ID,Last Name,Province", ["A001,Doe,ON"])
        session = create_session("employees")
        parse_upload(session, content, "partial.csv")

        with pytest.raises(MappingError) as exc_info:
            confirm_mapping(session)

        assert exc_info.value.missing_required_fields == ["hire_date"]
        assert session.stage == ImportStage.PARSED

    def test_manual_assignment_completes_mapping(self):
        content = build_csv("Associate ID,Last Name,Province,Started", ["A001,Doe,ON,2020-01-15"])
        session = create_session("employees")
        parse_upload(session, content, "manual.csv")

        confirm_mapping(session, {"hire_date": "Started"})
        validate_records(session, today=TODAY)

        assert session.records[0].values["hire_date"] == "2020-01-15"
        assert session.summary.valid_rows == 1

    def test_editing_a_confirmed_mapping_requires_reconfirmation(self, employee_csv):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")
        confirm_mapping(session)

        update_mapping(session, {"email": None})

        assert session.stage == ImportStage.PARSED
        with pytest.raises(InvalidTransitionError):
            validate_records(session)


class TestTransitions:

    def test_unknown_profile(self):
        with pytest.raises(UnknownProfileError):
            create_session("payslips")

    def test_parse_error_leaves_session_idle(self):
        session = create_session("employees")

        with pytest.raises(ParseError):
            parse_upload(session, b"", "empty.csv")
        assert session.stage == ImportStage.IDLE

    def test_cannot_validate_before_mapping(self, employee_csv):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")

        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_records(session)
        assert exc_info.value.current == "parsed"

    def test_cannot_parse_twice(self, employee_csv):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")

        with pytest.raises(InvalidTransitionError):
            parse_upload(session, employee_csv, "adp_export.csv")

    @pytest.mark.asyncio
    async def test_cannot_import_before_validation(self, employee_csv, memory_store):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")
        confirm_mapping(session)

        with pytest.raises(InvalidTransitionError):
            await run_import(session, memory_store)

    def test_going_back_from_validated_keeps_the_mapping(self, employee_csv):
        session = _validated_session(employee_csv)

        go_back(session)

        assert session.stage == ImportStage.MAPPED
        assert session.report is None
        assert session.summary is None
        assert session.records == []
        assert session.mapper.can_proceed

    def test_going_back_from_mapped_discards_the_file(self, employee_csv):
        session = create_session("employees")
        parse_upload(session, employee_csv, "adp_export.csv")
        confirm_mapping(session)

        go_back(session)

        assert session.stage == ImportStage.IDLE
        assert session.parsed is None
        assert session.mapper is None
        parse_upload(session, employee_csv, "adp_export.csv")
        assert session.stage == ImportStage.PARSED

    def test_cannot_go_back_from_idle(self):
        with pytest.raises(InvalidTransitionError):
            go_back(create_session("employees"))

    @pytest.mark.asyncio
    async def test_cannot_go_back_after_import(self, employee_csv, memory_store):
        session = _validated_session(employee_csv)
        await run_import(session, memory_store)

        with pytest.raises(InvalidTransitionError):
            go_back(session)
