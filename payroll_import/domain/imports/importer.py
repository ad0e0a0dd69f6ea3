"""
Batched, partially-failable persistence of validated records.

Rows are written one at a time through a :class:`RecordStore`. A failing row
is recorded as ``errored`` and the run moves on; there is no cross-row
atomicity. After every batch the importer yields to the event loop and
reports progress.
"""
import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from payroll_import.api.schemas.shared import DuplicateHandling, ImportOutcome, RowStatus
from payroll_import.core.config import settings
from payroll_import.domain.imports.normalizers import StagedRecord
from payroll_import.domain.imports.profiles import ImportProfile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

RECORD_EXISTS_REASON = "Record already exists"
CANCELLED_REASON = "Import cancelled"


class WriteResult(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    EXISTING = "existing"


class RecordStore(Protocol):
    """Persistence boundary. Implementations own their per-row transactions."""

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        ...

    async def insert_if_absent(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        ...


class InMemoryRecordStore:
    """Dictionary-backed store used for dry runs and tests."""

    def __init__(self):
        self.tables: Dict[str, Dict[Tuple[Any, ...], Dict[str, Any]]] = {}

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    async def upsert(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        rows = self.tables.setdefault(table, {})
        key = tuple(record.get(name) for name in conflict_key)
        result = WriteResult.UPDATED if key in rows else WriteResult.INSERTED
        rows[key] = dict(record)
        return result

    async def insert_if_absent(self, table: str, record: Dict[str, Any], conflict_key: Sequence[str]) -> WriteResult:
        rows = self.tables.setdefault(table, {})
        key = tuple(record.get(name) for name in conflict_key)
        if key in rows:
            return WriteResult.EXISTING
        rows[key] = dict(record)
        return WriteResult.INSERTED


class CancellationToken:
    """Cooperative cancellation, checked by the importer between batches."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class ImportBatch:
    records: List[StagedRecord] = field(default_factory=list)
    duplicate_handling: DuplicateHandling = "skip"


class BatchImporter:
    """
    Write an :class:`ImportBatch` to a store in sequential batches.

    Args:
        profile: Supplies the target table, conflict key and report key fields
        store: Record store to write to
        batch_size: Rows per batch, defaults to ``settings.import_batch_size``
        progress_callback: Called with 0-100 after every batch
        cancel_token: Checked before each batch starts
    """

    def __init__(
        self,
        profile: ImportProfile,
        store: RecordStore,
        batch_size: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.profile = profile
        self.store = store
        self.batch_size = batch_size or settings.import_batch_size
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.progress_callback = progress_callback
        self.cancel_token = cancel_token

    def _row_payload(self, record: StagedRecord) -> Dict[str, Any]:
        return {name: record.values.get(name) for name in self.profile.column_names}

    def _row_key(self, record: StagedRecord) -> Dict[str, Any]:
        return {name: record.values.get(name) for name in self.profile.business_key}

    async def _write(self, record: StagedRecord, duplicate_handling: DuplicateHandling) -> WriteResult:
        payload = self._row_payload(record)
        if duplicate_handling == "update":
            return await self.store.upsert(self.profile.table, payload, self.profile.conflict_key)
        return await self.store.insert_if_absent(self.profile.table, payload, self.profile.conflict_key)

    def _report_progress(self, completed_batches: int, total_batches: int) -> None:
        if self.progress_callback is None:
            return
        percent = 100 if total_batches == 0 else int(completed_batches * 100 / total_batches)
        self.progress_callback(percent)

    async def run(self, batch: ImportBatch) -> ImportOutcome:
        outcome = ImportOutcome()
        records = batch.records
        total = len(records)
        total_batches = math.ceil(total / self.batch_size)

        logger.info(
            "Importing %d %s rows into '%s' (batch size %d, duplicates: %s)",
            total, self.profile.name, self.profile.table, self.batch_size, batch.duplicate_handling,
        )

        for batch_index, start in enumerate(range(0, total, self.batch_size)):
            if self.cancel_token is not None and self.cancel_token.cancelled:
                for record in records[start:]:
                    outcome.record(record.row_number, RowStatus.SKIPPED, CANCELLED_REASON, self._row_key(record))
                outcome.cancelled = True
                logger.info("Import cancelled after %d of %d rows", start, total)
                break

            for record in records[start:start + self.batch_size]:
                key = self._row_key(record)
                try:
                    result = await self._write(record, batch.duplicate_handling)
                except Exception as e:
                    logger.warning("Row %d failed to import: %s", record.row_number, e)
                    outcome.record(record.row_number, RowStatus.ERRORED, str(e) or e.__class__.__name__, key)
                    continue

                if result == WriteResult.EXISTING:
                    outcome.record(record.row_number, RowStatus.SKIPPED, RECORD_EXISTS_REASON, key)
                else:
                    outcome.record(record.row_number, RowStatus.IMPORTED, None, key)

            await asyncio.sleep(0)
            self._report_progress(batch_index + 1, total_batches)

        if total == 0:
            self._report_progress(0, 0)

        logger.info(
            "Import finished: %d imported, %d skipped, %d errored",
            outcome.imported, outcome.skipped, outcome.errored,
        )
        return outcome.freeze()
