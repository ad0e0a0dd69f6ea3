import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, Field, PrivateAttr, field_validator


logger = logging.getLogger(__name__)

ValueType = Literal["string", "number", "boolean", "date", "datetime", "enum"]
DuplicateHandling = Literal["skip", "update"]


class FieldSchema(BaseModel):
    """Canonical field definition shared by the mapper, normalizer and validator."""
    name: str
    label: str
    aliases: List[str] = Field(default_factory=list)
    required: bool = False
    value_type: ValueType = "string"
    options: Optional[List[str]] = None  # Allowed values for enum fields
    normalizer: Optional[str] = None  # Registry transform overriding the value_type default
    checksum: bool = False  # Luhn check on identifier digits
    preset: Optional[str] = None  # Format preset; mismatches are warnings

    @field_validator("options")
    @classmethod
    def validate_options(cls, value: Optional[List[str]], info) -> Optional[List[str]]:
        if info.data.get("value_type") == "enum" and not value:
            raise ValueError("enum fields require at least one option")
        return value


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """A single rule finding for one row and field."""
    row: int
    field: str
    severity: Severity
    message: str
    value: Any = None


class RowStatus(str, Enum):
    IMPORTED = "imported"
    SKIPPED = "skipped"
    ERRORED = "errored"


class RowOutcome(BaseModel):
    row: int
    status: RowStatus
    reason: Optional[str] = None
    key: Dict[str, Any] = Field(default_factory=dict)


class ImportOutcome(BaseModel):
    """
    Result of one importer run.

    Owned by the run that creates it; once :meth:`freeze` is called the
    outcome is read-only and can be persisted for report downloads.
    """
    imported: int = 0
    skipped: int = 0
    errored: int = 0
    cancelled: bool = False
    rows: List[RowOutcome] = Field(default_factory=list)

    _frozen: bool = PrivateAttr(default=False)

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.errored

    def record(
        self,
        row: int,
        status: RowStatus,
        reason: Optional[str] = None,
        key: Optional[Dict[str, Any]] = None,
    ) -> RowOutcome:
        if self._frozen:
            raise RuntimeError("Import outcome is read-only after completion")

        outcome = RowOutcome(row=row, status=status, reason=reason, key=key or {})
        self.rows.append(outcome)
        if status == RowStatus.IMPORTED:
            self.imported += 1
        elif status == RowStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errored += 1
        return outcome

    def freeze(self) -> "ImportOutcome":
        self._frozen = True
        return self


class ValidationSummary(BaseModel):
    """Row counts shown before the user confirms an import."""
    total_rows: int
    valid_rows: int
    error_rows: int
    warning_rows: int
    duplicate_rows: int
    importable_rows: int
    can_import: bool


class ProfileInfo(BaseModel):
    name: str
    description: Optional[str] = None
    business_key: List[str]
    conflict_key: List[str]
    fields: List[FieldSchema]


class ProfilesListResponse(BaseModel):
    profiles: List[ProfileInfo]


class MappingStatus(BaseModel):
    mapping: Dict[str, Optional[str]]
    missing_required_fields: List[str] = Field(default_factory=list)
    duplicate_columns: List[str] = Field(default_factory=list)
    can_proceed: bool


class ImportSessionResponse(BaseModel):
    """Snapshot of an interactive import session."""
    session_id: str
    profile: str
    stage: str
    file_name: Optional[str] = None
    headers: List[str] = Field(default_factory=list)
    total_rows: int = 0
    dropped_rows: int = 0
    preview: List[Dict[str, Any]] = Field(default_factory=list)
    mapping: Optional[MappingStatus] = None
    summary: Optional[ValidationSummary] = None
    issues: List[ValidationIssue] = Field(default_factory=list)
    outcome: Optional[ImportOutcome] = None


class UpdateMappingRequest(BaseModel):
    """Field -> header assignments; ``None`` clears a field."""
    mapping: Dict[str, Optional[str]]
    confirm: bool = True


class ValidateRequest(BaseModel):
    include_duplicates: bool = False


class ExecuteImportRequest(BaseModel):
    duplicate_handling: DuplicateHandling = "skip"
    batch_size: Optional[int] = Field(default=None, ge=1)
