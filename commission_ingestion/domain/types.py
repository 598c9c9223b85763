"""
commission_ingestion.domain.types -- pure frozen dataclasses for the import pipeline.

ZERO I/O.  Imports only from commission_kernel/domain/.
Validation problems are values here (ParseIssue, RowIssue, RowError), never
exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from commission_kernel.domain.values import SplitRole


class CanonicalField(str, Enum):
    """Target fields a source column can be mapped to."""

    COACH_EMAIL = "coach_email"
    COACH_NAME = "coach_name"
    CLIENT_NAME = "client_name"
    CLIENT_EMAIL = "client_email"
    DATE = "date"
    GROSS_AMOUNT = "gross_amount"
    COMMISSION_AMOUNT = "commission_amount"
    NOTES = "notes"
    ROLE = "role"
    LEAD_SOURCE = "lead_source"


COACH_FIELDS = (CanonicalField.COACH_EMAIL, CanonicalField.COACH_NAME)


class RowStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"


# =============================================================================
# Parsing
# =============================================================================


@dataclass(frozen=True)
class ParseIssue:
    """A data row the parser could not turn into a record (e.g. ragged)."""

    row_number: int
    message: str


@dataclass(frozen=True)
class ParsedRow:
    row_number: int  # 1-based file line; the header is line 1
    values: dict[str, str]


@dataclass(frozen=True)
class ParsedTable:
    headers: tuple[str, ...]
    rows: tuple[ParsedRow, ...] = ()
    issues: tuple[ParseIssue, ...] = ()

    @property
    def total_rows(self) -> int:
        """Data rows seen, including the ones reported as issues."""
        return len(self.rows) + len(self.issues)


# =============================================================================
# Mapping
# =============================================================================


@dataclass(frozen=True)
class ColumnMapping:
    """Canonical field -> source header.  Unmapped fields are absent."""

    columns: dict[CanonicalField, str] = field(default_factory=dict)

    def get(self, target: CanonicalField) -> str | None:
        return self.columns.get(target)

    def is_mapped(self, target: CanonicalField) -> bool:
        return bool(self.columns.get(target))

    def with_override(self, target: CanonicalField, header: str | None) -> ColumnMapping:
        """Return a copy with ``target`` mapped to ``header`` (None unmaps it)."""
        columns = dict(self.columns)
        if header:
            columns[CanonicalField(target)] = header
        else:
            columns.pop(CanonicalField(target), None)
        return ColumnMapping(columns=columns)

    def to_dict(self) -> dict[str, str]:
        return {f.value: h for f, h in sorted(self.columns.items(), key=lambda kv: kv[0].value)}


# =============================================================================
# Preview / import
# =============================================================================


@dataclass(frozen=True)
class RowIssue:
    message: str
    field: CanonicalField | None = None


@dataclass(frozen=True)
class PreviewRow:
    """One row after mapping, parsing and coach resolution."""

    row_number: int
    status: RowStatus
    mapped: dict[str, str] = field(default_factory=dict)
    coach_id: UUID | None = None
    client_id: UUID | None = None
    commission_amount: Decimal | None = None
    gross_amount: Decimal | None = None
    entry_date: date | None = None
    role: SplitRole = SplitRole.COACH
    issues: tuple[RowIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.status == RowStatus.VALID

    @property
    def issue_text(self) -> str:
        return ", ".join(i.message for i in self.issues)


@dataclass(frozen=True)
class PreviewResult:
    rows: tuple[PreviewRow, ...] = ()
    parse_issues: tuple[ParseIssue, ...] = ()

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self.rows if r.is_valid)

    @property
    def invalid_count(self) -> int:
        return len(self.rows) - self.valid_count + len(self.parse_issues)


@dataclass(frozen=True)
class ImportOptions:
    mark_as_historical: bool = True
    target_period_start: date | None = None
    skip_duplicates: bool = False
    source_filename: str | None = None


@dataclass(frozen=True)
class RowError:
    row: int
    reason: str


@dataclass(frozen=True)
class ImportResult:
    total_rows: int
    imported: int
    skipped: int
    errored: int
    errors: tuple[RowError, ...] = ()
    batch_id: UUID | None = None

    @property
    def success(self) -> bool:
        return not self.errors
