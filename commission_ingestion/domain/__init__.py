"""Pure domain types and validators for commission import."""

from commission_ingestion.domain.types import (
    COACH_FIELDS,
    CanonicalField,
    ColumnMapping,
    ImportOptions,
    ImportResult,
    ParsedRow,
    ParsedTable,
    ParseIssue,
    PreviewResult,
    PreviewRow,
    RowError,
    RowIssue,
    RowStatus,
)

__all__ = [
    "COACH_FIELDS",
    "CanonicalField",
    "ColumnMapping",
    "ImportOptions",
    "ImportResult",
    "ParsedRow",
    "ParsedTable",
    "ParseIssue",
    "PreviewResult",
    "PreviewRow",
    "RowError",
    "RowIssue",
    "RowStatus",
]
