"""
Source adapter protocol and probe DTO.

Contract:
    SourceAdapter.read() returns the whole file as a ParsedTable.
    SourceAdapter.probe() returns a quick snapshot: row count, columns, sample rows.

Architecture: commission_ingestion/adapters.  File I/O only, no DB imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from commission_ingestion.domain.types import ParsedTable


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for reading tabular source files."""

    def read(self, source_path: Path) -> ParsedTable:
        ...

    def parse_bytes(self, data: bytes) -> ParsedTable:
        ...

    def probe(self, source_path: Path) -> "SourceProbe":
        """Quick probe: row count, detected columns, sample rows."""
        ...


@dataclass(frozen=True)
class SourceProbe:
    """Result of probing a source file (row count, columns, first N rows)."""

    row_count: int
    columns: tuple[str, ...]
    sample_rows: tuple[dict[str, str], ...]  # First 5 rows; do not mutate
    issue_count: int = 0
    encoding: str | None = None
