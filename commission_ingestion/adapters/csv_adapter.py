"""
CSV source adapter.

Uses the stdlib csv module.  Strips a UTF-8 BOM, skips blank lines, and
reports ragged rows as ParseIssue values instead of failing the file.
Row numbers are the 1-based file line a record starts on: the header is
line 1, and a quoted cell spanning lines keeps its first line.
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Iterator

from commission_kernel.exceptions import CsvParseError

from commission_ingestion.adapters.base import SourceProbe
from commission_ingestion.domain.types import ParsedRow, ParsedTable, ParseIssue

_BOM = "\ufeff"
_SAMPLE_SIZE = 5


def _is_blank(cells: list[str]) -> bool:
    return all(not c.strip() for c in cells)


def _records(reader) -> Iterator[tuple[int, list[str]]]:
    """Yield each record with the 1-based line it starts on."""
    while True:
        start = reader.line_num + 1
        try:
            cells = next(reader)
        except StopIteration:
            return
        yield start, cells


class CsvSourceAdapter:
    """Read CSV text into a ParsedTable."""

    def __init__(self, delimiter: str = ",", encoding: str = "utf-8"):
        self.delimiter = delimiter
        self.encoding = encoding

    def read(self, source_path: Path) -> ParsedTable:
        return self.parse_bytes(Path(source_path).read_bytes())

    def parse_bytes(self, data: bytes) -> ParsedTable:
        """
        Raises:
            CsvParseError: bytes are not valid in the configured encoding.
        """
        encoding = "utf-8-sig" if self.encoding.lower() in ("utf-8", "utf8") else self.encoding
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError as exc:
            raise CsvParseError(
                f"cannot decode as {self.encoding}: {exc.reason}",
                byte_offset=exc.start,
            ) from None
        return self.parse_text(text)

    def parse_text(self, text: str) -> ParsedTable:
        """
        Raises:
            CsvParseError: no header row, a blank or duplicate column name,
                or text the csv module rejects.
        """
        if text.startswith(_BOM):
            text = text[len(_BOM):]

        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.delimiter)
        headers: tuple[str, ...] | None = None
        rows: list[ParsedRow] = []
        issues: list[ParseIssue] = []

        try:
            for line, cells in _records(reader):
                if _is_blank(cells):
                    continue
                if headers is None:
                    headers = self._headers(cells, line)
                    continue
                if len(cells) != len(headers):
                    issues.append(
                        ParseIssue(
                            row_number=line,
                            message=f"Expected {len(headers)} columns, found {len(cells)}",
                        )
                    )
                    continue
                rows.append(ParsedRow(row_number=line, values=dict(zip(headers, cells))))
        except csv.Error as exc:
            raise CsvParseError(str(exc), row_number=reader.line_num) from None

        if headers is None:
            raise CsvParseError("missing header row")
        return ParsedTable(headers=headers, rows=tuple(rows), issues=tuple(issues))

    @staticmethod
    def _headers(cells: list[str], line: int) -> tuple[str, ...]:
        headers = tuple(c.strip() for c in cells)
        seen: set[str] = set()
        for h in headers:
            if not h:
                raise CsvParseError("blank column name in header", row_number=line)
            if h.lower() in seen:
                raise CsvParseError(f"duplicate column {h!r} in header", row_number=line)
            seen.add(h.lower())
        return headers

    def probe(self, source_path: Path) -> SourceProbe:
        table = self.read(source_path)
        return SourceProbe(
            row_count=len(table.rows),
            columns=table.headers,
            sample_rows=tuple(dict(r.values) for r in table.rows[:_SAMPLE_SIZE]),
            issue_count=len(table.issues),
            encoding=self.encoding,
        )
