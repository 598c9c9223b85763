"""Tests for CsvSourceAdapter: header handling, ragged rows and decoding."""

import pytest

from commission_ingestion.adapters import CsvSourceAdapter, SourceAdapter
from commission_ingestion.domain.types import ParseIssue
from commission_kernel.exceptions import CsvParseError


@pytest.fixture
def adapter():
    return CsvSourceAdapter()


class TestParseText:
    def test_header_and_rows(self, adapter):
        table = adapter.parse_text(" Coach Email ,Commission\ncarter@example.com,250.00\n")

        assert table.headers == ("Coach Email", "Commission")
        assert len(table.rows) == 1
        assert table.rows[0].row_number == 2
        assert table.rows[0].values == {"Coach Email": "carter@example.com", "Commission": "250.00"}

    def test_bom_stripped(self, adapter):
        table = adapter.parse_bytes("\ufeffCoach,Commission\nCarter,10\n".encode("utf-8"))
        assert table.headers == ("Coach", "Commission")

    def test_blank_lines_skipped_but_counted(self, adapter):
        table = adapter.parse_text("Coach,Commission\n\nCarter,10\n , \nLee,20\n")

        assert [r.row_number for r in table.rows] == [3, 5]
        assert table.total_rows == 2

    def test_ragged_rows_reported(self, adapter):
        table = adapter.parse_text("Coach,Commission\nCarter,10,extra\nLee\nKim,30\n")

        assert table.issues == (
            ParseIssue(row_number=2, message="Expected 2 columns, found 3"),
            ParseIssue(row_number=3, message="Expected 2 columns, found 1"),
        )
        assert [r.values["Coach"] for r in table.rows] == ["Kim"]
        assert table.total_rows == 3

    def test_quoted_commas(self, adapter):
        table = adapter.parse_text('Coach,Commission\n"Carter, Jr.","$1,250.00"\n')
        assert table.rows[0].values == {"Coach": "Carter, Jr.", "Commission": "$1,250.00"}

    def test_multiline_cell_keeps_start_line(self, adapter):
        table = adapter.parse_text(
            'Coach,Notes\nCarter,"split\nacross\nlines"\nLee,short\nKim\n'
        )
        assert [r.row_number for r in table.rows] == [2, 5]
        assert table.rows[0].values["Notes"] == "split\nacross\nlines"
        assert [i.row_number for i in table.issues] == [6]

    @pytest.mark.parametrize("text", ["", "\n\n", " , \n"])
    def test_missing_header(self, adapter, text):
        with pytest.raises(CsvParseError) as exc_info:
            adapter.parse_text(text)
        assert exc_info.value.reason == "missing header row"

    def test_duplicate_header(self, adapter):
        with pytest.raises(CsvParseError) as exc_info:
            adapter.parse_text("Coach,coach\nA,B\n")
        assert exc_info.value.row_number == 1

    def test_blank_header_cell(self, adapter):
        with pytest.raises(CsvParseError):
            adapter.parse_text("Coach,,Commission\n")

    def test_semicolon_delimiter(self):
        table = CsvSourceAdapter(delimiter=";").parse_text("Coach;Commission\nCarter;10\n")
        assert table.rows[0].values["Commission"] == "10"


class TestParseBytes:
    def test_undecodable_bytes(self, adapter):
        with pytest.raises(CsvParseError) as exc_info:
            adapter.parse_bytes(b"Coach,Commission\n\xff\xfe,10\n")

        assert exc_info.value.byte_offset == 17
        assert exc_info.value.row_number is None
        assert "byte 17" in str(exc_info.value)

    def test_latin1(self):
        table = CsvSourceAdapter(encoding="latin-1").parse_bytes("Coach,Commission\nJosé,10\n".encode("latin-1"))
        assert table.rows[0].values["Coach"] == "José"


class TestProbe:
    def test_probe_samples_first_rows(self, adapter, tmp_path):
        lines = ["Coach,Commission"] + [f"Coach {i},{i}0" for i in range(7)] + ["Ragged"]
        path = tmp_path / "history.csv"
        path.write_text("\n".join(lines) + "\n")

        probe = adapter.probe(path)

        assert probe.row_count == 7
        assert probe.columns == ("Coach", "Commission")
        assert len(probe.sample_rows) == 5
        assert probe.sample_rows[0] == {"Coach": "Coach 0", "Commission": "00"}
        assert probe.issue_count == 1
        assert probe.encoding == "utf-8"

    def test_read_matches_parse_bytes(self, adapter, tmp_path):
        path = tmp_path / "history.csv"
        path.write_bytes(b"Coach,Commission\nCarter,10\n")
        assert adapter.read(path) == adapter.parse_bytes(path.read_bytes())

    def test_satisfies_protocol(self, adapter):
        assert isinstance(adapter, SourceAdapter)
