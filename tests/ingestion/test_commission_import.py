"""
Tests for CommissionImportService: preview and historical import.

Rows are parsed from CSV text with the real adapter and mapped with
auto_map, so each test reads like the spreadsheet an operator uploads.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from commission_ingestion.adapters import CsvSourceAdapter
from commission_ingestion.domain.types import ColumnMapping, ImportOptions, RowStatus
from commission_ingestion.mapping import auto_map
from commission_ingestion.models import ImportBatchModel, ImportBatchStatus
from commission_ingestion.services import DUPLICATE_ROW, CommissionImportService
from commission_kernel.domain.values import EntryType, LedgerEntryStatus, SplitRole
from commission_kernel.exceptions import MappingIncompleteError
from commission_kernel.models.ledger import CommissionLedgerEntry

HEADER = "Date,Coach Email,Client Name,Gross,Commission,Notes\n"


def _table(body, header=HEADER):
    return CsvSourceAdapter().parse_text(header + body)


@pytest.fixture
def importer(session, policy, deterministic_clock):
    return CommissionImportService(session, policy, deterministic_clock)


@pytest.fixture
def coaches(make_user):
    return (
        make_user("Coach Carter", "carter@example.com"),
        make_user("Coach Lee", "lee@example.com"),
    )


def _entries(session):
    return session.scalars(
        select(CommissionLedgerEntry)
        .where(CommissionLedgerEntry.entry_type == EntryType.HISTORICAL.value)
        .order_by(CommissionLedgerEntry.commission_amount)
    ).all()


class TestPreview:
    def test_classifies_rows(self, session, importer, coaches):
        table = _table(
            "2025-01-08,carter@example.com,Jane,1000,250,\n"
            "2025-01-08,nobody@example.com,Jane,1000,250,\n"
            "2025-01-08,lee@example.com,Jane,1000,lots,\n"
            "ragged\n"
        )

        result = importer.preview(table, auto_map(table.headers))

        assert [r.status for r in result.rows] == [RowStatus.VALID, RowStatus.INVALID, RowStatus.INVALID]
        assert result.rows[0].coach_id == coaches[0].id
        assert result.rows[0].commission_amount == Decimal("250")
        assert result.rows[1].issue_text == "Coach not found: nobody@example.com"
        assert result.rows[2].issue_text == "Invalid commission amount: lots"
        assert result.valid_count == 1
        assert result.invalid_count == 3
        assert _entries(session) == []

    def test_incomplete_mapping(self, importer):
        table = _table("2025-01-08,carter@example.com,Jane,1000,250,\n")
        with pytest.raises(MappingIncompleteError):
            importer.preview(table, ColumnMapping())


class TestImport:
    def test_unknown_coaches_skipped(self, session, importer, coaches):
        body = "".join(
            f"2025-01-{8 + i:02d},{email},Client {i},1000,{100 + i},\n"
            for i, email in enumerate(
                ["carter@example.com", "lee@example.com"] * 4 + ["ghost@example.com", "Carter@Example.org"]
            )
        )
        table = _table(body)

        result = importer.import_rows(table, auto_map(table.headers))

        assert result.total_rows == 10
        assert result.imported == 8
        assert result.skipped == 2
        assert result.errored == 0
        assert [(e.row, e.reason) for e in result.errors] == [
            (10, "Coach not found: ghost@example.com"),
            (11, "Coach not found: Carter@Example.org"),
        ]
        assert len(_entries(session)) == 8

    def test_entry_fields(self, session, importer, coaches, make_client):
        client = make_client(name="Jane Client")
        table = _table("2025-01-14,CARTER@example.com,jane client,\"$1,000.00\",250.00,January split\n")

        result = importer.import_rows(table, auto_map(table.headers))

        (entry,) = _entries(session)
        assert entry.user_id == coaches[0].id
        assert entry.client_id == client.id
        assert entry.payment_id is None
        assert entry.status == LedgerEntryStatus.PAID
        assert entry.split_role == SplitRole.COACH
        assert entry.commission_amount == Decimal("250.00")
        assert entry.gross_amount == Decimal("1000.00")
        assert entry.split_percentage == Decimal("25.0000")
        assert entry.payout_period_start == date(2025, 1, 13)
        assert entry.import_batch_id == result.batch_id
        assert entry.notes == "January split"
        assert len(entry.source_fingerprint) == 64
        assert entry.calculation_basis["original_row"] == 2
        assert entry.calculation_basis["original_data"]["Commission"] == "250.00"

    def test_not_historical_is_pending(self, session, importer, coaches):
        table = _table("2025-01-08,carter@example.com,,,80,\n")

        importer.import_rows(table, auto_map(table.headers), ImportOptions(mark_as_historical=False))

        (entry,) = _entries(session)
        assert entry.status == LedgerEntryStatus.PENDING
        assert entry.gross_amount == Decimal("0.00")
        assert entry.split_percentage is None

    def test_target_period_snapped(self, session, importer, coaches):
        table = _table("2024-06-01,carter@example.com,,,80,\n")

        importer.import_rows(
            table, auto_map(table.headers), ImportOptions(target_period_start=date(2025, 1, 15))
        )

        assert _entries(session)[0].payout_period_start == date(2025, 1, 13)

    def test_missing_date_uses_today(self, session, importer, coaches):
        table = _table(",carter@example.com,,,80,\n")

        importer.import_rows(table, auto_map(table.headers))

        # Clock is 2025-01-06
        assert _entries(session)[0].payout_period_start == date(2024, 12, 30)

    def test_role_column(self, session, importer, coaches):
        table = CsvSourceAdapter().parse_text(
            "Coach,Commission,Role\nCoach Lee,40,setter\nCoach Lee,60,janitor\n"
        )

        result = importer.import_rows(table, auto_map(table.headers))

        assert result.imported == 1
        assert result.errors[0].reason == "Invalid role: janitor"
        assert _entries(session)[0].split_role == SplitRole.SETTER

    def test_parse_issues_counted_as_skipped(self, importer, coaches):
        table = _table("2025-01-08,carter@example.com,,,80,\ntoo,short\n")

        result = importer.import_rows(table, auto_map(table.headers))

        assert (result.total_rows, result.imported, result.skipped) == (2, 1, 1)
        assert result.errors[0].reason == "Expected 6 columns, found 2"
        assert not result.success


class TestCoachResolution:
    def test_ambiguous_name(self, importer, make_user):
        make_user("Alex Smith")
        make_user("alex smith")
        table = CsvSourceAdapter().parse_text("Coach,Commission\nAlex Smith,10\n")

        result = importer.import_rows(table, auto_map(table.headers))

        assert result.errors[0].reason == "Ambiguous coach: Alex Smith matches 2 users"

    def test_inactive_coach(self, importer, make_user):
        make_user("Gone Coach", "gone@example.com", is_active=False)
        table = CsvSourceAdapter().parse_text("Coach Email,Commission\ngone@example.com,10\n")

        result = importer.import_rows(table, auto_map(table.headers))

        assert result.errors[0].reason == "Coach inactive: gone@example.com"

    def test_email_preferred_over_name(self, session, importer, coaches):
        table = CsvSourceAdapter().parse_text(
            "Coach Email,Coach Name,Commission\nlee@example.com,Coach Carter,10\n"
        )

        importer.import_rows(table, auto_map(table.headers))

        assert _entries(session)[0].user_id == coaches[1].id


class TestDuplicates:
    BODY = "2025-01-08,carter@example.com,Jane,1000,250,\n"

    def test_reimport_skipped_when_requested(self, session, importer, coaches):
        table = _table(self.BODY)
        mapping = auto_map(table.headers)
        importer.import_rows(table, mapping)

        result = importer.import_rows(table, mapping, ImportOptions(skip_duplicates=True))

        assert result.imported == 0
        assert result.errors[0].reason == DUPLICATE_ROW
        assert len(_entries(session)) == 1

    def test_reformatted_row_still_duplicate(self, session, importer, coaches):
        importer.import_rows(_table(self.BODY), auto_map(HEADER.strip().split(",")))
        again = _table("01/08/2025,Carter@Example.com,jane,\"$1,000.00\",$250,\n")

        result = importer.import_rows(again, auto_map(again.headers), ImportOptions(skip_duplicates=True))

        assert result.skipped == 1

    def test_duplicates_within_one_file(self, importer, coaches):
        table = _table(self.BODY * 2)
        result = importer.import_rows(table, auto_map(table.headers), ImportOptions(skip_duplicates=True))
        assert (result.imported, result.skipped) == (1, 1)

    def test_duplicates_allowed_by_default(self, session, importer, coaches):
        table = _table(self.BODY)
        importer.import_rows(table, auto_map(table.headers))
        importer.import_rows(table, auto_map(table.headers))
        assert len(_entries(session)) == 2


class TestBatchRecord:
    def test_batch_counts(self, session, importer, coaches, test_actor_id):
        table = _table(
            "2025-01-08,carter@example.com,,,80,\n"
            "2025-01-08,ghost@example.com,,,80,\n"
        )

        result = importer.import_rows(
            table,
            auto_map(table.headers),
            ImportOptions(source_filename="q4.csv", skip_duplicates=True),
            actor_id=test_actor_id,
        )

        batch = session.get(ImportBatchModel, result.batch_id)
        assert batch.status == ImportBatchStatus.COMPLETED_WITH_ERRORS
        assert batch.source_filename == "q4.csv"
        assert (batch.total_rows, batch.imported_rows, batch.skipped_rows, batch.errored_rows) == (2, 1, 1, 0)
        assert batch.row_errors == [{"row": 3, "reason": "Coach not found: ghost@example.com"}]
        assert batch.column_mapping["coach_email"] == "Coach Email"
        assert batch.skip_duplicates is True
        assert batch.created_by_id == test_actor_id
        assert batch.completed_at is not None

    def test_completion_logged(self, importer, coaches, captured_logs):
        table = _table("2025-01-08,carter@example.com,,,80,\n")

        result = importer.import_rows(table, auto_map(table.headers))

        completed = [r for r in captured_logs() if r["message"] == "import_completed"]
        assert completed[0]["imported"] == 1
        assert completed[0]["batch_id"] == str(result.batch_id)

    def test_clean_batch_completed(self, session, importer, coaches):
        table = _table("2025-01-08,carter@example.com,,,80,\n")

        result = importer.import_rows(table, auto_map(table.headers))

        batch = session.get(ImportBatchModel, result.batch_id)
        assert batch.status == ImportBatchStatus.COMPLETED
        assert batch.row_errors is None
