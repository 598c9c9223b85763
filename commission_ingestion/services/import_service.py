"""
Import service: parse -> map -> preview -> import.

Orchestrates the mapping engine, the row validators and the user/client
directories, then writes valid rows as ``historical`` ledger entries.
Uses structured logging (LogContext, get_logger("ingestion.*")).

Invariants enforced:
    - Every row is independent: each valid row is written inside its own
      savepoint, and a failure on one row is counted as ``errored`` while
      the batch continues.
    - The calculator is never invoked; the imported commission amount is
      authoritative.
    - Counts are exact: total_rows = imported + skipped + errored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commission_kernel.db.types import round_money
from commission_kernel.domain.basis import HistoricalBasis
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import SYSTEM_ACTOR_ID, EntryType, LedgerEntryStatus
from commission_kernel.logging_config import LogContext, get_logger
from commission_kernel.models.ledger import CommissionLedgerEntry
from commission_kernel.services.directory import (
    ClientDirectory,
    SqlClientDirectory,
    SqlUserDirectory,
    UserDirectory,
)

from commission_ingestion.domain.types import (
    CanonicalField,
    ColumnMapping,
    ImportOptions,
    ImportResult,
    ParsedRow,
    ParsedTable,
    PreviewResult,
    PreviewRow,
    RowError,
    RowIssue,
    RowStatus,
)
from commission_ingestion.domain.validators import RowValues, row_fingerprint, validate_row
from commission_ingestion.mapping.engine import apply_mapping, ensure_previewable
from commission_ingestion.models.import_batch import ImportBatchModel, ImportBatchStatus

logger = get_logger("ingestion.import_service")

DUPLICATE_ROW = "Duplicate of a previously imported row"
_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class _EvaluatedRow:
    preview: PreviewRow
    values: RowValues
    mapped: dict[CanonicalField, str]


class CommissionImportService:
    """Preview and import commission rows from a parsed table."""

    def __init__(
        self,
        session: Session,
        policy: CommissionPolicy,
        clock: Clock | None = None,
        users: UserDirectory | None = None,
        clients: ClientDirectory | None = None,
    ):
        self.session = session
        self._policy = policy
        self._clock = clock or SystemClock()
        self._users = users or SqlUserDirectory(session)
        self._clients = clients or SqlClientDirectory(session)

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(self, table: ParsedTable, mapping: ColumnMapping) -> PreviewResult:
        """
        Classify every row as valid or invalid.  Nothing is written.

        Raises:
            MappingIncompleteError: mapping lacks a coach identifier or the
                commission amount.
        """
        ensure_previewable(mapping)
        rows = tuple(self._evaluate(row, mapping).preview for row in table.rows)
        result = PreviewResult(rows=rows, parse_issues=table.issues)
        logger.info(
            "import_previewed",
            extra={
                "total_rows": table.total_rows,
                "valid": result.valid_count,
                "invalid": result.invalid_count,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_rows(
        self,
        table: ParsedTable,
        mapping: ColumnMapping,
        options: ImportOptions | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> ImportResult:
        """
        Write every valid row as a historical ledger entry.

        Invalid and duplicate rows are skipped with a reason; rows that fail
        to persist are counted as errored.  Never raises for row-level
        problems.

        Raises:
            MappingIncompleteError: mapping lacks a coach identifier or the
                commission amount.
        """
        options = options or ImportOptions()
        ensure_previewable(mapping)

        batch = ImportBatchModel(
            source_filename=options.source_filename,
            status=ImportBatchStatus.RUNNING,
            column_mapping=mapping.to_dict(),
            mark_as_historical=options.mark_as_historical,
            skip_duplicates=options.skip_duplicates,
            target_period_start=options.target_period_start,
            total_rows=table.total_rows,
            created_by_id=actor_id,
        )
        self.session.add(batch)
        self.session.flush()

        imported = skipped = errored = 0
        errors: list[RowError] = []

        with LogContext.bind(batch_id=batch.id, producer="ingestion", actor_id=actor_id):
            logger.info(
                "import_started",
                extra={"total_rows": table.total_rows, "source_filename": options.source_filename},
            )

            for issue in table.issues:
                skipped += 1
                errors.append(RowError(row=issue.row_number, reason=issue.message))
                logger.info(
                    "import_row_skipped",
                    extra={"row": issue.row_number, "reason": issue.message},
                )

            for row in table.rows:
                evaluated = self._evaluate(row, mapping)
                preview = evaluated.preview
                if not preview.is_valid:
                    skipped += 1
                    errors.append(RowError(row=row.row_number, reason=preview.issue_text))
                    logger.info(
                        "import_row_skipped",
                        extra={"row": row.row_number, "reason": preview.issue_text},
                    )
                    continue

                fingerprint = row_fingerprint(str(preview.coach_id), evaluated.values, evaluated.mapped)
                if options.skip_duplicates and self._fingerprint_exists(fingerprint):
                    skipped += 1
                    errors.append(RowError(row=row.row_number, reason=DUPLICATE_ROW))
                    logger.info(
                        "import_row_skipped",
                        extra={"row": row.row_number, "reason": DUPLICATE_ROW},
                    )
                    continue

                try:
                    with self.session.begin_nested():
                        self.session.add(
                            self._build_entry(batch, row, evaluated, fingerprint, options, actor_id)
                        )
                        self.session.flush()
                except SQLAlchemyError as exc:
                    errored += 1
                    reason = str(getattr(exc, "orig", None) or exc).splitlines()[0]
                    errors.append(RowError(row=row.row_number, reason=reason))
                    logger.warning(
                        "import_row_failed",
                        extra={"row": row.row_number, "reason": reason},
                    )
                    continue
                imported += 1

            errors.sort(key=lambda e: e.row)
            batch.imported_rows = imported
            batch.skipped_rows = skipped
            batch.errored_rows = errored
            batch.row_errors = [{"row": e.row, "reason": e.reason} for e in errors] or None
            batch.status = (
                ImportBatchStatus.COMPLETED_WITH_ERRORS if errors else ImportBatchStatus.COMPLETED
            )
            batch.completed_at = self._clock.now()
            self.session.flush()

            logger.info(
                "import_completed",
                extra={
                    "total_rows": table.total_rows,
                    "imported": imported,
                    "skipped": skipped,
                    "errored": errored,
                },
            )

        return ImportResult(
            total_rows=table.total_rows,
            imported=imported,
            skipped=skipped,
            errored=errored,
            errors=tuple(errors),
            batch_id=batch.id,
        )

    # ------------------------------------------------------------------

    def _evaluate(self, row: ParsedRow, mapping: ColumnMapping) -> _EvaluatedRow:
        mapped = apply_mapping(row.values, mapping)
        values, issues = validate_row(mapped)

        coach_id = None
        if any(mapped.get(f) for f in (CanonicalField.COACH_EMAIL, CanonicalField.COACH_NAME)):
            coach_id, coach_issue = self._resolve_coach(mapped)
            if coach_issue is not None:
                issues.insert(0, coach_issue)

        preview = PreviewRow(
            row_number=row.row_number,
            status=RowStatus.INVALID if issues else RowStatus.VALID,
            mapped={f.value: v for f, v in mapped.items()},
            coach_id=coach_id,
            client_id=self._resolve_client(mapped),
            commission_amount=values.commission_amount,
            gross_amount=values.gross_amount,
            entry_date=values.entry_date,
            role=values.role,
            issues=tuple(issues),
        )
        return _EvaluatedRow(preview=preview, values=values, mapped=mapped)

    def _resolve_coach(self, mapped: dict[CanonicalField, str]) -> tuple[UUID | None, RowIssue | None]:
        """Exact case-insensitive email match, or name when no email is given."""
        email = mapped.get(CanonicalField.COACH_EMAIL)
        if email:
            identifier, matches = email, self._users.find_by_email(email)
        else:
            identifier = mapped[CanonicalField.COACH_NAME]
            matches = self._users.find_by_name(identifier)

        if not matches:
            return None, RowIssue(f"Coach not found: {identifier}")
        if len(matches) > 1:
            return None, RowIssue(f"Ambiguous coach: {identifier} matches {len(matches)} users")
        coach = matches[0]
        if not coach.is_active:
            return None, RowIssue(f"Coach inactive: {identifier}")
        return coach.id, None

    def _resolve_client(self, mapped: dict[CanonicalField, str]) -> UUID | None:
        """Optional client link; only an unambiguous match is used."""
        email = mapped.get(CanonicalField.CLIENT_EMAIL)
        name = mapped.get(CanonicalField.CLIENT_NAME)
        if email:
            matches = self._clients.find_by_email(email)
        elif name:
            matches = self._clients.find_by_name(name)
        else:
            return None
        return matches[0].id if len(matches) == 1 else None

    def _period_for(self, entry_date: date | None, options: ImportOptions) -> date:
        if options.target_period_start is not None:
            return self._policy.period_start(options.target_period_start)
        return self._policy.period_start(entry_date or self._clock.today())

    def _build_entry(
        self,
        batch: ImportBatchModel,
        row: ParsedRow,
        evaluated: _EvaluatedRow,
        fingerprint: str,
        options: ImportOptions,
        actor_id: UUID,
    ) -> CommissionLedgerEntry:
        values = evaluated.values
        commission = round_money(values.commission_amount)
        gross = round_money(values.gross_amount) if values.gross_amount is not None else None
        percentage = None
        if gross is not None and gross > 0:
            percentage = round_money(commission / gross * 100, 4)

        basis = HistoricalBasis(
            import_id=str(batch.id),
            original_row=row.row_number,
            original_data=dict(row.values),
            gross_amount=gross,
        )
        status = LedgerEntryStatus.PAID if options.mark_as_historical else LedgerEntryStatus.PENDING
        return CommissionLedgerEntry(
            user_id=evaluated.preview.coach_id,
            client_id=evaluated.preview.client_id,
            payment_id=None,
            gross_amount=gross if gross is not None else _ZERO,
            net_amount=gross if gross is not None else _ZERO,
            commission_amount=commission,
            calculation_basis=basis.to_dict(),
            status=status.value,
            payout_period_start=self._period_for(values.entry_date, options),
            entry_type=EntryType.HISTORICAL.value,
            split_role=values.role.value,
            split_percentage=percentage,
            import_batch_id=batch.id,
            source_fingerprint=fingerprint,
            notes=evaluated.mapped.get(CanonicalField.NOTES),
            created_by_id=actor_id,
        )

    def _fingerprint_exists(self, fingerprint: str) -> bool:
        count = self.session.scalar(
            select(func.count(CommissionLedgerEntry.id))
            .where(CommissionLedgerEntry.source_fingerprint == fingerprint)
            .where(CommissionLedgerEntry.entry_type == EntryType.HISTORICAL.value)
        )
        return bool(count)
