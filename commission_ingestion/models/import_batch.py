"""
Import batch ORM model.

Contract:
    One row per import commit with its mapping, options and final counts.
    Historical ledger entries point back at it through import_batch_id.

Architecture: commission_ingestion/models.  Imports from commission_kernel.db only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase


class ImportBatchStatus:
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class ImportBatchModel(TrackedBase):
    """One commission import run."""

    __tablename__ = "commission_import_batches"

    source_filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    column_mapping: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    mark_as_historical: Mapped[bool] = mapped_column(Boolean, nullable=False)
    skip_duplicates: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    target_period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    imported_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    errored_rows: Mapped[int] = mapped_column(default=0, nullable=False)
    row_errors: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ImportBatchModel {self.id} {self.status} {self.imported_rows}/{self.total_rows}>"
