"""Import services (database access)."""

from commission_ingestion.services.import_service import (
    DUPLICATE_ROW,
    CommissionImportService,
)

__all__ = ["CommissionImportService", "DUPLICATE_ROW"]
