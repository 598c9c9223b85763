"""ORM models for commission import."""

from commission_ingestion.models.import_batch import ImportBatchModel, ImportBatchStatus

__all__ = ["ImportBatchModel", "ImportBatchStatus"]
