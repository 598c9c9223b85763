"""Source adapters for commission import (file I/O only, no DB)."""

from commission_ingestion.adapters.base import SourceAdapter, SourceProbe
from commission_ingestion.adapters.csv_adapter import CsvSourceAdapter

__all__ = [
    "CsvSourceAdapter",
    "SourceAdapter",
    "SourceProbe",
]
