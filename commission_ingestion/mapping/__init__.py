"""Column mapping for commission import (pure, no I/O)."""

from commission_ingestion.mapping.engine import (
    apply_mapping,
    auto_map,
    detect_field,
    ensure_previewable,
    missing_required,
)

__all__ = [
    "apply_mapping",
    "auto_map",
    "detect_field",
    "ensure_previewable",
    "missing_required",
]
