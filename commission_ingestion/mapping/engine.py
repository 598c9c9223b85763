"""
Mapping engine: header auto-detection and raw row -> canonical field mapping.

Pure transformation.  ZERO I/O.
"""

from __future__ import annotations

from typing import Callable, Iterable

from commission_kernel.exceptions import MappingIncompleteError

from commission_ingestion.domain.types import COACH_FIELDS, CanonicalField, ColumnMapping


def _has(*words: str) -> Callable[[str], bool]:
    return lambda h: all(w in h for w in words)


def _any(*words: str) -> Callable[[str], bool]:
    return lambda h: any(w in h for w in words)


# Checked in order; a header matches the first rule that fits.
_HEURISTICS: tuple[tuple[CanonicalField, Callable[[str], bool]], ...] = (
    (CanonicalField.COACH_EMAIL, _has("coach", "email")),
    (CanonicalField.COACH_NAME, lambda h: "coach" in h and ("name" in h or h == "coach")),
    (CanonicalField.CLIENT_EMAIL, _has("client", "email")),
    (CanonicalField.CLIENT_NAME, lambda h: "client" in h and ("name" in h or h == "client")),
    (CanonicalField.DATE, _any("date", "time")),
    (CanonicalField.GROSS_AMOUNT, _any("gross", "total", "sale")),
    (CanonicalField.COMMISSION_AMOUNT, _any("commission", "payout", "earned")),
    (CanonicalField.NOTES, _any("note", "comment")),
    (CanonicalField.ROLE, lambda h: h == "role" or "type" in h),
    (CanonicalField.LEAD_SOURCE, _any("source", "lead")),
)


def detect_field(header: str) -> CanonicalField | None:
    """The canonical field a header name suggests, if any."""
    lower = header.strip().lower()
    for target, matches in _HEURISTICS:
        if matches(lower):
            return target
    return None


def auto_map(headers: Iterable[str]) -> ColumnMapping:
    """
    Suggest a mapping from header names.

    Each header is assigned to at most one field; when several headers
    suggest the same field, the first one wins.
    """
    columns: dict[CanonicalField, str] = {}
    for header in headers:
        target = detect_field(header)
        if target is not None and target not in columns:
            columns[target] = header
    return ColumnMapping(columns=columns)


def missing_required(mapping: ColumnMapping) -> list[str]:
    missing = []
    if not any(mapping.is_mapped(f) for f in COACH_FIELDS):
        missing.append("coach_email or coach_name")
    if not mapping.is_mapped(CanonicalField.COMMISSION_AMOUNT):
        missing.append(CanonicalField.COMMISSION_AMOUNT.value)
    return missing


def ensure_previewable(mapping: ColumnMapping) -> None:
    """
    Raises:
        MappingIncompleteError: no coach identifier or no commission amount mapped.
    """
    missing = missing_required(mapping)
    if missing:
        raise MappingIncompleteError(missing)


def apply_mapping(values: dict[str, str], mapping: ColumnMapping) -> dict[CanonicalField, str]:
    """Pick mapped columns out of a raw row.  Blank cells are left out."""
    mapped: dict[CanonicalField, str] = {}
    for target, header in mapping.columns.items():
        raw = values.get(header)
        if raw is None:
            continue
        cleaned = raw.strip()
        if cleaned:
            mapped[target] = cleaned
    return mapped
