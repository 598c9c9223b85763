"""
Calculation basis -- one tagged record per way a ledger amount was derived.

Each ledger entry stores the basis it was computed from in a JSON column.
Instead of one loosely-typed blob, every role has its own frozen record
carrying exactly the fields that role uses, tagged with ``kind`` so it
can be read back into the right type.

    CloserBasis     rate x gross
    SetterBasis     rate x gross
    ReferrerBasis   flat fee on the client's first payment
    CoachBasis      rate x remainder (fee, other commissions, remainder)
    HistoricalBasis amount supplied by a CSV import row
    ManualBasis     amount entered by an operator

Amounts are serialized as strings so the JSON round-trip is exact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar, Union


def _dec(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _str(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class CloserBasis:
    kind: ClassVar[str] = "closer"

    rate: Decimal
    gross_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "rate": str(self.rate),
            "basis": "gross",
            "gross_amount": str(self.gross_amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CloserBasis:
        return cls(rate=Decimal(data["rate"]), gross_amount=Decimal(data["gross_amount"]))


@dataclass(frozen=True)
class SetterBasis:
    kind: ClassVar[str] = "setter"

    rate: Decimal
    gross_amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "rate": str(self.rate),
            "basis": "gross",
            "gross_amount": str(self.gross_amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SetterBasis:
        return cls(rate=Decimal(data["rate"]), gross_amount=Decimal(data["gross_amount"]))


@dataclass(frozen=True)
class ReferrerBasis:
    kind: ClassVar[str] = "referrer"

    flat_fee: Decimal
    reduces_coach_remainder: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "basis": "flat",
            "flat_fee": str(self.flat_fee),
            "first_payment": True,
            "reduces_coach_remainder": self.reduces_coach_remainder,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReferrerBasis:
        return cls(
            flat_fee=Decimal(data["flat_fee"]),
            reduces_coach_remainder=bool(data.get("reduces_coach_remainder", False)),
        )


@dataclass(frozen=True)
class CoachBasis:
    kind: ClassVar[str] = "coach"

    rate: Decimal
    lead_source: str
    stripe_fee: Decimal
    other_commissions: Decimal
    remainder_amount: Decimal
    fee_estimated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "rate": str(self.rate),
            "basis": "remainder",
            "lead_source": self.lead_source,
            "stripe_fee": str(self.stripe_fee),
            "fee_estimated": self.fee_estimated,
            "other_commissions": str(self.other_commissions),
            "remainder_amount": str(self.remainder_amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CoachBasis:
        return cls(
            rate=Decimal(data["rate"]),
            lead_source=data["lead_source"],
            stripe_fee=Decimal(data["stripe_fee"]),
            other_commissions=Decimal(data["other_commissions"]),
            remainder_amount=Decimal(data["remainder_amount"]),
            fee_estimated=bool(data.get("fee_estimated", False)),
        )


@dataclass(frozen=True)
class HistoricalBasis:
    kind: ClassVar[str] = "historical"

    import_id: str
    original_row: int
    original_data: dict[str, str] = field(default_factory=dict)
    gross_amount: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "source": "csv_import",
            "import_id": self.import_id,
            "original_row": self.original_row,
            "original_data": dict(self.original_data),
            "gross_amount": _str(self.gross_amount),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoricalBasis:
        return cls(
            import_id=data["import_id"],
            original_row=int(data["original_row"]),
            original_data=dict(data.get("original_data") or {}),
            gross_amount=_dec(data.get("gross_amount")),
        )


@dataclass(frozen=True)
class ManualBasis:
    kind: ClassVar[str] = "manual"

    category: str
    created_by: str
    rate: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "source": "manual_entry",
            "category": self.category,
            "created_by": self.created_by,
            "rate": _str(self.rate),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManualBasis:
        return cls(
            category=data["category"],
            created_by=data["created_by"],
            rate=_dec(data.get("rate")),
        )


Basis = Union[
    CloserBasis, SetterBasis, ReferrerBasis, CoachBasis, HistoricalBasis, ManualBasis
]

_BASIS_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        CloserBasis,
        SetterBasis,
        ReferrerBasis,
        CoachBasis,
        HistoricalBasis,
        ManualBasis,
    )
}


def basis_from_dict(data: dict[str, Any]) -> Basis:
    """Rebuild a basis record from its stored JSON form.

    Raises:
        ValueError: if ``kind`` is missing or unknown.
    """
    kind = data.get("kind")
    basis_type = _BASIS_TYPES.get(kind)
    if basis_type is None:
        raise ValueError(f"Unknown calculation basis kind: {kind!r}")
    return basis_type.from_dict(data)
