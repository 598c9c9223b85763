"""
Field parsers and row validation for commission import rows.

Amounts, dates and roles arrive as free text typed by people into
spreadsheets.  Each parser accepts the common spellings and raises
ValueError for anything else; ``validate_row`` turns those failures into
RowIssue values.  Coach resolution needs the user directory and lives in
the import service.

Architecture: commission_ingestion/domain.  ZERO I/O.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from commission_kernel.db.types import round_money
from commission_kernel.domain.values import SplitRole

from commission_ingestion.domain.types import COACH_FIELDS, CanonicalField, RowIssue

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

NO_COACH_IDENTIFIER = "No coach identifier"
NO_COMMISSION_AMOUNT = "No commission amount"


def parse_amount(text: str | None) -> Decimal | None:
    """
    Parse a money amount.  Blank means absent (None).

    Strips ``$``, thousands separators and whitespace; an amount wrapped in
    parentheses is negative, as spreadsheets print it.
    """
    if text is None:
        return None
    s = text.strip().replace("$", "").replace(",", "").replace(" ", "")
    if not s:
        return None
    negative = s.startswith("(") and s.endswith(")")
    if negative:
        s = s[1:-1]
    try:
        value = Decimal(s)
    except InvalidOperation:
        raise ValueError(f"not a number: {text!r}") from None
    if not value.is_finite():
        raise ValueError(f"not a number: {text!r}")
    return -value if negative else value


def parse_date(text: str | None) -> date | None:
    """Parse ISO date/datetime or a common US/EU date.  Blank means absent."""
    if text is None:
        return None
    s = text.strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognized date: {text!r}")


def parse_role(text: str | None) -> SplitRole:
    """Split role; blank defaults to coach."""
    s = (text or "").strip().lower()
    if not s:
        return SplitRole.COACH
    try:
        return SplitRole(s)
    except ValueError:
        raise ValueError(f"unknown role: {text!r}") from None


@dataclass(frozen=True)
class RowValues:
    """Typed values of one mapped row; None where absent or invalid."""

    commission_amount: Decimal | None
    gross_amount: Decimal | None
    entry_date: date | None
    role: SplitRole


def validate_row(mapped: dict[CanonicalField, str]) -> tuple[RowValues, list[RowIssue]]:
    """Parse the typed fields of a mapped row and collect every issue."""
    issues: list[RowIssue] = []

    if not any(mapped.get(f) for f in COACH_FIELDS):
        issues.append(RowIssue(NO_COACH_IDENTIFIER))

    commission = None
    raw_commission = mapped.get(CanonicalField.COMMISSION_AMOUNT)
    try:
        commission = parse_amount(raw_commission)
    except ValueError:
        issues.append(
            RowIssue(f"Invalid commission amount: {raw_commission}", CanonicalField.COMMISSION_AMOUNT)
        )
    else:
        if commission is None:
            issues.append(RowIssue(NO_COMMISSION_AMOUNT, CanonicalField.COMMISSION_AMOUNT))

    gross = None
    raw_gross = mapped.get(CanonicalField.GROSS_AMOUNT)
    try:
        gross = parse_amount(raw_gross)
    except ValueError:
        issues.append(RowIssue(f"Invalid gross amount: {raw_gross}", CanonicalField.GROSS_AMOUNT))

    entry_date = None
    raw_date = mapped.get(CanonicalField.DATE)
    try:
        entry_date = parse_date(raw_date)
    except ValueError:
        issues.append(RowIssue(f"Invalid date: {raw_date}", CanonicalField.DATE))

    role = SplitRole.COACH
    raw_role = mapped.get(CanonicalField.ROLE)
    try:
        role = parse_role(raw_role)
    except ValueError:
        issues.append(RowIssue(f"Invalid role: {raw_role}", CanonicalField.ROLE))

    return RowValues(commission, gross, entry_date, role), issues


def row_fingerprint(
    coach_id: str,
    values: RowValues,
    mapped: dict[CanonicalField, str],
) -> str:
    """
    SHA-256 over the canonical form of a row.

    Two rows with the same coach, amounts, date, role, client and notes get
    the same fingerprint regardless of column order, header spelling or
    amount formatting.
    """
    canonical = {
        "coach": coach_id,
        "commission": str(round_money(values.commission_amount)) if values.commission_amount is not None else None,
        "gross": str(round_money(values.gross_amount)) if values.gross_amount is not None else None,
        "date": values.entry_date.isoformat() if values.entry_date else None,
        "role": values.role.value,
        "client_email": (mapped.get(CanonicalField.CLIENT_EMAIL) or "").lower() or None,
        "client_name": " ".join((mapped.get(CanonicalField.CLIENT_NAME) or "").split()).lower() or None,
        "notes": mapped.get(CanonicalField.NOTES) or None,
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
