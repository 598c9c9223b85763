"""
Policy loader (``commission_config.loader``).

Responsibility
--------------
Loads a YAML policy file and parses it into a frozen
``CommissionPolicy``.  Runtime callers go through
``commission_config.get_active_policy()``; this module is the tooling
underneath it and is used directly by tests.

Invariants enforced
-------------------
* Rates and amounts are parsed with ``Decimal(str(value))``; floats never
  reach the policy.
* ``compute_checksum`` is deterministic for a given parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values  -> ``InvalidPolicyError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from commission_kernel.db.types import InvalidCurrencyError, validate_currency
from commission_kernel.domain.policy import CommissionPolicy
from commission_kernel.domain.values import FeeMode, LeadSource
from commission_kernel.exceptions import InvalidPolicyError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidPolicyError(field, f"expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidPolicyError(field, f"expected a number, got {value!r}") from None


def parse_policy(data: dict[str, Any]) -> CommissionPolicy:
    """
    Build a CommissionPolicy from a parsed YAML document.

    Sections that are absent fall back to the CommissionPolicy defaults;
    values that are present must be valid.
    """
    if not isinstance(data, dict):
        raise InvalidPolicyError("<root>", "policy document must be a mapping")

    kwargs: dict[str, Any] = {}
    if "name" in data:
        kwargs["name"] = str(data["name"])
    if "version" in data:
        kwargs["version"] = int(data["version"])
    if "currency" in data:
        try:
            kwargs["currency"] = validate_currency(str(data["currency"]))
        except InvalidCurrencyError as exc:
            raise InvalidPolicyError("currency", str(exc)) from None
    if "timezone" in data:
        kwargs["timezone"] = str(data["timezone"])

    periods = data.get("periods") or {}
    if "anchor" in periods:
        try:
            kwargs["period_anchor"] = parse_date(periods["anchor"])
        except ValueError as exc:
            raise InvalidPolicyError("periods.anchor", str(exc)) from None
    if "length_days" in periods:
        kwargs["period_length_days"] = int(periods["length_days"])
    if "payout_lag_days" in periods:
        kwargs["payout_lag_days"] = int(periods["payout_lag_days"])

    splits = data.get("splits") or {}
    for key in ("closer_rate", "setter_rate", "referrer_flat_fee"):
        if key in splits:
            kwargs[key] = parse_decimal(f"splits.{key}", splits[key])
    if "referrer_reduces_remainder" in splits:
        kwargs["referrer_reduces_remainder"] = bool(splits["referrer_reduces_remainder"])
    if "coach_rates" in splits:
        rates: dict[LeadSource, Decimal] = {}
        for source, rate in (splits["coach_rates"] or {}).items():
            try:
                lead_source = LeadSource(source)
            except ValueError:
                raise InvalidPolicyError(
                    "splits.coach_rates", f"unknown lead source {source!r}"
                ) from None
            rates[lead_source] = parse_decimal(f"splits.coach_rates.{source}", rate)
        kwargs["coach_rates"] = rates

    fees = data.get("fees") or {}
    if "mode" in fees:
        try:
            kwargs["fee_mode"] = FeeMode(fees["mode"])
        except ValueError:
            raise InvalidPolicyError("fees.mode", f"unknown fee mode {fees['mode']!r}") from None
    if "estimate_percent" in fees:
        kwargs["fee_estimate_percent"] = parse_decimal("fees.estimate_percent", fees["estimate_percent"])
    if "estimate_fixed" in fees:
        kwargs["fee_estimate_fixed"] = parse_decimal("fees.estimate_fixed", fees["estimate_fixed"])

    return CommissionPolicy(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_policy(path: Path) -> tuple[CommissionPolicy, str]:
    """Load ``path`` and return the policy with the checksum of its source."""
    data = load_yaml_file(path)
    return parse_policy(data), compute_checksum(data)
