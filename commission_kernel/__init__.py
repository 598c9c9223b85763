"""
Commission Kernel

Turns payments into commission-ledger entries with:
- A pure fee and split waterfall (closer / setter / referrer / coach)
- Idempotent ledger upserts keyed on (payment, role)
- Biweekly payout-period bucketing
- Orphan-payment reconciliation
- A manual adjustment ledger
"""

__version__ = "0.1.0"
