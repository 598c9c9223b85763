"""
commission_ingestion -- bulk import of historical commission rows.

Parses a tabular file, maps its columns to canonical fields, previews the
rows against the user directory and writes valid rows to the commission
ledger as ``historical`` entries.  The calculator is never invoked: the
imported commission amount is authoritative.

Architecture:
    commission_ingestion/ is a top-level package.  Nothing in the kernel's
    domain or services imports from it.
"""
