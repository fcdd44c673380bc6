"""
Job-work Voucher Kernel

An append-only event ledger for garment job-work vouchers with:
- Typed dispatch / receive / forward events
- Totals always re-derived from the full event list
- Table-driven lifecycle status derivation
- Financial-year scoped voucher numbering
- Serialized per-voucher read-modify-write
"""

__version__ = "0.1.0"
