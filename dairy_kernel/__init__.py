"""
Dairy Ledger Kernel

A general-ledger balance engine for a dairy cooperative:
- Append-only double-entry voucher postings
- Balances recomputed on demand for any date window
- Cancellation by status flip, correction by reversing voucher
- Priority-ordered recovery of farmer advances
"""

__version__ = "0.1.0"
