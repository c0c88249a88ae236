"""
Stock Kernel

An append-only, identity-based stock ledger with:
- Quantities derived from signed ledger movements (no stored balances)
- Logical identities computed from normalized item attributes
- Identity-scoped locking for issues (no over-issue under concurrency)
- At-most-once reversals via a structured reversal linkage
- Atomic merge imports
"""

__version__ = "0.1.0"
