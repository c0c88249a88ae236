"""
Stock ledger operator CLI.

Inspect inventory and history, export the ledger, and post receipts,
issues, reversals and thresholds against the configured store.

Entry point: python -m scripts.cli.main <command> (or python -m scripts.cli)
"""

from scripts.cli.main import main

__all__ = ["main"]
