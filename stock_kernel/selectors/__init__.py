"""Read-only selectors over the stock ledger."""
