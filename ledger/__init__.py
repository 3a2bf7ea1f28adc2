"""Bridge to the income/expense ledger."""
