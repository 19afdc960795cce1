"""Persistence — tracked state and the audit ledger."""
