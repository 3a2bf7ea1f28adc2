"""Ledger services module."""
