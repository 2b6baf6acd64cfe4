"""Ledger administration CLI."""
