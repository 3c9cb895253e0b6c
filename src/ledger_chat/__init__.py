"""Ledger Chat: retrieval-augmented assistant over a business's own records."""

__version__ = "0.1.0"
