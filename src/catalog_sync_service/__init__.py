"""Supplier catalog reconciliation and remote catalog sync service."""

__version__ = "1.0.0"
