"""Custodial wallet service: key custody, transfers, confirmations and reconciliation."""

__version__ = "0.1.0"
