"""Tenant portal for paying-guest housing: rent ledger and realtime status sync."""

__version__ = "0.1.0"
