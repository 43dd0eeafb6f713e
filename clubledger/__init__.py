"""Membership club back office: payments, receipts and annual fee ledger."""

__version__ = "0.1.0"
