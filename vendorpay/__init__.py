"""Vendor whitelist and buy-transaction service."""

__version__ = "0.1.0"
