"""Logistics brokerage backend: orders, dispatch, charges and settlement."""

__version__ = "1.0.0"
