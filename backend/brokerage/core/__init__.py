"""
Core package for shared utilities.

Configuration, structured logging, error kinds and token handling used
across the brokerage backend.
"""
