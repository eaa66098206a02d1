"""
Cache package initialization.

This module initializes the cache package for Redis-based caching operations.
Provides a clean namespace for cache-related functionality including connection
management, caching utilities, and cache decorators.
"""