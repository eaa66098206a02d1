"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and model mixins
- connection: async engine and session management
- models: SQLAlchemy ORM models for the brokerage domain
"""

# Import submodules explicitly when needed to avoid circular dependencies

__all__ = []
