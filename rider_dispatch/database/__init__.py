"""
Database package initialization.

The package follows a modular structure:
- base: declarative base and column mixins
- connection: async engine and session management
- models: SQLAlchemy ORM models for profiles, orders and rider locations
"""

__all__ = []
