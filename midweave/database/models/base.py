"""
Base Classes
------------

Foundational ORM class for the Midweave cache database.

Classes:
    - Base: Declarative base for all SQLAlchemy models
"""
# --- Annotations ---
from __future__ import annotations

# --- Third party ---
from sqlalchemy.orm import DeclarativeBase


# --- Base ORM class ---
class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    Serves as the declarative base for SQLAlchemy models and provides
    access to the metadata object used by create_all().
    """

    pass
