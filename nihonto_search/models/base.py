"""
SQLAlchemy 2.0 async DeclarativeBase for Nihonto Search.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all Nihonto Search database models."""
    pass
