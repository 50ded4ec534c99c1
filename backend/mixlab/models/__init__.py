# backend/mixlab/models/__init__.py
"""
SQLAlchemy models for the MixLab booking backend.

Importing this package registers every table on ``Base.metadata``.
"""

from .reservation import Reservation

__all__ = ["Reservation"]
