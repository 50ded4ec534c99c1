"""Data access layer for reservations."""

from .base_repository import BaseRepository
from .conflict_checker_repository import ConflictCheckerRepository
from .factory import RepositoryFactory
from .reservation_repository import ReservationRepository

__all__ = [
    "BaseRepository",
    "ConflictCheckerRepository",
    "RepositoryFactory",
    "ReservationRepository",
]
