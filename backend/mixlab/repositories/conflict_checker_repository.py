# backend/mixlab/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the MixLab booking backend.

Reads the reservations that hold studio time on a date. All conflict checking
uses the reservation's own fields (date, start_time, end_time).
"""

from datetime import date
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import HOLDING_PAYMENT_STATUSES, CheckInStatus
from ..core.exceptions import RepositoryException
from ..models.reservation import Reservation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Reservation]):
    """Repository for conflict checking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Reservation)
        self.logger = logging.getLogger(__name__)

    def get_holding_reservations(
        self, check_date: date, exclude_booking_id: Optional[str] = None
    ) -> List[Reservation]:
        """
        Get reservations that occupy studio time on a date.

        A reservation holds its slot while its payment is pending, paid or cash
        and its check-in has not been cancelled.

        Args:
            check_date: The date to check for conflicts
            exclude_booking_id: Optional booking id to leave out (reschedule)

        Returns:
            Holding reservations ordered by start time
        """
        try:
            query = self.db.query(Reservation).filter(
                Reservation.booking_date == check_date,
                Reservation.payment_status.in_(HOLDING_PAYMENT_STATUSES),
                Reservation.check_in_status != CheckInStatus.CANCELLED.value,
            )

            if exclude_booking_id:
                query = query.filter(Reservation.booking_id != exclude_booking_id)

            return query.order_by(Reservation.start_time).all()

        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservations for conflict check: {str(e)}")
            raise RepositoryException(f"Failed to get conflict reservations: {str(e)}")
