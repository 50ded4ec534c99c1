# backend/mixlab/repositories/reservation_repository.py
"""
Reservation Repository for the MixLab booking backend.

Lookups by the external booking id and the per-date listings used by the
admin dashboard.
"""

from datetime import date
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.reservation import Reservation
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ReservationRepository(BaseRepository[Reservation]):
    def __init__(self, db: Session):
        super().__init__(db, Reservation)

    def get_by_booking_id(self, booking_id: str, *, for_update: bool = False) -> Optional[Reservation]:
        """
        Fetch a reservation by its ``MIX-...`` booking id.

        ``for_update`` takes a row lock on PostgreSQL so concurrent webhook
        deliveries for the same booking apply their transitions one at a time.
        """
        try:
            query = self.db.query(Reservation).filter(Reservation.booking_id == booking_id)
            if for_update:
                # Reload state that may have changed before the lock was taken
                query = query.populate_existing()
                if self.dialect_name == "postgresql":
                    query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservation {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve reservation: {str(e)}")

    def get_by_invoice_id(self, invoice_id: str) -> Optional[Reservation]:
        return self.find_one_by(provider_invoice_id=invoice_id)

    def list_for_date(self, target_date: date) -> List[Reservation]:
        """All reservations on a date, cancelled ones included, ordered by start time."""
        try:
            return (
                self.db.query(Reservation)
                .filter(Reservation.booking_date == target_date)
                .order_by(Reservation.start_time, Reservation.created_at)
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing reservations for {target_date}: {str(e)}")
            raise RepositoryException(f"Failed to list reservations: {str(e)}")


    def list_admin_bookings(
        self,
        *,
        booking_date: Optional[date] = None,
        service_kind: Optional[str] = None,
        payment_status: Optional[str] = None,
        check_in_status: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[Reservation], int]:
        """
        Filtered page of reservations for the admin dashboard.

        Returns:
            The reservations on the requested page, ordered by date and start
            time, and the total number matching the filters
        """
        try:
            query = self.db.query(Reservation)
            if booking_date is not None:
                query = query.filter(Reservation.booking_date == booking_date)
            if service_kind:
                query = query.filter(Reservation.service_kind == service_kind)
            if payment_status:
                query = query.filter(Reservation.payment_status == payment_status)
            if check_in_status:
                query = query.filter(Reservation.check_in_status == check_in_status)

            total = query.count()
            rows = (
                query.order_by(
                    Reservation.booking_date, Reservation.start_time, Reservation.created_at
                )
                .offset((page - 1) * per_page)
                .limit(per_page)
                .all()
            )
            return rows, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing admin bookings: {str(e)}")
            raise RepositoryException(f"Failed to list reservations: {str(e)}")
