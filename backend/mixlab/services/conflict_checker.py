# backend/mixlab/services/conflict_checker.py
"""
Conflict Checker Service for the MixLab booking backend.

Handles booking conflict detection against the reservations that currently
hold studio time. Intervals are half-open: a session ending at 12:00 does not
conflict with one starting at 12:00.
"""

from datetime import date, time
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException, ServiceException
from ..core.timeutils import format_hhmm, interval_minutes, intervals_overlap
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts.

    When the reservation store cannot be read the outcome depends on
    ``fail_closed``: True raises ServiceException so the booking is rejected,
    False logs the failure and reports no conflict.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        fail_closed: Optional[bool] = None,
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self.fail_closed = (
            settings.conflict_check_fail_closed if fail_closed is None else fail_closed
        )

    @BaseService.measure_operation("find_conflicts")
    def find_conflicts(
        self,
        check_date: date,
        start_time: time,
        duration_hours: int,
        excluding: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return the holding reservations overlapping the candidate interval.

        Args:
            check_date: The date to check
            start_time: Candidate start time
            duration_hours: Candidate duration in whole hours
            excluding: Optional booking id to leave out of the check

        Returns:
            List of conflicts with booking details
        """
        try:
            reservations = self.repository.get_holding_reservations(check_date, excluding)
        except RepositoryException as exc:
            if self.fail_closed:
                self.logger.error(
                    "Conflict check failed; rejecting booking",
                    extra={"booking_date": check_date.isoformat(), "error": str(exc)},
                )
                raise ServiceException(
                    "Unable to verify slot availability",
                    code="CONFLICT_CHECK_UNAVAILABLE",
                ) from exc
            self.logger.error(
                "Conflict check failed; allowing booking",
                extra={"booking_date": check_date.isoformat(), "error": str(exc)},
            )
            return []

        start_min, end_min = interval_minutes(start_time, duration_hours)
        conflicts = []
        for reservation in reservations:
            other_start, other_end = interval_minutes(
                reservation.start_time, reservation.duration_hours
            )
            if intervals_overlap(start_min, end_min, other_start, other_end):
                conflicts.append(
                    {
                        "booking_id": reservation.booking_id,
                        "start_time": format_hhmm(reservation.start_time),
                        "end_time": format_hhmm(reservation.end_time),
                        "payment_status": reservation.payment_status,
                    }
                )

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} booking conflicts on {check_date} "
                f"for {format_hhmm(start_time)} (+{duration_hours}h)"
            )

        return conflicts

    def has_conflict(
        self,
        check_date: date,
        start_time: time,
        duration_hours: int,
        excluding: Optional[str] = None,
    ) -> bool:
        """Simplified boolean check for quick validation."""
        return bool(self.find_conflicts(check_date, start_time, duration_hours, excluding))
