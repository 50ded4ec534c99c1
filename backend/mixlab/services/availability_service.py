# backend/mixlab/services/availability_service.py
"""
Availability Service for the MixLab booking backend.

Two views of a studio day:

* ``available_slots``: start times at the configured step (30 minutes by
  default) where a session of the requested length fits before closing and
  overlaps no holding reservation. Recomputed on every call.
* ``hourly_slot_view``: the admin dashboard grid of whole-hour marks, each
  flagged booked when a holding reservation starts exactly on that mark.

The two use different granularity and booked-ness rules and are kept apart.
"""

from datetime import date, time
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import RepositoryException, ServiceException, ValidationException
from ..core.timeutils import (
    MINUTES_PER_HOUR,
    format_hhmm,
    from_minutes,
    interval_minutes,
    intervals_overlap,
    to_minutes,
)
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        open_hour: Optional[int] = None,
        close_hour: Optional[int] = None,
        step_minutes: Optional[int] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self.open_hour = settings.studio_open_hour if open_hour is None else open_hour
        self.close_hour = settings.studio_close_hour if close_hour is None else close_hour
        self.step_minutes = step_minutes or settings.slot_step_minutes

    def _holding_intervals(self, target_date: date) -> List[Tuple[int, int]]:
        try:
            reservations = self.repository.get_holding_reservations(target_date)
        except RepositoryException as exc:
            raise ServiceException("Unable to load reservations for availability") from exc
        return [interval_minutes(r.start_time, r.duration_hours) for r in reservations]

    @BaseService.measure_operation("available_slots")
    def available_slots(self, target_date: date, duration_hours: int) -> List[time]:
        """
        Start times on ``target_date`` that can host ``duration_hours``.

        Returns:
            Ascending list of start times
        """
        if duration_hours < settings.min_booking_hours or duration_hours > settings.max_booking_hours:
            raise ValidationException(
                f"Hours must be between {settings.min_booking_hours} and {settings.max_booking_hours}",
                code="INVALID_DURATION",
            )

        occupied = self._holding_intervals(target_date)
        open_min = self.open_hour * MINUTES_PER_HOUR
        close_min = self.close_hour * MINUTES_PER_HOUR
        length = duration_hours * MINUTES_PER_HOUR

        slots: List[time] = []
        for start in range(open_min, close_min, self.step_minutes):
            end = start + length
            if end > close_min:
                break
            if any(intervals_overlap(start, end, s, e) for s, e in occupied):
                continue
            slots.append(from_minutes(start))

        self.logger.debug(
            f"{len(slots)} slots available on {target_date} for {duration_hours}h sessions"
        )
        return slots

    @BaseService.measure_operation("hourly_slot_view")
    def hourly_slot_view(self, target_date: date) -> List[Dict[str, Any]]:
        """Hourly marks across opening hours with an exact start-time match."""
        try:
            reservations = self.repository.get_holding_reservations(target_date)
        except RepositoryException as exc:
            raise ServiceException("Unable to load reservations for slot view") from exc

        starts: Dict[int, str] = {}
        for reservation in reservations:
            starts.setdefault(to_minutes(reservation.start_time), reservation.booking_id)

        view = []
        for hour in range(self.open_hour, self.close_hour):
            mark = hour * MINUTES_PER_HOUR
            booking_id = starts.get(mark)
            view.append(
                {
                    "time": format_hhmm(from_minutes(mark)),
                    "booked": booking_id is not None,
                    "booking_id": booking_id,
                }
            )
        return view
