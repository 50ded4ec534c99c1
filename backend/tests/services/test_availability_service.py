from datetime import date, time
from unittest.mock import Mock

import pytest

from mixlab.core.exceptions import RepositoryException, ServiceException, ValidationException
from mixlab.services.availability_service import AvailabilityService

BOOKING_DATE = date(2030, 5, 17)


class TestAvailableSlots:
    def test_empty_day_has_every_half_hour_that_fits(self, db):
        slots = AvailabilityService(db).available_slots(BOOKING_DATE, 1)

        assert slots[0] == time(9, 0)
        assert slots[-1] == time(20, 0)
        # 09:00 through 20:00 inclusive at 30-minute steps
        assert len(slots) == 23
        assert slots == sorted(slots)

    def test_booked_hour_removes_overlapping_starts(self, db, make_reservation):
        make_reservation(time(10, 0), hours=1)

        slots = AvailabilityService(db).available_slots(BOOKING_DATE, 1)

        for present in (time(9, 0), time(11, 0), time(20, 0)):
            assert present in slots
        for absent in (time(9, 30), time(10, 0), time(10, 30), time(20, 30)):
            assert absent not in slots

    def test_long_sessions_must_end_by_closing(self, db):
        slots = AvailabilityService(db).available_slots(BOOKING_DATE, 8)
        assert slots[-1] == time(13, 0)

    def test_cancelled_reservations_free_the_slot(self, db, make_reservation):
        make_reservation(time(10, 0), hours=1, check_in_status="cancelled")
        assert time(10, 0) in AvailabilityService(db).available_slots(BOOKING_DATE, 1)

    def test_configurable_window_and_step(self, db):
        service = AvailabilityService(db, open_hour=12, close_hour=14, step_minutes=60)
        assert service.available_slots(BOOKING_DATE, 1) == [time(12, 0), time(13, 0)]

    @pytest.mark.parametrize("hours", [0, 9])
    def test_invalid_duration(self, db, hours):
        with pytest.raises(ValidationException):
            AvailabilityService(db).available_slots(BOOKING_DATE, hours)

    def test_storage_failure_surfaces(self, db):
        repository = Mock()
        repository.get_holding_reservations.side_effect = RepositoryException("down")
        with pytest.raises(ServiceException):
            AvailabilityService(db, repository=repository).available_slots(BOOKING_DATE, 1)


class TestHourlySlotView:
    def test_marks_exact_start_matches_only(self, db, make_reservation):
        make_reservation(time(10, 0), hours=2, booking_id="MIX-TEN")
        make_reservation(time(13, 30), hours=1, booking_id="MIX-HALF")

        view = AvailabilityService(db).hourly_slot_view(BOOKING_DATE)

        by_time = {slot["time"]: slot for slot in view}
        assert len(view) == 12
        assert by_time["10:00"] == {"time": "10:00", "booked": True, "booking_id": "MIX-TEN"}
        # covered by the 10:00 session but not a start mark
        assert by_time["11:00"]["booked"] is False
        # half-hour starts never land on an hourly mark
        assert by_time["13:00"]["booked"] is False
        assert by_time["14:00"]["booked"] is False
