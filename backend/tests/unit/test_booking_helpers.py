from datetime import time

import pytest
from sqlalchemy.exc import IntegrityError

from mixlab.core.enums import PaymentMethod
from mixlab.core.exceptions import RepositoryException, ServiceException, ValidationException
from mixlab.services.booking_service import (
    ensure_within_studio_hours,
    is_conflict_error,
    parse_payment_method,
    validate_duration,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("cash", PaymentMethod.CASH),
        ("Card", PaymentMethod.CARD),
        ("credit_card", PaymentMethod.CARD),
        ("gcash", PaymentMethod.WALLET),
        (" wallet ", PaymentMethod.WALLET),
    ],
)
def test_parse_payment_method_aliases(raw, expected):
    assert parse_payment_method(raw) is expected


def test_parse_payment_method_rejects_unknown():
    with pytest.raises(ValidationException) as exc_info:
        parse_payment_method("bitcoin")
    assert exc_info.value.code == "INVALID_PAYMENT_METHOD"


@pytest.mark.parametrize("hours", [0, 9, -1])
def test_validate_duration_bounds(hours):
    with pytest.raises(ValidationException):
        validate_duration(hours)


def test_studio_hours_window():
    assert ensure_within_studio_hours(time(19, 0), 2) == time(21, 0)
    assert ensure_within_studio_hours(time(9, 0), 8) == time(17, 0)

    for start, hours in [(time(8, 30), 1), (time(20, 30), 1), (time(21, 0), 1), (time(14, 0), 8)]:
        with pytest.raises(ValidationException) as exc_info:
            ensure_within_studio_hours(start, hours)
        assert exc_info.value.code == "OUTSIDE_STUDIO_HOURS"


def test_is_conflict_error_walks_cause_chain():
    driver_error = Exception('conflicting key value violates exclusion constraint "reservations_no_overlap"')
    integrity = IntegrityError("INSERT INTO reservations", {}, driver_error)
    repo_error = RepositoryException(f"Integrity constraint violated: {integrity}")
    repo_error.__cause__ = integrity
    wrapped = ServiceException("Database operation failed")
    wrapped.__cause__ = repo_error

    assert is_conflict_error(wrapped)
    assert not is_conflict_error(ServiceException("Database operation failed: disk full"))
