from __future__ import annotations

from contextlib import ExitStack, contextmanager
from datetime import date
import logging
import threading
from typing import Dict, Iterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_dialect_name
from ..monitoring.prometheus_metrics import prometheus_metrics
from .exceptions import ServiceException

logger = logging.getLogger(__name__)

_LOCAL_LOCKS: Dict[str, threading.RLock] = {}
_LOCAL_LOCKS_GUARD = threading.Lock()


def _lock_key(booking_date: date) -> str:
    return f"reservations:{booking_date.isoformat()}:mutex"


def _local_lock(key: str) -> threading.RLock:
    with _LOCAL_LOCKS_GUARD:
        lock = _LOCAL_LOCKS.get(key)
        if lock is None:
            lock = _LOCAL_LOCKS[key] = threading.RLock()
        return lock


@contextmanager
def _process_date_lock(booking_date: date) -> Iterator[None]:
    """
    In-process mutex for databases without advisory locks.

    pysqlite defers BEGIN until the first write, so the conflict re-check is a
    plain read and two writers can both pass it. Holding this lock until after
    commit closes that window for every session in the process.
    """
    key = _lock_key(booking_date)
    lock = _local_lock(key)
    lock.acquire()
    prometheus_metrics.record_date_lock("process")
    logger.debug("date_lock_acquired", extra={"lock_key": key})
    try:
        yield
    finally:
        lock.release()


def acquire_date_lock(session: Session, booking_date: date) -> bool:
    """
    Take the transaction-scoped advisory lock for one studio date.

    Released by PostgreSQL on commit or rollback. Returns False on other
    dialects, which are covered by the in-process lock instead.
    """
    if get_dialect_name(session) != "postgresql":
        return False

    key = _lock_key(booking_date)
    try:
        session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
    except SQLAlchemyError as exc:
        session.rollback()
        raise ServiceException("Could not lock booking date", code="DATE_LOCK_FAILED") from exc
    prometheus_metrics.record_date_lock("postgresql")
    logger.debug("date_lock_acquired", extra={"lock_key": key})
    return True


@contextmanager
def date_lock(session: Session, *booking_dates: date) -> Iterator[bool]:
    """
    Serialize reservation writers for the given studio date(s).

    Enter it OUTSIDE the service transaction so the lock outlives the commit:

        with date_lock(self.db, booking_date):
            with self.transaction():
                ...

    Dates are locked in sorted order so a reschedule across two dates cannot
    deadlock against a concurrent reschedule in the opposite direction.
    Yields True when PostgreSQL advisory locks were taken.
    """
    with ExitStack() as stack:
        acquired = False
        for booking_date in sorted(set(booking_dates)):
            if acquire_date_lock(session, booking_date):
                acquired = True
            else:
                stack.enter_context(_process_date_lock(booking_date))
        yield acquired
