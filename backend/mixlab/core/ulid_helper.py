"""ULID generation helper utilities."""

import ulid

from .constants import BOOKING_ID_PREFIX


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def generate_booking_id() -> str:
    """
    Generate a shareable booking id: ``MIX-<ULID>``.

    The ULID carries a millisecond timestamp followed by 80 random bits, so ids
    sort by creation time and collisions are negligible.
    """
    return f"{BOOKING_ID_PREFIX}-{generate_ulid()}"

