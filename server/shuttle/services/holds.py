"""Hold expiry rules shared by assignment, availability and cleanup."""

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from ..schemas.trip import SeatEntry

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_active(entry: SeatEntry, now: datetime) -> bool:
    """A seat is occupied unless its hold has lapsed."""
    return entry.hold_expires_at is None or entry.hold_expires_at > now


def active_seats(entries: Iterable[SeatEntry], now: datetime) -> list[SeatEntry]:
    """Return the entries still occupying a seat at ``now``, order preserved."""
    return [entry for entry in entries if is_active(entry, now)]
