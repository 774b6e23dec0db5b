"""Unit tests for hold expiry."""

from datetime import datetime, timedelta, timezone

from shuttle.schemas.trip import SeatEntry
from shuttle.services.holds import active_seats, is_active

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def _entry(booking_id: str, expires_in: timedelta | None) -> SeatEntry:
    return SeatEntry(
        booking_id=booking_id,
        name=f"Rider {booking_id}",
        phone="08030000000",
        hold_expires_at=NOW + expires_in if expires_in is not None else None,
    )


def test_paid_seat_never_expires():
    assert is_active(_entry("a", None), NOW + timedelta(days=365))


def test_hold_lapses_at_expiry():
    """A hold is gone from the instant it expires."""
    entry = _entry("a", timedelta(minutes=7))

    assert is_active(entry, NOW)
    assert is_active(entry, NOW + timedelta(minutes=6, seconds=59))
    assert not is_active(entry, NOW + timedelta(minutes=7))


def test_active_seats_preserves_order():
    entries = [
        _entry("a", None),
        _entry("b", timedelta(minutes=-1)),
        _entry("c", timedelta(minutes=5)),
        _entry("d", timedelta(seconds=-30)),
        _entry("e", None),
    ]

    assert [e.booking_id for e in active_seats(entries, NOW)] == ["a", "c", "e"]


def test_seat_entry_document_round_trips_expiry():
    """The stored document keeps the timezone so expiry comparisons stay valid."""
    entry = _entry("a", timedelta(minutes=7))
    restored = SeatEntry.model_validate(entry.to_document())

    assert restored == entry
    assert restored.hold_expires_at.tzinfo is not None
