"""Cleanup sweep: drops lapsed holds and deleted riders from trips."""

from collections.abc import Iterable
from functools import partial
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import TransactionRunner
from ..core.observability import get_logger, metrics_collector
from ..models.trip import Trip
from .holds import Clock, active_seats, utc_now
from .route_capacity import route_date_of_trip

logger = get_logger(__name__)


class CleanupSweep:
    """
    Idempotent maintenance pass over vehicle instances.

    Each trip is rewritten in its own transaction and only when entries
    were actually removed. It only ever removes seats that are already
    dead, so running it alongside assignment is safe.
    """

    def __init__(self, runner: TransactionRunner, clock: Clock = utc_now):
        self.runner = runner
        self.clock = clock

    async def cleanup(
        self,
        deleted_booking_ids: Iterable[str] = (),
        trip_ids: Optional[Iterable[str]] = None,
    ) -> int:
        """
        Remove expired holds and the given bookings' seats.

        Args:
            deleted_booking_ids: Bookings whose seats must go regardless of hold state
            trip_ids: Restrict the pass to these trips; every trip when omitted

        Returns:
            Number of trips whose seat list changed
        """
        deleted = frozenset(deleted_booking_ids)
        if trip_ids is None:
            targets = await self.runner.run(self._all_trip_ids, description="cleanup scan")
        else:
            targets = sorted(set(trip_ids))

        modified = 0
        for trip_id in targets:
            changed = await self.runner.run(
                partial(self._clean_trip, trip_id=trip_id, deleted=deleted),
                lock_key=route_date_of_trip(trip_id),
                description="trip cleanup",
            )
            if changed:
                modified += 1

        logger.info(
            "Cleanup pass finished",
            trips_scanned=len(targets),
            trips_modified=modified,
            deleted_bookings=len(deleted),
        )
        return modified

    async def _all_trip_ids(self, session: AsyncSession) -> list[str]:
        result = await session.execute(select(Trip.id).order_by(Trip.id))
        return list(result.scalars().all())

    async def _clean_trip(self, session: AsyncSession, trip_id: str, deleted: frozenset[str]) -> bool:
        trip = await session.get(Trip, trip_id)
        if trip is None:
            return False

        entries = trip.seat_entries
        active = active_seats(entries, self.clock())
        kept = [entry for entry in active if entry.booking_id not in deleted]
        if len(kept) == len(entries):
            return False

        trip.replace_seats(kept, len(kept))
        metrics_collector.record_holds_reclaimed(
            expired=len(entries) - len(active),
            deleted=len(active) - len(kept),
        )
        return True
