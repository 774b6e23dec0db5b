"""Command-line entry point for cron-driven sweeps and database setup."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select

from .core.config import settings
from .core.database import TransactionRunner, close_db, init_db
from .core.observability import get_logger, setup_structured_logging
from .models.price_rule import PriceRule
from .services.cleanup import CleanupSweep
from .services.notifications import build_notifier
from .services.reschedule import RescheduleSweep
from .services.route_capacity import price_rule_id
from .services.trip_assignment import TripAssignmentService

logger = get_logger(__name__)

SAMPLE_ROUTES = [
    ("Abeokuta", "Ibadan", "4-Seater Sienna", 8000, 2),
    ("Abeokuta", "Lagos", "5-Seater Sienna", 10000, 2),
    ("Ibadan", "Lagos", "7-Seater Bus", 7500, 3),
]


async def run_reschedule(today: Optional[date]) -> dict:
    runner = TransactionRunner()
    notifier = build_notifier()
    assignment = TripAssignmentService(runner, notifier)
    report = await RescheduleSweep(runner, assignment, notifier).run(today)
    return report.model_dump(mode="json")


async def run_cleanup(booking_ids: Sequence[str]) -> dict:
    modified = await CleanupSweep(TransactionRunner()).cleanup(booking_ids)
    return {"trips_modified": modified}


async def seed_sample_routes() -> dict:
    """Insert the sample route rules that are not present yet."""

    async def seed(session) -> int:
        existing = set((await session.execute(select(PriceRule.id))).scalars().all())
        created = 0
        for pickup, destination, vehicle_type, fare, vehicle_count in SAMPLE_ROUTES:
            rule_id = price_rule_id(pickup, destination, vehicle_type)
            if rule_id in existing:
                continue
            session.add(PriceRule(
                id=rule_id,
                pickup=pickup,
                destination=destination,
                vehicle_type=vehicle_type,
                fare=fare,
                vehicle_count=vehicle_count,
            ))
            created += 1
        return created

    created = await TransactionRunner().run(seed, description="sample route seed")
    return {"price_rules_created": created}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shuttle-sweep", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    reschedule = commands.add_parser("reschedule", help="Move riders off yesterday's under-filled trips")
    reschedule.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Date to move riders to (YYYY-MM-DD); the service-timezone date by default",
    )

    cleanup = commands.add_parser("cleanup", help="Drop expired holds and deleted bookings from trips")
    cleanup.add_argument(
        "--booking-id",
        dest="booking_ids",
        action="append",
        default=[],
        help="Booking whose seat must be dropped; may be repeated",
    )

    init = commands.add_parser("init-db", help="Create tables")
    init.add_argument("--sample-data", action="store_true", help="Also insert sample route rules")

    return parser


async def _run(args: argparse.Namespace) -> dict:
    await init_db()
    try:
        if args.command == "reschedule":
            return await run_reschedule(args.today)
        if args.command == "cleanup":
            return await run_cleanup(args.booking_ids)
        result = {"tables": "created"}
        if args.sample_data:
            result.update(await seed_sample_routes())
        return result
    finally:
        await close_db()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_structured_logging()
    logging.basicConfig(level=getattr(logging, settings.log_level))

    try:
        result = asyncio.run(_run(args))
    except Exception as e:
        logger.error("Sweep run failed", command=args.command, error=str(e))
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
