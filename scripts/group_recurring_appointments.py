#!/usr/bin/env python3
"""Back-fill recurrence group ids for appointments that form repeating series"""
import argparse
import sys
from datetime import date, datetime, time, timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from barbershop import create_app
from barbershop.errors import PartialUpdateError
from barbershop.recurrence import RecurrenceGrouper
from barbershop.store import AppointmentStore


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--since",
        type=date.fromisoformat,
        help="only consider appointments on or after this date (YYYY-MM-DD); "
             "defaults to RECURRENCE_BACKFILL_LOOKBACK_DAYS before today",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="report the series that would be grouped without writing anything",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        config = app.config
        since_day = args.since or date.today() - timedelta(days=config["RECURRENCE_BACKFILL_LOOKBACK_DAYS"])
        since = datetime.combine(since_day, time.min)

        store = AppointmentStore()
        grouper = RecurrenceGrouper(
            store,
            min_members=config["RECURRENCE_MIN_MEMBERS"],
            tolerance_days=config["RECURRENCE_GAP_TOLERANCE_DAYS"],
        )

        if args.dry_run:
            series = grouper.find_series(store.fetch_ungrouped(since))
            for members in series:
                first = members[0]
                print(f"client {first.client_id} / barber {first.barber_id}: "
                      f"{len(members)} appointments from {first.appointment_datetime:%Y-%m-%d %H:%M}")
            print(f"{len(series)} series found, nothing written")
            return 0

        try:
            result = grouper.run(since=since)
        except PartialUpdateError as exc:
            print(f"❌ {exc.message}: {exc.groups_created} groups written, "
                  f"{len(exc.pending_ids)} appointments still ungrouped", file=sys.stderr)
            return 1

        print(f"✅ Grouped {result.grouped} appointments into {result.groups_created} series")
        return 0


if __name__ == "__main__":
    sys.exit(main())
