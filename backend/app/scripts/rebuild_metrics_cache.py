"""CLI utility to recompute daily metric buckets for a range of days."""

from __future__ import annotations

import argparse
import logging
from datetime import date, timedelta
from typing import Optional

from ..database import session_scope
from ..services.day_windows import iter_days, today
from ..services.metrics_cache import MetricsCacheService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Refresh cached worker, station and factory buckets from the raw event log."
    )
    parser.add_argument(
        "--start",
        type=date.fromisoformat,
        help="First day to rebuild, YYYY-MM-DD (default: same as --end)",
    )
    parser.add_argument(
        "--end",
        type=date.fromisoformat,
        help="Last day to rebuild, YYYY-MM-DD (default: yesterday)",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Also delete buckets older than the retention window.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-day results.")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    end = args.end or today() - timedelta(days=1)
    start = args.start or end
    if start > end:
        LOGGER.error("--start (%s) must not be after --end (%s)", start, end)
        return 2

    written = 0
    with session_scope() as db:
        for day in iter_days(start, end):
            count = MetricsCacheService.refresh_day(db, day)
            LOGGER.debug("%s: %s buckets", day.isoformat(), count)
            written += count
        purged = MetricsCacheService.purge_expired(db) if args.purge else 0

    LOGGER.info(
        "Rebuilt %s buckets for %s to %s; purged %s", written, start.isoformat(), end.isoformat(), purged
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
