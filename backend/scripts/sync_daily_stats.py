#!/usr/bin/env python3
"""
Daily Stats Sync - Recompute daily revenue statistics from orders.

Usage:
    python scripts/sync_daily_stats.py                      # today (local timezone)
    python scripts/sync_daily_stats.py --date 2026-01-25
    python scripts/sync_daily_stats.py --from 2026-01-01 --to 2026-01-31

Safe to re-run: each date is rebuilt from its orders and overwritten.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from florist_ledger import models  # noqa: F401
from florist_ledger.core.config import settings
from florist_ledger.core.exceptions import LedgerError
from florist_ledger.db.base import Base
from florist_ledger.db.session import SessionLocal, engine, is_sqlite
from florist_ledger.services.revenue_reconciliation_service import RevenueReconciliationService

logger = logging.getLogger("sync_daily_stats")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Recompute daily revenue statistics")
    parser.add_argument("--date", help="Single date to reconcile (YYYY-MM-DD)")
    parser.add_argument("--from", dest="date_from", help="First date of a range (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", help="Last date of a range (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    if args.date and (args.date_from or args.date_to):
        parser.error("--date cannot be combined with --from/--to")
    if bool(args.date_from) != bool(args.date_to):
        parser.error("--from and --to must be given together")
    return args


def main(argv=None, session_factory=None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args(argv)

    if session_factory is None:
        session_factory = SessionLocal
        if is_sqlite(settings.database_url):
            Base.metadata.create_all(bind=engine)

    db = session_factory()
    try:
        service = RevenueReconciliationService(db)
        if args.date_from:
            stats = service.reconcile_range(args.date_from, args.date_to)
        else:
            day = args.date or datetime.now(settings.tzinfo).date().isoformat()
            stats = [service.reconcile(day)]
        # Rows expire on each commit; read them while the session is open
        stats = [stat.figures() for stat in stats]
    except LedgerError as e:
        logger.error(f"Sync failed: {e}")
        return 1
    finally:
        db.close()

    for stat in stats:
        print(f"{stat['date']}: revenue {stat['total_revenue']}, settled {stat['total_settled_amount']}, "
              f"orders {stat['total_order_count']}")
        for branch in stat["branches"].values():
            print(f"  [{branch['branch_name']}] revenue {branch['revenue']}, "
                  f"settled {branch['settled_amount']}, orders {branch['order_count']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
