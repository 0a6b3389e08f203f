"""Scheduled monthly interest accrual job"""

import argparse
import logging
import sys
from datetime import datetime
from typing import List, Optional

from coop_ledger.config import settings
from coop_ledger.infrastructure.database.session import SessionLocal, init_db
from coop_ledger.infrastructure.observability.logging import setup_logging
from coop_ledger.services.accrual import InterestAccrualEngine
from coop_ledger.utils.date_utils import utcnow


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Post monthly interest charges for all open loans")
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="Accrue through this date (ISO format, default: now, UTC)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.accrual_max_workers,
        help="Members processed in parallel",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one accrual pass; exit status 1 when any member was skipped or failed"""
    setup_logging(settings.log_level)
    args = parse_args(argv)

    init_db()
    engine = InterestAccrualEngine(session_factory=SessionLocal, max_workers=args.workers)
    report = engine.run(as_of=args.as_of or utcnow())

    for fault in report.faults:
        logging.error("Operator attention required", extra={"step": "accrual", "detail": fault})
    for failure in report.failures:
        logging.error("Member accrual failed", extra={"step": "accrual", "detail": failure})

    return 1 if report.faults or report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
