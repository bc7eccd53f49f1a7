"""Periodic vendor settlement.

Creates one pending payout batch per vendor for items delivered in the
period. Defaults to the previous ``--days`` days ending now.

    python -m marketplace.settlement_job --days 7
    python -m marketplace.settlement_job --from 2026-01-01 --to 2026-01-31T23:59:59
"""

import argparse
from datetime import datetime, timedelta
from typing import Optional, Sequence

from marketplace.core_settings import get_settings
from marketplace.domain.models import utcnow
from marketplace.infrastructure.db import SessionLocal
from marketplace.application.settlement import SettlementService
from shared.core import setup_logging, get_logger

logger = get_logger(__name__)

def parse_period(argv: Optional[Sequence[str]] = None) -> tuple[datetime, datetime]:
    parser = argparse.ArgumentParser(description="Create vendor settlement batches")
    parser.add_argument("--from", dest="period_from", type=datetime.fromisoformat)
    parser.add_argument("--to", dest="period_to", type=datetime.fromisoformat)
    parser.add_argument("--days", type=int, default=7)
    args = parser.parse_args(argv)

    period_to = args.period_to or utcnow()
    period_from = args.period_from or (period_to - timedelta(days=args.days))
    if period_from > period_to:
        parser.error("--from must not be after --to")
    return period_from, period_to

def run(period_from: datetime, period_to: datetime, session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        batches = SettlementService(db).settle_period(period_from, period_to)
    finally:
        db.close()
    logger.info(
        f"Settlement run created {len(batches)} batch(es)",
        extra={'extra_fields': {
            'period_from': period_from.isoformat(),
            'period_to': period_to.isoformat(),
            'batches': [b.id for b in batches],
        }}
    )
    return len(batches)

def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = get_settings()
    setup_logging(
        service_name="marketplace-settlement",
        level=settings.LOG_LEVEL,
        version=settings.SERVICE_VERSION,
        environment=settings.ENVIRONMENT,
    )
    period_from, period_to = parse_period(argv)
    run(period_from, period_to)

if __name__ == "__main__":
    main()
