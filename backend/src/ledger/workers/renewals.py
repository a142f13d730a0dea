"""Renewal worker for monthly subscription billing.

This worker runs periodically (cron, or the HTTP trigger) to:
1. Find subscriptions whose billing period has ended
2. Issue and apply an invoice for the next period of each
3. Expire subscriptions that were cancelled at period end
4. Email receipts for renewed invoices
"""
import asyncio
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from ledger.database import AsyncSessionLocal
from ledger.schemas.renewal import RenewalResult
from ledger.services.renewal_service import RenewalService

logger = structlog.get_logger(__name__)


async def process_subscription_renewals(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    now: datetime | None = None,
) -> RenewalResult:
    """
    Run one renewal batch.

    Safe to call repeatedly or concurrently: a period that another run
    already advanced is reported as skipped and never billed twice.

    Args:
        session_factory: Session factory (tests pass their own)
        now: Reference time (defaults to the current UTC time)

    Returns:
        RenewalResult with processed, skipped and expired subscriptions
    """
    service = RenewalService(session_factory)
    return await service.run(now)


def main() -> None:
    """Entry point for ``python -m ledger.workers.renewals``."""
    from ledger.middleware.logging import setup_logging

    setup_logging()
    result = asyncio.run(process_subscription_renewals())
    logger.info(
        "renewal_worker_finished",
        processed=len(result.processed),
        skipped=len(result.skipped),
        expired=len(result.expired),
    )


if __name__ == "__main__":
    main()
