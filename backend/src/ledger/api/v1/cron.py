"""Scheduled job triggers, authorized by a shared secret."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from ledger.api.deps import get_session_factory, verify_cron_secret
from ledger.schemas.renewal import RenewalResult
from ledger.workers.renewals import process_subscription_renewals

router = APIRouter(prefix="/billing/cron", tags=["Cron"])


@router.post(
    "/renew-subscriptions",
    response_model=RenewalResult,
    dependencies=[Depends(verify_cron_secret)],
)
async def renew_subscriptions(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> RenewalResult:
    """
    Renew every subscription whose billing period has ended.

    Send the cron secret in `X-Cron-Secret` or as a bearer token. Each
    subscription is renewed in its own transaction; failures are listed
    under **skipped** and retried on the next run.
    """
    return await process_subscription_renewals(session_factory)
