"""Integration tests for the renewal scheduler and its cron trigger."""
import asyncio
from datetime import datetime
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.config import settings
from ledger.models.invoice import Invoice, InvoiceStatus
from ledger.models.plan import Plan
from ledger.models.subscription import Subscription, SubscriptionHistory, SubscriptionStatus
from ledger.services.balance_service import BalanceService
from ledger.services.invoice_service import InvoiceService
from ledger.services.plan_service import PlanService
from ledger.services.renewal_service import PLAN_MISSING, RenewalService
from ledger.workers.renewals import process_subscription_renewals

RUN_AT = datetime(2025, 1, 20, 6, 0)


async def _subscription(
    db_session: AsyncSession,
    make_profile,
    plan: Plan,
    period_end: datetime = datetime(2025, 1, 15),
    balance: int = 0,
    **fields,
) -> Subscription:
    profile = await make_profile(balance=balance, email="renew@example.com")
    subscription = Subscription(
        user_id=profile.id,
        plan_id=plan.id,
        status=fields.pop("status", SubscriptionStatus.ACTIVE),
        current_period_start=datetime(2024, 12, 15),
        current_period_end=period_end,
        **fields,
    )
    db_session.add(subscription)
    await db_session.commit()
    return subscription


async def _reload(session_factory: async_sessionmaker, subscription_id: UUID) -> Subscription:
    async with session_factory() as session:
        return await session.get(Subscription, subscription_id)


async def _balance(session_factory: async_sessionmaker, user_id: UUID) -> int:
    async with session_factory() as session:
        return await BalanceService(session).get_balance(user_id)


@pytest.mark.asyncio
async def test_renewal_is_anchored_to_previous_period_end(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test a late run bills the period that follows the old end, not the run time."""
    subscription = await _subscription(db_session, make_profile, test_plan, balance=10)

    result = await RenewalService(session_factory).run(now=RUN_AT)

    assert [item.subscription_id for item in result.processed] == [subscription.id]
    assert result.skipped == []

    renewed = await _reload(session_factory, subscription.id)
    assert renewed.current_period_start == datetime(2025, 1, 15)
    assert renewed.current_period_end == datetime(2025, 2, 15)
    assert renewed.status == SubscriptionStatus.ACTIVE
    assert renewed.last_invoice_id == result.processed[0].invoice_id

    async with session_factory() as session:
        invoice = await InvoiceService(session).get_invoice(result.processed[0].invoice_id)
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.period_start == datetime(2025, 1, 15)
    assert invoice.period_end == datetime(2025, 2, 15)
    assert invoice.items[0].description == "Creator subscription (Jan 15, 2025 - Feb 15, 2025)"

    assert await _balance(session_factory, subscription.user_id) == 410


@pytest.mark.asyncio
async def test_second_run_finds_nothing_due(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test a renewed subscription is not billed again in the same period."""
    subscription = await _subscription(db_session, make_profile, test_plan)
    service = RenewalService(session_factory)

    await service.run(now=RUN_AT)
    again = await service.run(now=RUN_AT)

    assert again.processed == []
    assert again.skipped == []
    assert await _balance(session_factory, subscription.user_id) == 400


@pytest.mark.asyncio
async def test_overlapping_runs_bill_once(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test two concurrent runs renew a subscription exactly once."""
    subscription = await _subscription(db_session, make_profile, test_plan)

    first, second = await asyncio.gather(
        RenewalService(session_factory).run(now=RUN_AT),
        RenewalService(session_factory).run(now=RUN_AT),
    )

    assert len(first.processed) + len(second.processed) == 1
    assert await _balance(session_factory, subscription.user_id) == 400
    async with session_factory() as session:
        count = await session.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.subscription_id == subscription.id)
        )
    assert count == 1


@pytest.mark.asyncio
async def test_renewal_uses_current_plan_price(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan, test_plan_premium
) -> None:
    """Test a plan change made during the period is billed at renewal."""
    subscription = await _subscription(db_session, make_profile, test_plan)
    subscription.plan_id = test_plan_premium.id
    await db_session.commit()

    result = await RenewalService(session_factory).run(now=RUN_AT)

    async with session_factory() as session:
        invoice = await InvoiceService(session).get_invoice(result.processed[0].invoice_id)
    assert invoice.amount_cents == 4900
    assert invoice.plan_snapshot["name"] == "Studio"
    assert await _balance(session_factory, subscription.user_id) == 1200


@pytest.mark.asyncio
async def test_inactive_plan_still_renews(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test retiring a plan does not stop existing subscribers from renewing."""
    subscription = await _subscription(db_session, make_profile, test_plan)
    test_plan.active = False
    await db_session.commit()

    result = await RenewalService(session_factory).run(now=RUN_AT)

    assert [item.subscription_id for item in result.processed] == [subscription.id]


@pytest.mark.asyncio
async def test_missing_plan_is_skipped_without_stopping_batch(
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    make_profile,
    test_plan,
    test_plan_premium,
    monkeypatch,
) -> None:
    """Test one unrenewable subscription is reported and the rest still renew."""
    first = await _subscription(db_session, make_profile, test_plan, period_end=datetime(2025, 1, 10))
    orphaned = await _subscription(db_session, make_profile, test_plan_premium, period_end=datetime(2025, 1, 12))
    last = await _subscription(db_session, make_profile, test_plan, period_end=datetime(2025, 1, 14))
    missing_plan_id = test_plan_premium.id

    original_get_plan = PlanService.get_plan

    async def get_plan(self, plan_id):
        if plan_id == missing_plan_id:
            return None
        return await original_get_plan(self, plan_id)

    monkeypatch.setattr(PlanService, "get_plan", get_plan)

    result = await RenewalService(session_factory).run(now=RUN_AT)

    assert [item.subscription_id for item in result.processed] == [first.id, last.id]
    assert [(item.subscription_id, item.reason) for item in result.skipped] == [(orphaned.id, PLAN_MISSING)]

    untouched = await _reload(session_factory, orphaned.id)
    assert untouched.current_period_end == datetime(2025, 1, 12)
    assert untouched.status == SubscriptionStatus.ACTIVE
    assert await _balance(session_factory, orphaned.user_id) == 0


@pytest.mark.asyncio
async def test_failed_renewal_rolls_back_period_advance(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan, monkeypatch
) -> None:
    """Test an error mid-renewal leaves the subscription as it was."""
    subscription = await _subscription(db_session, make_profile, test_plan)

    async def broken_create_invoice(self, *args, **kwargs):
        raise RuntimeError("invoice store offline")

    monkeypatch.setattr(InvoiceService, "create_invoice", broken_create_invoice)

    result = await RenewalService(session_factory).run(now=RUN_AT)

    assert result.processed == []
    assert [(item.subscription_id, item.reason) for item in result.skipped] == [
        (subscription.id, "invoice store offline")
    ]
    unchanged = await _reload(session_factory, subscription.id)
    assert unchanged.current_period_end == datetime(2025, 1, 15)
    async with session_factory() as session:
        history = await session.scalar(
            select(func.count()).select_from(SubscriptionHistory).where(
                SubscriptionHistory.subscription_id == subscription.id
            )
        )
    assert history == 0


@pytest.mark.asyncio
async def test_slow_renewal_times_out(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan, monkeypatch
) -> None:
    """Test a renewal exceeding its time limit is skipped and rolled back."""
    subscription = await _subscription(db_session, make_profile, test_plan)
    original_create_invoice = InvoiceService.create_invoice

    async def slow_create_invoice(self, *args, **kwargs):
        await asyncio.sleep(5)
        return await original_create_invoice(self, *args, **kwargs)

    monkeypatch.setattr(InvoiceService, "create_invoice", slow_create_invoice)

    result = await RenewalService(session_factory, item_timeout=0.2).run(now=RUN_AT)

    assert result.processed == []
    assert result.skipped[0].subscription_id == subscription.id
    assert result.skipped[0].reason.startswith("Timed out")
    unchanged = await _reload(session_factory, subscription.id)
    assert unchanged.current_period_end == datetime(2025, 1, 15)


@pytest.mark.asyncio
async def test_cancelled_subscription_expires_instead_of_renewing(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test cancel-at-period-end stops billing and marks the subscription canceled."""
    subscription = await _subscription(db_session, make_profile, test_plan, cancel_at_period_end=True)

    result = await RenewalService(session_factory).run(now=RUN_AT)

    assert result.processed == []
    assert result.expired == [subscription.id]
    expired = await _reload(session_factory, subscription.id)
    assert expired.status == SubscriptionStatus.CANCELED
    assert expired.current_period_end == datetime(2025, 1, 15)
    assert await _balance(session_factory, subscription.user_id) == 0


@pytest.mark.asyncio
async def test_future_and_canceled_subscriptions_are_not_due(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test only ended periods of renewable subscriptions are picked up."""
    await _subscription(db_session, make_profile, test_plan, period_end=datetime(2025, 1, 25))
    await _subscription(db_session, make_profile, test_plan, status=SubscriptionStatus.CANCELED)
    past_due = await _subscription(db_session, make_profile, test_plan, status=SubscriptionStatus.PAST_DUE)

    due = await RenewalService(session_factory).find_due_subscriptions(RUN_AT)

    assert due == [past_due.id]


@pytest.mark.asyncio
async def test_worker_entrypoint_runs_batch(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test the worker function renews with the given session factory."""
    subscription = await _subscription(db_session, make_profile, test_plan)

    result = await process_subscription_renewals(session_factory, now=RUN_AT)

    assert [item.subscription_id for item in result.processed] == [subscription.id]


# Cron trigger


@pytest.mark.asyncio
async def test_cron_requires_secret(async_client: AsyncClient, monkeypatch) -> None:
    """Test the trigger rejects missing and wrong secrets."""
    monkeypatch.setattr(settings, "billing_cron_secret", "cron-secret")

    missing = await async_client.post("/v1/billing/cron/renew-subscriptions")
    wrong = await async_client.post(
        "/v1/billing/cron/renew-subscriptions", headers={"X-Cron-Secret": "nope"}
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_cron_fails_closed_without_configured_secret(async_client: AsyncClient, monkeypatch) -> None:
    """Test the trigger refuses every call when no secret is configured."""
    monkeypatch.setattr(settings, "billing_cron_secret", None)

    response = await async_client.post(
        "/v1/billing/cron/renew-subscriptions", headers={"X-Cron-Secret": ""}
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cron_renews_due_subscriptions(
    async_client: AsyncClient, db_session: AsyncSession, make_profile, test_plan, monkeypatch
) -> None:
    """Test an authorized trigger runs the batch and reports the outcome."""
    monkeypatch.setattr(settings, "billing_cron_secret", "cron-secret")
    subscription = await _subscription(db_session, make_profile, test_plan)

    response = await async_client.post(
        "/v1/billing/cron/renew-subscriptions", headers={"Authorization": "Bearer cron-secret"}
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["subscription_id"] for item in body["processed"]] == [str(subscription.id)]
    assert body["skipped"] == []
    assert body["expired"] == []


@pytest.mark.asyncio
async def test_month_end_subscription_keeps_its_billing_day(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test a subscription bought on the 31st is clamped in February, then returns to the 31st."""
    subscription = await _subscription(
        db_session, make_profile, test_plan, period_end=datetime(2025, 1, 31), billing_anchor_day=31
    )
    service = RenewalService(session_factory)

    await service.run(now=datetime(2025, 2, 1))
    february = await _reload(session_factory, subscription.id)
    assert (february.current_period_start, february.current_period_end) == (
        datetime(2025, 1, 31),
        datetime(2025, 2, 28),
    )

    await service.run(now=datetime(2025, 3, 1))
    march = await _reload(session_factory, subscription.id)
    assert (march.current_period_start, march.current_period_end) == (datetime(2025, 2, 28), datetime(2025, 3, 31))


@pytest.mark.asyncio
async def test_renewal_without_billing_day_follows_previous_end(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan
) -> None:
    """Test rows that predate the billing day renew from the old period end."""
    subscription = await _subscription(db_session, make_profile, test_plan, period_end=datetime(2025, 2, 28))

    await RenewalService(session_factory).run(now=datetime(2025, 3, 1))

    renewed = await _reload(session_factory, subscription.id)
    assert renewed.current_period_end == datetime(2025, 3, 28)


@pytest.mark.asyncio
async def test_slow_commit_is_not_reported_as_skipped(
    db_session: AsyncSession, session_factory: async_sessionmaker, make_profile, test_plan, monkeypatch
) -> None:
    """Test the time limit covers the renewal work but not the commit."""
    subscription = await _subscription(db_session, make_profile, test_plan)
    original_commit = AsyncSession.commit

    async def slow_commit(self):
        await asyncio.sleep(0.5)
        await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", slow_commit)

    result = await RenewalService(session_factory, item_timeout=0.2).run(now=RUN_AT)

    assert [item.subscription_id for item in result.processed] == [subscription.id]
    assert result.skipped == []
    renewed = await _reload(session_factory, subscription.id)
    assert renewed.current_period_end == datetime(2025, 2, 15)
    assert await _balance(session_factory, subscription.user_id) == 400
