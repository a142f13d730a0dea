"""Renewal scheduler: bills every subscription whose period has ended."""
import asyncio
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger.config import settings
from ledger.metrics import renewals_processed_total, renewals_skipped_total, subscriptions_cancelled_total
from ledger.models.invoice import Invoice
from ledger.models.plan import PlanInterval
from ledger.models.profile import Profile
from ledger.models.subscription import RENEWABLE_STATUSES, Subscription, SubscriptionHistory, SubscriptionStatus
from ledger.integrations.notification_service import NotificationService
from ledger.schemas.renewal import RenewalProcessed, RenewalResult, RenewalSkipped
from ledger.services.entitlement_service import EntitlementService
from ledger.services.invoice_service import InvoiceService
from ledger.services.plan_service import PlanService
from ledger.services.receipt_service import ReceiptService
from ledger.services.subscription_service import SubscriptionService
from ledger.utils.dates import compute_period_range, utcnow

logger = structlog.get_logger(__name__)

PLAN_MISSING = "Plan missing"
PLAN_NOT_MONTHLY = "Plan is not billed monthly"
NO_LONGER_DUE = "Subscription is no longer due"


class RenewalService:
    """
    Renews due subscriptions one at a time.

    Every subscription gets its own session and transaction, bounded by
    ``renewal_item_timeout_seconds``. A failure rolls back that subscription
    only and is reported in ``skipped``; the rest of the batch continues.
    A subscription left unrenewed keeps its status and is retried on the
    next run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        notifier: NotificationService | None = None,
        receipts: ReceiptService | None = None,
        item_timeout: float | None = None,
    ):
        """
        Initialize renewal service.

        Args:
            session_factory: Factory for per-subscription sessions
            notifier: Email sender for renewal receipts
            receipts: Receipt renderer
            item_timeout: Per-subscription time limit in seconds
        """
        self.session_factory = session_factory
        self.notifier = notifier or NotificationService()
        self.receipts = receipts or ReceiptService()
        self.item_timeout = item_timeout or settings.renewal_item_timeout_seconds

    async def run(self, now: datetime | None = None) -> RenewalResult:
        """
        Renew every due subscription, then expire cancelled ones.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            RenewalResult listing processed, skipped and expired subscriptions
        """
        now = now or utcnow()
        due = await self.find_due_subscriptions(now)

        logger.info("renewal_run_started", due_count=len(due), now=now.isoformat())

        result = RenewalResult()
        receipts_to_send: list[tuple[str, Invoice]] = []

        for subscription_id in due:
            outcome, receipt = await self._renew_one(subscription_id, now)
            if isinstance(outcome, RenewalProcessed):
                result.processed.append(outcome)
                renewals_processed_total.inc()
                if receipt is not None:
                    receipts_to_send.append(receipt)
            else:
                result.skipped.append(outcome)
                renewals_skipped_total.labels(reason=_reason_label(outcome.reason)).inc()

        result.expired = await self.expire_cancelled(now)

        for email, invoice in receipts_to_send:
            await self._send_receipt(email, invoice)

        logger.info(
            "renewal_run_completed",
            processed=[item.model_dump(mode="json") for item in result.processed],
            skipped=[item.model_dump(mode="json") for item in result.skipped],
            expired=len(result.expired),
        )
        return result

    async def find_due_subscriptions(self, now: datetime) -> list[UUID]:
        """
        Find subscriptions whose period has ended and that should renew.

        Args:
            now: Reference time

        Returns:
            Subscription ids, oldest period end first
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(Subscription.id)
                .where(
                    Subscription.current_period_end <= now,
                    Subscription.cancel_at_period_end == False,  # noqa: E712
                    Subscription.status.in_(RENEWABLE_STATUSES),
                    Subscription.is_current == True,  # noqa: E712
                )
                .order_by(Subscription.current_period_end.asc())
            )
            return list(result.scalars().all())

    async def _renew_one(
        self, subscription_id: UUID, now: datetime
    ) -> tuple[RenewalProcessed | RenewalSkipped, tuple[str, Invoice] | None]:
        async with self.session_factory() as db:
            try:
                outcome, receipt = await asyncio.wait_for(
                    self._renew(db, subscription_id, now), timeout=self.item_timeout
                )
                # The commit is not bounded by the per-item time limit
                await db.commit()
            except asyncio.TimeoutError:
                await db.rollback()
                logger.error("subscription_renewal_timed_out", subscription_id=str(subscription_id))
                reason = f"Timed out after {self.item_timeout:g}s"
            except Exception as exc:
                await db.rollback()
                logger.exception("subscription_renewal_failed", subscription_id=str(subscription_id), exc_info=exc)
                reason = str(exc) or type(exc).__name__
            else:
                if isinstance(outcome, RenewalProcessed):
                    logger.info(
                        "subscription_renewed",
                        subscription_id=str(subscription_id),
                        invoice_id=str(outcome.invoice_id),
                    )
                return outcome, receipt

        return RenewalSkipped(subscription_id=subscription_id, reason=reason), None

    async def _renew(
        self, db: AsyncSession, subscription_id: UUID, now: datetime
    ) -> tuple[RenewalProcessed | RenewalSkipped, tuple[str, Invoice] | None]:
        subscription = await db.get(Subscription, subscription_id)
        if (
            subscription is None
            or subscription.current_period_end > now
            or subscription.cancel_at_period_end
            or subscription.status not in RENEWABLE_STATUSES
        ):
            return RenewalSkipped(subscription_id=subscription_id, reason=NO_LONGER_DUE), None

        # Deactivated plans still renew for existing subscribers
        plan = await PlanService(db).get_plan(subscription.plan_id)
        if plan is None:
            logger.warning("subscription_renewal_skipped", subscription_id=str(subscription_id), reason=PLAN_MISSING)
            return RenewalSkipped(subscription_id=subscription_id, reason=PLAN_MISSING), None
        if plan.billing_interval != PlanInterval.MONTH:
            logger.warning("subscription_renewal_skipped", subscription_id=str(subscription_id), reason=PLAN_NOT_MONTHLY)
            return RenewalSkipped(subscription_id=subscription_id, reason=PLAN_NOT_MONTHLY), None

        previous_end = subscription.current_period_end
        period_start, period_end = compute_period_range(previous_end, subscription.billing_anchor_day)

        await SubscriptionService(db).advance_period(subscription.id, previous_end, period_start, period_end)
        invoice = await InvoiceService(db).create_invoice(subscription, plan, period_start, period_end)
        await EntitlementService(db).apply_paid_invoice(invoice.id)
        await db.refresh(invoice)

        email = await db.scalar(select(Profile.email).where(Profile.id == subscription.user_id))

        logger.debug(
            "subscription_renewal_staged",
            subscription_id=str(subscription_id),
            new_period_start=period_start.isoformat(),
            new_period_end=period_end.isoformat(),
        )
        receipt = (email, invoice) if email else None
        return RenewalProcessed(subscription_id=subscription_id, invoice_id=invoice.id), receipt

    async def expire_cancelled(self, now: datetime) -> list[UUID]:
        """
        Mark subscriptions cancelled at period end as canceled once the period is over.

        Args:
            now: Reference time

        Returns:
            Ids of the subscriptions that expired
        """
        async with self.session_factory() as db:
            try:
                result = await db.execute(
                    select(Subscription).where(
                        Subscription.cancel_at_period_end == True,  # noqa: E712
                        Subscription.current_period_end <= now,
                        Subscription.status != SubscriptionStatus.CANCELED,
                        Subscription.is_current == True,  # noqa: E712
                    )
                )
                expiring = list(result.scalars().all())

                for subscription in expiring:
                    old_status = subscription.status
                    subscription.status = SubscriptionStatus.CANCELED
                    db.add(
                        SubscriptionHistory(
                            subscription_id=subscription.id,
                            event_type="expired",
                            old_value=old_status.value,
                            new_value=SubscriptionStatus.CANCELED.value,
                        )
                    )

                await db.commit()
            except Exception as exc:
                await db.rollback()
                logger.exception("subscription_expiry_failed", exc_info=exc)
                return []

        if expiring:
            subscriptions_cancelled_total.inc(len(expiring))
            logger.info("subscriptions_expired", count=len(expiring))
        return [subscription.id for subscription in expiring]

    async def _send_receipt(self, email: str, invoice: Invoice) -> None:
        try:
            html = self.receipts.render_html(invoice)
            await self.notifier.send_receipt(email, str(invoice.id), self.receipts.subject(invoice), html)
        except Exception as exc:
            logger.error("renewal_receipt_failed", invoice_id=str(invoice.id), error=str(exc))


def _reason_label(reason: str) -> str:
    if reason in (PLAN_MISSING, PLAN_NOT_MONTHLY, NO_LONGER_DUE):
        return reason
    if reason.startswith("Timed out"):
        return "timeout"
    return "error"
