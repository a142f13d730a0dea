"""Subscription manager: subscribe, change plan, cancel."""
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledger.exceptions import ConflictError, NotFoundError
from ledger.metrics import subscriptions_created_total
from ledger.models.invoice import Invoice
from ledger.models.subscription import Subscription, SubscriptionStatus, SubscriptionHistory
from ledger.schemas.error import ErrorCode
from ledger.services.balance_service import BalanceService
from ledger.services.entitlement_service import EntitlementService
from ledger.services.invoice_service import InvoiceService
from ledger.services.plan_service import PlanService
from ledger.utils.dates import compute_period_range, utcnow

logger = structlog.get_logger(__name__)


class SubscriptionService:
    """Service layer for subscription operations."""

    def __init__(self, db: AsyncSession):
        """Initialize subscription service with database session."""
        self.db = db
        self.plans = PlanService(db)
        self.balances = BalanceService(db)
        self.invoices = InvoiceService(db)
        self.entitlements = EntitlementService(db)

    async def subscribe(
        self, user_id: UUID, plan_id: UUID, email: str | None = None
    ) -> tuple[Subscription, Invoice]:
        """
        Purchase a plan and grant its first period of points.

        Runs entirely in the caller's transaction: the subscription upsert,
        the invoice and the credit are committed together or not at all.

        Args:
            user_id: Subscribing user
            plan_id: Plan to purchase
            email: Email from the access token, stored on first use

        Returns:
            Tuple of (current subscription, paid invoice)

        Raises:
            NotFoundError: If the plan cannot be purchased
            UnavailableError: If the plan catalog is not provisioned
            ConflictError: If a concurrent subscribe created the subscription first
        """
        plan = await self.plans.load_plan_by_id(plan_id)

        await self.balances.ensure_profile(user_id, email)
        await self.balances.lock_profile(user_id)

        period_start, period_end = compute_period_range(utcnow())

        subscription = await self.get_current_subscription(user_id)
        if subscription is not None:
            old_plan_id = subscription.plan_id
            subscription.plan_id = plan.id
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.cancel_at_period_end = False
            subscription.current_period_start = period_start
            subscription.current_period_end = period_end
            subscription.billing_anchor_day = period_start.day
            subscription.trial_end = None
            await self.db.flush()
            await self._create_history(subscription.id, "subscribed", str(old_plan_id), str(plan.id))
            subscriptions_created_total.labels(kind="replaced").inc()
        else:
            subscription = Subscription(
                user_id=user_id,
                plan_id=plan.id,
                status=SubscriptionStatus.ACTIVE,
                current_period_start=period_start,
                current_period_end=period_end,
                billing_anchor_day=period_start.day,
                cancel_at_period_end=False,
                is_current=True,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(subscription)
            except IntegrityError as exc:
                raise ConflictError(
                    "A subscription for this user was created concurrently", code=ErrorCode.DUPLICATE_RESOURCE
                ) from exc
            await self._create_history(subscription.id, "subscribed", None, str(plan.id))
            subscriptions_created_total.labels(kind="new").inc()

        invoice = await self.invoices.create_invoice(subscription, plan, period_start, period_end)
        await self.entitlements.apply_paid_invoice(invoice.id)

        # Bulk updates in the applier bypass the identity map
        await self.db.refresh(subscription)
        await self.db.refresh(invoice)

        logger.info(
            "subscription_purchased",
            user_id=str(user_id),
            subscription_id=str(subscription.id),
            plan_id=str(plan.id),
            invoice_id=str(invoice.id),
            period_end=period_end.isoformat(),
        )
        return subscription, invoice

    async def get_current_subscription(self, user_id: UUID) -> Subscription | None:
        """
        Get the user's current subscription.

        Args:
            user_id: Owner of the subscription

        Returns:
            Most recently created current subscription, or None
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id, Subscription.is_current == True)  # noqa: E712
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_subscription_with_plan(self, user_id: UUID) -> tuple[Subscription | None, Invoice | None]:
        """
        Get the current subscription with eager-loaded plan and its latest paid invoice.

        Args:
            user_id: Owner of the subscription

        Returns:
            Tuple of (subscription or None, latest invoice or None)
        """
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id, Subscription.is_current == True)  # noqa: E712
            .options(selectinload(Subscription.plan))
            .order_by(Subscription.created_at.desc())
            .limit(1)
        )
        subscription = result.scalar_one_or_none()
        if subscription is None or subscription.last_invoice_id is None:
            return subscription, None

        invoice = await self.invoices.get_invoice(subscription.last_invoice_id)
        return subscription, invoice

    async def _require_current(self, user_id: UUID) -> Subscription:
        try:
            await self.balances.lock_profile(user_id)
        except NotFoundError:
            raise NotFoundError("No active subscription", code=ErrorCode.SUBSCRIPTION_NOT_FOUND) from None

        subscription = await self.get_current_subscription(user_id)
        if subscription is None:
            raise NotFoundError("No active subscription", code=ErrorCode.SUBSCRIPTION_NOT_FOUND)
        return subscription

    async def change_plan(self, user_id: UUID, plan_id: UUID) -> Subscription:
        """
        Switch the current subscription to another plan.

        Takes effect at the next renewal: no invoice is issued and no points
        move now.

        Args:
            user_id: Owner of the subscription
            plan_id: Plan to switch to

        Returns:
            Updated subscription (unchanged if already on that plan)

        Raises:
            NotFoundError: If the plan cannot be purchased or there is no subscription
        """
        plan = await self.plans.load_plan_by_id(plan_id)
        subscription = await self._require_current(user_id)

        if subscription.plan_id == plan.id:
            return subscription

        old_plan_id = subscription.plan_id
        subscription.plan_id = plan.id
        await self._create_history(subscription.id, "plan_changed", str(old_plan_id), str(plan.id))

        await self.db.flush()
        await self.db.refresh(subscription)

        logger.info(
            "subscription_plan_changed",
            subscription_id=str(subscription.id),
            old_plan_id=str(old_plan_id),
            new_plan_id=str(plan.id),
        )
        return subscription

    async def set_cancel_at_period_end(self, user_id: UUID, cancel_at_period_end: bool = True) -> Subscription:
        """
        Schedule or undo cancellation at the end of the current period.

        Args:
            user_id: Owner of the subscription
            cancel_at_period_end: True to stop renewing, False to resume

        Returns:
            Updated subscription

        Raises:
            NotFoundError: If there is no subscription
        """
        subscription = await self._require_current(user_id)

        if subscription.cancel_at_period_end != cancel_at_period_end:
            subscription.cancel_at_period_end = cancel_at_period_end
            await self._create_history(
                subscription.id,
                "cancellation_scheduled" if cancel_at_period_end else "cancellation_removed",
                None,
                subscription.current_period_end.isoformat(),
            )

        await self.db.flush()
        await self.db.refresh(subscription)

        logger.info(
            "subscription_cancel_flag_set",
            subscription_id=str(subscription.id),
            cancel_at_period_end=cancel_at_period_end,
        )
        return subscription

    async def advance_period(
        self,
        subscription_id: UUID,
        expected_period_end: datetime,
        period_start: datetime,
        period_end: datetime,
    ) -> None:
        """
        Move a subscription to its next period if nobody else did first.

        The update only matches while ``current_period_end`` still equals the
        value the caller read, so overlapping renewal runs cannot both
        advance the same period.

        Raises:
            ConflictError: If the period was already advanced
        """
        result = await self.db.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.current_period_end == expected_period_end,
            )
            .values(
                current_period_start=period_start,
                current_period_end=period_end,
                status=SubscriptionStatus.ACTIVE,
                updated_at=utcnow(),
            )
            .returning(Subscription.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            raise ConflictError(
                f"Subscription {subscription_id} period already advanced", code=ErrorCode.CONCURRENT_RENEWAL
            )

        await self._create_history(subscription_id, "renewed", expected_period_end.isoformat(), period_end.isoformat())

    async def _create_history(
        self,
        subscription_id: UUID,
        event_type: str,
        old_value: str | None,
        new_value: str,
    ) -> None:
        """Create subscription history record."""
        history = SubscriptionHistory(
            subscription_id=subscription_id,
            event_type=event_type,
            old_value=old_value,
            new_value=new_value,
        )
        self.db.add(history)
        await self.db.flush()
