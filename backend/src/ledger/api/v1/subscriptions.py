"""Subscription API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.api.deps import get_db, get_current_user, user_id_of
from ledger.exceptions import LedgerError
from ledger.schemas.subscription import (
    SubscribeRequest,
    SubscribeResponse,
    Subscription,
    SubscriptionCancel,
    SubscriptionPlanChange,
    SubscriptionState,
)
from ledger.services.balance_service import BalanceService
from ledger.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/billing", tags=["Subscriptions"])


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    request: SubscribeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> SubscribeResponse:
    """
    Purchase a plan.

    Starts a one-month period from now, issues a paid invoice and credits
    the plan's monthly points. Replaces any current subscription in place.
    """
    user_id = user_id_of(current_user)
    service = SubscriptionService(db)

    try:
        subscription, invoice = await service.subscribe(user_id, request.plan_id, current_user.get("email"))
        balance = await BalanceService(db).get_balance(user_id)
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise

    return SubscribeResponse(subscription=subscription, invoice=invoice, balance=balance)


@router.get("/subscription", response_model=SubscriptionState)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> SubscriptionState:
    """Get the caller's current subscription with its plan and latest invoice."""
    service = SubscriptionService(db)
    subscription, invoice = await service.get_subscription_with_plan(user_id_of(current_user))
    return SubscriptionState(subscription=subscription, latest_invoice=invoice)


@router.post("/subscription/change-plan", response_model=Subscription)
async def change_plan(
    plan_change: SubscriptionPlanChange,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Subscription:
    """
    Switch plans.

    The new plan is billed from the next renewal; nothing is charged or
    credited now.
    """
    service = SubscriptionService(db)

    try:
        subscription = await service.change_plan(user_id_of(current_user), plan_change.plan_id)
        await db.commit()
        return subscription
    except LedgerError:
        await db.rollback()
        raise


@router.post("/subscription/cancel", response_model=Subscription)
async def cancel_subscription(
    cancel: SubscriptionCancel | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Subscription:
    """
    Stop (or resume) renewing at the end of the current period.

    The current period and its points are kept either way.
    """
    service = SubscriptionService(db)
    flag = cancel.cancel_at_period_end if cancel is not None else True

    try:
        subscription = await service.set_cancel_at_period_end(user_id_of(current_user), flag)
        await db.commit()
        return subscription
    except LedgerError:
        await db.rollback()
        raise
