"""Pydantic schemas for Subscription model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from ledger.models.subscription import SubscriptionStatus


class SubscribeRequest(BaseModel):
    """Schema for purchasing a plan."""

    plan_id: UUID = Field(..., description="Plan to subscribe to")


class SubscriptionPlanChange(BaseModel):
    """Schema for switching plans. Takes effect at the next renewal."""

    plan_id: UUID = Field(..., description="New plan to switch to")


class SubscriptionCancel(BaseModel):
    """Schema for scheduling or undoing cancellation at period end."""

    cancel_at_period_end: bool = Field(default=True, description="Stop renewing after the current period")


class Subscription(BaseModel):
    """Schema for returning subscription data."""

    id: UUID
    user_id: UUID
    plan_id: UUID
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    trial_end: datetime | None
    last_invoice_id: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionWithPlan(Subscription):
    """Schema for subscription with embedded plan data."""

    plan: "Plan"  # Forward reference

    model_config = ConfigDict(from_attributes=True)


class SubscriptionState(BaseModel):
    """Current subscription of the caller, with its plan and latest invoice."""

    subscription: SubscriptionWithPlan | None
    latest_invoice: "Invoice | None" = None


class SubscribeResponse(BaseModel):
    """Result of a successful purchase."""

    subscription: Subscription
    invoice: "Invoice"
    balance: int


# Import at the end to avoid circular imports
from ledger.schemas.plan import Plan  # noqa: E402
from ledger.schemas.invoice import Invoice  # noqa: E402

SubscriptionWithPlan.model_rebuild()
SubscriptionState.model_rebuild()
SubscribeResponse.model_rebuild()
