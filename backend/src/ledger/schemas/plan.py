"""Pydantic schemas for Plan model."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator

from ledger.models.plan import PlanInterval


class PlanBase(BaseModel):
    """Base plan schema with common fields."""

    name: str = Field(..., min_length=1, max_length=255, description="Plan name")
    description: str | None = Field(default=None, description="Marketing description")
    price_cents: int = Field(..., ge=0, description="Monthly price in cents")
    currency: str = Field(default="usd", min_length=3, max_length=3, description="ISO 4217 currency code")
    monthly_points: int = Field(..., ge=0, description="Points granted per paid period")
    billing_interval: PlanInterval = Field(default=PlanInterval.MONTH, description="Billing interval")
    active: bool = Field(default=True, description="Whether plan is available for new subscriptions")

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Plans store currency codes in lowercase."""
        return v.lower()


class PlanCreate(PlanBase):
    """Schema for creating a new plan.

    Example:
        ```json
        {
            "name": "Creator",
            "description": "40 downloads a month",
            "price_cents": 1999,
            "currency": "usd",
            "monthly_points": 400
        }
        ```
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "name": "Creator",
                    "description": "40 downloads a month",
                    "price_cents": 1999,
                    "currency": "usd",
                    "monthly_points": 400,
                }
            ]
        }
    )


class PlanUpdate(BaseModel):
    """Schema for updating a plan (all fields optional).

    Edits apply to future invoices only.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price_cents: int | None = Field(default=None, ge=0)
    monthly_points: int | None = Field(default=None, ge=0)
    active: bool | None = None


class Plan(PlanBase):
    """Schema for returning plan data."""

    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanList(BaseModel):
    """Schema for the public plan catalog."""

    plans: list[Plan]
