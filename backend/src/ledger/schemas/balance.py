"""Pydantic schemas for the points balance."""
from uuid import UUID

from pydantic import BaseModel, Field


class Balance(BaseModel):
    """Schema for a user's current points balance."""

    user_id: UUID
    balance: int


class BalanceDeduct(BaseModel):
    """Schema for spending points outside of stock orders (AI generations)."""

    amount: int = Field(..., ge=0, description="Points to deduct; 0 just returns the balance")
    reason: str | None = Field(default=None, max_length=255, description="Free-form reason for audit logs")
