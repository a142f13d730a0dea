"""Pydantic schemas for Invoice model."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ledger.models.invoice import InvoiceStatus


class InvoiceItem(BaseModel):
    """Schema for invoice line item."""

    id: UUID
    description: str
    amount_cents: int

    model_config = ConfigDict(from_attributes=True)


class Invoice(BaseModel):
    """Schema for returning invoice data."""

    id: UUID
    user_id: UUID
    subscription_id: UUID | None
    plan_snapshot: dict[str, Any]
    amount_cents: int
    currency: str
    status: InvoiceStatus
    period_start: datetime
    period_end: datetime
    next_payment_attempt: datetime | None
    paid_at: datetime | None
    items: list[InvoiceItem] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceList(BaseModel):
    """Schema for the caller's invoice history."""

    invoices: list[Invoice]
