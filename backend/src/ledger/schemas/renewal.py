"""Pydantic schemas for the renewal job result."""
from uuid import UUID

from pydantic import BaseModel, Field


class RenewalProcessed(BaseModel):
    """A subscription that was renewed and credited."""

    subscription_id: UUID
    invoice_id: UUID


class RenewalSkipped(BaseModel):
    """A subscription that was left untouched, with the reason."""

    subscription_id: UUID
    reason: str


class RenewalResult(BaseModel):
    """Outcome of one renewal batch."""

    processed: list[RenewalProcessed] = Field(default_factory=list)
    skipped: list[RenewalSkipped] = Field(default_factory=list)
    expired: list[UUID] = Field(default_factory=list)
