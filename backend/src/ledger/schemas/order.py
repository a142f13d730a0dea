"""Pydantic schemas for stock orders."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from ledger.models.order import OrderStatus


class OrderCreate(BaseModel):
    """Schema for placing a stock order.

    ``site`` and ``stock_id`` are optional; when given they must match
    what the link resolves to.
    """

    task_id: str = Field(..., min_length=1, max_length=255, description="Fulfillment provider job id")
    source_url: str = Field(..., min_length=1, description="Link to the asset on the stock site")
    site: str | None = Field(default=None, description="Canonical site key, e.g. 'shutterstock'")
    stock_id: str | None = Field(default=None, description="Asset id on the stock site")


class OrderUpdate(BaseModel):
    """Schema for updating fulfillment state."""

    status: OrderStatus | None = None
    download_url: str | None = None


class Order(BaseModel):
    """Schema for returning order data."""

    id: UUID
    user_id: UUID
    task_id: str
    site: str
    external_id: str
    file_info: dict[str, Any]
    amount_charged: int
    status: OrderStatus
    download_url: str | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderPlaced(BaseModel):
    """Result of placing an order."""

    order: Order
    balance: int
    re_download: bool


class OrderList(BaseModel):
    """Schema for the caller's order history."""

    orders: list[Order]


class OrderLookup(BaseModel):
    """Latest order for an asset, if the caller has one."""

    existing: Order | None


class DownloadLink(BaseModel):
    """Download link for a ready order."""

    task_id: str
    download_url: str


class StockInfo(BaseModel):
    """Normalized asset metadata from the fulfillment provider."""

    site: str
    id: str
    cost: int
    preview: str
    title: str | None = None
    name: str | None = None
    author: str | None = None
    ext: str | None = None
    # Bytes, or the provider's display size such as "12.4 MB"
    size: int | str | None = None
    source_url: str | None = None
