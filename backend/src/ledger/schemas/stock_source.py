"""Pydantic schemas for the stock source catalog."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


class StockSourceCreate(BaseModel):
    """Schema for listing a new stock site.

    Example:
        ```json
        {"key": "shutterstock", "name": "Shutterstock", "cost": 10, "icon": "shutterstock"}
        ```
    """

    key: str = Field(..., min_length=1, max_length=64, description="Canonical site key, e.g. 'shutterstock'")
    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    cost: float = Field(..., ge=0, description="Listed price in points")
    icon: str | None = Field(default=None, description="Icon identifier")
    icon_url: str | None = Field(default=None, description="Icon image URL")
    active: bool = Field(default=True, description="Whether users see the site")

    @field_validator("key")
    @classmethod
    def normalize_key(cls, v: str) -> str:
        """Site keys are stored lowercase."""
        return v.strip().lower()


class StockSourceUpdate(BaseModel):
    """Schema for editing a stock site (all fields optional)."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    cost: float | None = Field(default=None, ge=0)
    icon: str | None = None
    icon_url: str | None = None
    active: StrictBool | None = None


class StockSourceCost(BaseModel):
    """Schema for changing only the listed price."""

    cost: float = Field(..., ge=0, description="Listed price in points")


class StockSourceActive(BaseModel):
    """Schema for showing or hiding a site."""

    active: StrictBool


class StockSource(BaseModel):
    """Schema for returning a stock site."""

    key: str
    name: str
    cost: float
    icon: str | None
    icon_url: str | None
    active: bool

    model_config = ConfigDict(from_attributes=True)


class StockSourceList(BaseModel):
    """Schema for a list of stock sites."""

    sites: list[StockSource]


class StockSourceAuditEntry(BaseModel):
    """One recorded change to a stock site."""

    id: UUID
    stock_source_key: str
    action: str
    old_value: str | None
    new_value: str | None
    changed_by: UUID | None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StockSourceAuditLog(BaseModel):
    """Schema for the audit trail, newest first."""

    logs: list[StockSourceAuditEntry]
