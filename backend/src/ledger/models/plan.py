"""Plan model for subscription tiers."""
from sqlalchemy import Column, String, Integer, Boolean, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from ledger.models.base import Base, enum_values


class PlanInterval(enum.Enum):
    """Billing interval for plans."""

    MONTH = "month"
    ONE_TIME = "one_time"


class Plan(Base):
    """
    Subscription tier granting a monthly points allowance.

    Only plans with a monthly interval that are active can be purchased.
    Operators may edit plans at any time; invoices keep their own snapshot.
    """

    __tablename__ = "plans"

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    monthly_points = Column(Integer, nullable=False)
    billing_interval = Column(
        SQLEnum(PlanInterval, name="plan_interval", values_callable=enum_values),
        nullable=False,
        default=PlanInterval.MONTH,
    )
    active = Column(Boolean, nullable=False, default=True, index=True)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="plan")

    def snapshot(self) -> dict:
        """Frozen copy of the billing-relevant fields, stored on invoices."""
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "currency": self.currency,
            "monthly_points": self.monthly_points,
            "billing_interval": self.billing_interval.value,
        }

    def __repr__(self) -> str:
        """String representation."""
        return f"<Plan(id={self.id}, name={self.name}, price_cents={self.price_cents}, points={self.monthly_points})>"
