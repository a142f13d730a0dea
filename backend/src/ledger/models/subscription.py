"""Subscription model for user subscriptions to plans."""
from sqlalchemy import Column, Boolean, Enum as SQLEnum, ForeignKey, DateTime, Index, SmallInteger, String, Uuid, text
from sqlalchemy.orm import relationship
import enum

from ledger.models.base import Base, enum_values


class SubscriptionStatus(enum.Enum):
    """Subscription lifecycle status."""

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


# Statuses picked up by the renewal job
RENEWABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE)


class Subscription(Base):
    """
    A user's subscription to a plan.

    The billing period is half-open: [current_period_start, current_period_end).
    At most one row per user has ``is_current`` set; rows are never deleted.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_current_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
    )

    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Uuid, ForeignKey("plans.id"), nullable=False, index=True)
    status = Column(
        SQLEnum(SubscriptionStatus, name="subscription_status", values_callable=enum_values),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
        index=True,
    )
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False, index=True)
    # Day of month the subscription was bought on; renewals land back on it
    billing_anchor_day = Column(SmallInteger, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    trial_end = Column(DateTime, nullable=True)
    last_invoice_id = Column(Uuid, nullable=True)
    is_current = Column(Boolean, nullable=False, default=True)

    # Relationships
    profile = relationship("Profile", back_populates="subscriptions")
    plan = relationship("Plan", back_populates="subscriptions")
    invoices = relationship("Invoice", back_populates="subscription")
    history = relationship("SubscriptionHistory", back_populates="subscription", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status={self.status.value})>"


class SubscriptionHistory(Base):
    """
    Audit trail for subscription changes.

    Tracks subscribes, plan changes, cancellation flags, renewals and expiry.
    """

    __tablename__ = "subscription_history"

    subscription_id = Column(Uuid, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=False)
    reason = Column(String, nullable=True)

    # Relationships
    subscription = relationship("Subscription", back_populates="history")

    def __repr__(self) -> str:
        """String representation."""
        return f"<SubscriptionHistory(subscription_id={self.subscription_id}, event={self.event_type})>"
