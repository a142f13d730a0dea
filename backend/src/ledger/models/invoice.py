"""Invoice models for subscription billing."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, ForeignKey, DateTime, Uuid
from sqlalchemy.orm import relationship, validates
import enum

from ledger.models.base import Base, JSONType, enum_values


class InvoiceStatus(enum.Enum):
    """Invoice lifecycle status."""

    OPEN = "open"
    PAID = "paid"
    VOID = "void"


class Invoice(Base):
    """
    Billing record for one subscription period.

    ``plan_snapshot`` freezes the plan as it was when the invoice was issued
    and is the only source of the points credited on payment. It can be set
    once and never changes afterwards.
    """

    __tablename__ = "invoices"

    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(Uuid, ForeignKey("subscriptions.id"), nullable=True, index=True)
    plan_snapshot = Column(JSONType, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(
        SQLEnum(InvoiceStatus, name="invoice_status", values_callable=enum_values),
        nullable=False,
        default=InvoiceStatus.OPEN,
        index=True,
    )
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    next_payment_attempt = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    profile = relationship("Profile", back_populates="invoices")
    subscription = relationship("Subscription", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.created_at",
        lazy="selectin",
    )

    @validates("plan_snapshot")
    def _validate_plan_snapshot(self, key: str, value: dict) -> dict:
        if self.plan_snapshot is not None:
            raise ValueError("plan_snapshot is write-once")
        return dict(value)

    @property
    def points(self) -> int:
        """Points granted when this invoice is paid."""
        return int(self.plan_snapshot.get("monthly_points", 0))

    def __repr__(self) -> str:
        """String representation."""
        return f"<Invoice(id={self.id}, status={self.status.value}, amount_cents={self.amount_cents})>"


class InvoiceItem(Base):
    """Line item on an invoice. Items sum to the invoice amount."""

    __tablename__ = "invoice_items"

    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self) -> str:
        """String representation."""
        return f"<InvoiceItem(invoice_id={self.invoice_id}, amount_cents={self.amount_cents})>"
