"""Stock order model for purchased stock-media downloads."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
import enum

from ledger.models.base import Base, JSONType, enum_values


class OrderStatus(enum.Enum):
    """Fulfillment status of a stock order."""

    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"
    PAYMENT_FAILED = "payment_failed"


class Order(Base):
    """
    A user's request to download one stock asset.

    ``task_id`` is the fulfillment provider's job id and is unique.
    ``amount_charged`` is zero for free re-downloads.
    """

    __tablename__ = "stock_orders"
    __table_args__ = (Index("ix_stock_orders_user_asset", "user_id", "site", "external_id"),)

    user_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(String, nullable=False, unique=True, index=True)
    site = Column(String, nullable=False)
    external_id = Column(String, nullable=False)
    file_info = Column(JSONType, nullable=False, default=dict)
    amount_charged = Column(Integer, nullable=False, default=0)
    status = Column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PROCESSING,
        index=True,
    )
    download_url = Column(String, nullable=True)

    # Relationships
    profile = relationship("Profile", back_populates="orders")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Order(task_id={self.task_id}, site={self.site}, status={self.status.value})>"
