"""Stock source catalog: the stock sites users can order from and their listed price."""
from sqlalchemy import Column, Boolean, DateTime, Float, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship

from ledger.models.base import Base
from ledger.utils.dates import utcnow


class StockSource(Base):
    """
    A stock site shown to users, keyed by the canonical site key.

    ``cost`` is the listed price in points. Orders are charged the price the
    fulfillment provider quotes for the asset, not this value.
    """

    __tablename__ = "stock_sources"

    key = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    cost = Column(Float, nullable=False, default=0)
    icon = Column(String, nullable=True)
    icon_url = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)

    # Relationships
    audit_entries = relationship("StockSourceAudit", back_populates="source", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation."""
        return f"<StockSource(key={self.key}, cost={self.cost}, active={self.active})>"


class StockSourceAudit(Base):
    """Operator changes to a stock source, one row per changed field."""

    __tablename__ = "stock_source_audit"

    stock_source_key = Column(
        String, ForeignKey("stock_sources.key", ondelete="CASCADE"), nullable=False, index=True
    )
    action = Column(String, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    changed_by = Column(Uuid, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Relationships
    source = relationship("StockSource", back_populates="audit_entries")

    def __repr__(self) -> str:
        """String representation."""
        return f"<StockSourceAudit(key={self.stock_source_key}, action={self.action})>"
