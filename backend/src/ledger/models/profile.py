"""Profile model holding a user's points balance."""
from sqlalchemy import CheckConstraint, Column, Integer, String
from sqlalchemy.orm import relationship

from ledger.models.base import Base


class Profile(Base):
    """
    Per-user ledger row.

    ``id`` is the identity provider's user id. The balance is mutated only
    through conditional updates in BalanceService; the check constraint is the
    last line against a negative balance.
    """

    __tablename__ = "profiles"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_profiles_balance_non_negative"),)

    email = Column(String, nullable=True, index=True)
    balance = Column(Integer, nullable=False, default=0)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="profile")
    invoices = relationship("Invoice", back_populates="profile")
    orders = relationship("Order", back_populates="profile")

    def __repr__(self) -> str:
        """String representation."""
        return f"<Profile(id={self.id}, balance={self.balance})>"
