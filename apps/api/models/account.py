"""Account model holding the spendable credit balance."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Account(Base):
    """Per-user credit balance. Source of truth for remaining credits."""

    __tablename__ = "accounts"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_accounts_credits_non_negative"),)

    user_id = Column(String, primary_key=True)
    credits = Column(Integer, nullable=False, default=0)
    free_tier_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    credit_entries = relationship("CreditLedger", back_populates="account")
    purchases = relationship("PurchaseRecord", back_populates="account")
