"""PurchaseRecord model guarding payment confirmations against replay."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class PurchaseRecord(Base):
    """One applied payment. The primary key is the provider payment reference."""

    __tablename__ = "purchase_records"

    payment_reference = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("accounts.user_id"), nullable=False, index=True)
    sku = Column(String, nullable=False)
    credits_granted = Column(Integer, nullable=False)
    provider = Column(String, nullable=False, default="mercadopago")
    applied_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("Account", back_populates="purchases")
