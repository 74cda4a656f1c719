# app/models/business.py
from sqlalchemy import Column, Integer, BigInteger, String, ForeignKey, JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Business(Base):
    """
    A merchant account that books deliveries against a prepaid wallet.

    Wallet amounts are held in kobo (1/100 NGN) so the conditional debit stays
    an integer comparison.
    """
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    wallet_balance = Column(BigInteger, nullable=False, default=0, server_default="0")
    wallet_threshold = Column(BigInteger, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    transactions = relationship("WalletTransaction", back_populates="business")

    def __repr__(self):
        return f"<Business {self.id} {self.business_name}>"


class WalletTransaction(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(String(10), nullable=False)  # 'debit' or 'credit'
    amount = Column(BigInteger, nullable=False)  # kobo
    balance_after = Column(BigInteger, nullable=False)
    reference = Column(String(100), nullable=True, index=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    business = relationship("Business", back_populates="transactions")

    def __repr__(self):
        return f"<WalletTransaction {self.type} {self.amount} business={self.business_id}>"
