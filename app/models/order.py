# app/models/order.py
from sqlalchemy import Column, Integer, String, ForeignKey, JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class DeliveryOrder(Base):
    """
    A delivery booked with a carrier.

    Rows are only written after the carrier has confirmed the order, and are
    only ever deleted as compensation when the wallet debit fails.
    """
    __tablename__ = "delivery_orders"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    partner_id = Column(Integer, ForeignKey("logistics_partners.id"), nullable=True, index=True)
    provider_key = Column(String(50), nullable=False, index=True)

    customer_facing_order_id = Column(String(64), nullable=False, unique=True, index=True)
    external_order_id = Column(String(255), nullable=True, index=True)
    tracking_ref = Column(String(255), nullable=True, index=True)

    # Raw provider status; presentation buckets are derived at response time
    status = Column(String(100), nullable=False, default="pending")

    # {"total_cost", "platform_fee", "provider_cost"} in currency units
    delivery_cost = Column(JSONType, nullable=False)
    request_snapshot = Column(JSONType, nullable=False)
    provider_response_snapshot = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    partner = relationship("LogisticsPartner")

    def __repr__(self):
        return f"<DeliveryOrder {self.customer_facing_order_id} {self.provider_key} {self.status}>"
