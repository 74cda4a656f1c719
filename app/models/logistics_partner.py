# app/models/logistics_partner.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func, true

from app.database import Base


class LogisticsPartner(Base):
    """Persisted record per carrier; `name` is the lowercase provider key"""
    __tablename__ = "logistics_partners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True, index=True)
    display_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<LogisticsPartner {self.name} active={self.is_active}>"
