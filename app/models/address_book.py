# app/models/address_book.py
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from app.database import Base


class AddressBookEntry(Base):
    """Maps a normalized geocoded address to the carrier's address-book id"""
    __tablename__ = "address_book_map"

    address_hash = Column(String(64), primary_key=True)
    formatted_address = Column(String, nullable=False)
    phone_number = Column(String(32), nullable=True)
    provider_address_id = Column(String(255), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AddressBookEntry {self.address_hash[:12]} -> {self.provider_address_id}>"
