"""Booking product model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sessionify.database import Base


class BookingProduct(Base):
    """A sellable session type offered on a booking page."""
    __tablename__ = "booking_products"

    id = Column(Integer, primary_key=True, index=True)
    booking_page_id = Column(Integer, ForeignKey("booking_pages.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String)
    duration_minutes = Column(Integer, default=60, nullable=False)
    price_cents = Column(Integer, default=0, nullable=False)
    currency = Column(String, default="GBP")
    is_active = Column(Boolean, default=True, nullable=False)
    is_in_person = Column(Boolean, default=False, nullable=False)
    location = Column(String)
    created_at = Column(DateTime, default=datetime.now)
