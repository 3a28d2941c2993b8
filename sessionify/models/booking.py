"""Booking model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sessionify.database import Base

STATUS_REQUESTED = "requested"
STATUS_ACCEPTED = "accepted"
STATUS_DECLINED = "declined"
STATUS_CANCELLED = "cancelled"

ACTIVE_STATUSES = (STATUS_REQUESTED, STATUS_ACCEPTED)


class Booking(Base):
    """A client reservation against a booking page."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    booking_page_id = Column(Integer, ForeignKey("booking_pages.id"), nullable=False)
    booking_product_id = Column(Integer, ForeignKey("booking_products.id", ondelete="SET NULL"))
    host_user_id = Column(String)
    client_name = Column(String, nullable=False)
    client_email = Column(String, nullable=False)
    client_notes = Column(String)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    price_cents = Column(Integer, default=0)
    currency = Column(String)
    status = Column(String, default=STATUS_REQUESTED, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
