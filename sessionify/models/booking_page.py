"""Booking page model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sessionify.database import Base


class BookingPage(Base):
    """A practitioner's public booking page, resolvable at /booking/<slug> while live."""
    __tablename__ = "booking_pages"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(String, nullable=False, index=True)
    slug = Column(String, unique=True, index=True, nullable=False)
    is_live = Column(Boolean, default=False, nullable=False)
    min_gap_minutes = Column(Integer, default=15)
    title = Column(String)
    description = Column(String)
    logo_url = Column(String)
    created_at = Column(DateTime, default=datetime.now)
