"""Availability override model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sessionify.database import Base
from sessionify.scheduling.slots import OVERRIDE_TYPE_UNAVAILABLE


class AvailabilityOverride(Base):
    """A date-scoped exception to the weekly rules."""
    __tablename__ = "booking_availability_overrides"

    id = Column(Integer, primary_key=True)
    booking_page_id = Column(Integer, ForeignKey("booking_pages.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    type = Column(String, default=OVERRIDE_TYPE_UNAVAILABLE, nullable=False)
