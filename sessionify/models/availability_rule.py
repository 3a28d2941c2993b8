"""Availability rule model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, Time
from sessionify.database import Base


class AvailabilityRule(Base):
    """Recurring weekly open hours for a booking page."""
    __tablename__ = "booking_availability_rules"

    id = Column(Integer, primary_key=True)
    booking_page_id = Column(Integer, ForeignKey("booking_pages.id", ondelete="CASCADE"), nullable=False)
    weekday = Column(Integer, nullable=False)  # 1=Monday..7=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    valid_from = Column(Date)
    valid_to = Column(Date)
