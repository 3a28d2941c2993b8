"""Read-only queries that feed the slot resolver."""

from datetime import datetime

from sqlalchemy.orm import Session

from sessionify.models.availability_override import AvailabilityOverride
from sessionify.models.availability_rule import AvailabilityRule
from sessionify.models.booking import ACTIVE_STATUSES, Booking
from sessionify.models.booking_page import BookingPage
from sessionify.models.booking_product import BookingProduct


def get_page_by_slug(db: Session, slug: str) -> BookingPage | None:
    return db.query(BookingPage).filter(BookingPage.slug == slug).first()


def get_live_page(db: Session, slug: str) -> BookingPage | None:
    return db.query(BookingPage).filter(
        BookingPage.slug == slug.strip().lower(),
        BookingPage.is_live.is_(True),
    ).first()


def get_owner_page(db: Session, owner_user_id: str) -> BookingPage | None:
    return db.query(BookingPage).filter(
        BookingPage.owner_user_id == owner_user_id,
    ).order_by(BookingPage.id.asc()).first()


def list_rules(db: Session, page_id: int) -> list[AvailabilityRule]:
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.booking_page_id == page_id,
    ).order_by(AvailabilityRule.id.asc()).all()


def list_overrides(db: Session, page_id: int, range_start: datetime, range_end: datetime) -> list[AvailabilityOverride]:
    return db.query(AvailabilityOverride).filter(
        AvailabilityOverride.booking_page_id == page_id,
        AvailabilityOverride.end_at >= range_start,
        AvailabilityOverride.start_at <= range_end,
    ).order_by(AvailabilityOverride.start_at.asc()).all()


def list_active_bookings(db: Session, page_id: int, range_start: datetime, range_end: datetime) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.booking_page_id == page_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.end_at >= range_start,
        Booking.start_at <= range_end,
    ).order_by(Booking.start_at.asc()).all()


def list_active_products(db: Session, page_id: int) -> list[BookingProduct]:
    return db.query(BookingProduct).filter(
        BookingProduct.booking_page_id == page_id,
        BookingProduct.is_active.is_(True),
    ).order_by(BookingProduct.created_at.asc(), BookingProduct.id.asc()).all()
