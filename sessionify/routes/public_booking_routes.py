import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sessionify.core import config
from sessionify.database import ensure_availability_schema, ensure_booking_schema, get_db
from sessionify.models.booking import STATUS_REQUESTED, Booking
from sessionify.models.booking_page import BookingPage
from sessionify.models.booking_product import BookingProduct
from sessionify.scheduling import queries
from sessionify.scheduling.slots import (
    Slot,
    ValidationError,
    first_available_day,
    group_slots_by_day,
    resolve_slots,
    to_local_wall_clock,
    window_bounds,
)

router = APIRouter(tags=['booking'])

logger = logging.getLogger(__name__)


class BookingPageResponse(BaseModel):
    id: int
    slug: str
    title: str | None = None
    description: str | None = None
    logo_url: str | None = None
    min_gap_minutes: int | None = None

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    duration_minutes: int
    price_cents: int
    currency: str | None = None
    is_in_person: bool
    location: str | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    id: str
    date_key: date
    start: datetime
    end: datetime

    class Config:
        from_attributes = True


class SlotDayResponse(BaseModel):
    date: date
    slots: list[SlotResponse]


class SlotCalendarResponse(BaseModel):
    product_id: int
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    first_available_date: date | None = None
    days: list[SlotDayResponse]
    slots: list[SlotResponse]


class CreateBookingRequest(BaseModel):
    product_id: int
    start_at: datetime
    client_name: str
    client_email: str
    client_notes: str | None = None

    @field_validator('start_at')
    @classmethod
    def normalize_start_at(cls, value: datetime) -> datetime:
        return to_local_wall_clock(value).replace(second=0, microsecond=0)

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Your name is required.')
        return normalized

    @field_validator('client_email')
    @classmethod
    def validate_client_email(cls, value: str) -> str:
        normalized = value.strip()
        local_part, _, domain = normalized.partition('@')
        if not local_part or '.' not in domain:
            raise ValueError('A valid email address is required.')
        return normalized

    @field_validator('client_notes')
    @classmethod
    def validate_client_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_CLIENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_CLIENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class BookingRequestResponse(BaseModel):
    id: int
    booking_page_id: int
    booking_product_id: int | None = None
    client_name: str
    client_email: str
    client_notes: str | None = None
    start_at: datetime
    end_at: datetime
    price_cents: int | None = None
    currency: str | None = None
    status: str

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


def current_time() -> datetime:
    return datetime.now()


def get_live_page_or_404(db: Session, slug: str) -> BookingPage:
    page = queries.get_live_page(db, slug)
    if not page:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='This booking page is not available. Please check the link or contact your practitioner.',
        )
    return page


def get_active_product_or_404(db: Session, page: BookingPage, product_id: int) -> BookingProduct:
    product = db.query(BookingProduct).filter(
        BookingProduct.id == product_id,
        BookingProduct.booking_page_id == page.id,
        BookingProduct.is_active.is_(True),
    ).first()
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Session type not found.',
        )
    return product


def resolve_page_slots(
    db: Session,
    page: BookingPage,
    product: BookingProduct,
    window_start: date,
    window_days: int,
    include_end_day: bool,
    now: datetime,
) -> list[Slot]:
    range_start, range_end = window_bounds(window_start, window_days, include_end_day)

    rules = queries.list_rules(db, page.id)
    overrides = queries.list_overrides(db, page.id, range_start, range_end)
    existing_bookings = queries.list_active_bookings(db, page.id, range_start, range_end)

    try:
        return resolve_slots(
            page,
            product,
            rules,
            overrides,
            existing_bookings,
            window_start,
            window_days,
            include_end_day=include_end_day,
            deduplicate=config.BOOKING_DEDUPLICATE_SLOTS,
            not_before=now if config.BOOKING_HIDE_PAST_SLOTS else None,
        )
    except ValidationError as exc:
        logger.error('Booking page %s has invalid availability data: %s', page.slug, exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc


@router.get('/{slug}', response_model=BookingPageResponse)
def get_public_page(slug: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return get_live_page_or_404(db, slug)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.get('/{slug}/products', response_model=list[ProductResponse])
def list_public_products(slug: str, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        page = get_live_page_or_404(db, slug)
        return queries.list_active_products(db, page.id)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.get('/{slug}/slots', response_model=SlotCalendarResponse)
def list_available_slots(
    slug: str,
    product_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_live_page_or_404(db, slug)
        product = get_active_product_or_404(db, page, product_id)

        now = current_time()
        window_start = now.date()
        window_days = config.BOOKING_WINDOW_DAYS
        include_end_day = config.BOOKING_INCLUDE_END_DAY

        slots = resolve_page_slots(db, page, product, window_start, window_days, include_end_day, now)
        day_groups = group_slots_by_day(slots, window_start, window_days, include_end_day)
        range_start, range_end = window_bounds(window_start, window_days, include_end_day)

        return SlotCalendarResponse(
            product_id=product.id,
            duration_minutes=product.duration_minutes or config.DEFAULT_DURATION_MINUTES,
            window_start=range_start,
            window_end=range_end,
            first_available_date=first_available_day(day_groups),
            days=[
                SlotDayResponse(
                    date=date_key,
                    slots=[SlotResponse.model_validate(slot) for slot in day_slots],
                )
                for date_key, day_slots in day_groups
            ],
            slots=[SlotResponse.model_validate(slot) for slot in slots],
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc


@router.post('/{slug}/requests', response_model=BookingRequestResponse, status_code=status.HTTP_201_CREATED)
def create_booking_request(slug: str, data: CreateBookingRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        page = get_live_page_or_404(db, slug)
        product = get_active_product_or_404(db, page, data.product_id)

        duration_minutes = product.duration_minutes or config.DEFAULT_DURATION_MINUTES
        start_at = data.start_at
        end_at = start_at + timedelta(minutes=duration_minutes)

        if config.BOOKING_VERIFY_SLOT_ON_SUBMIT:
            now = current_time()
            _, window_end = window_bounds(now.date(), config.BOOKING_WINDOW_DAYS, config.BOOKING_INCLUDE_END_DAY)
            if start_at.date() < now.date() or start_at > window_end:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f'Sessions can only be requested within the next {config.BOOKING_WINDOW_DAYS} days.',
                )

            day_slots = resolve_page_slots(db, page, product, start_at.date(), 1, False, now)
            if not any(slot.start == start_at for slot in day_slots):
                logger.warning('Rejected stale slot %s on booking page %s', start_at.isoformat(), page.slug)
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='This time is no longer available. Please choose another slot.',
                )

        booking = Booking(
            booking_page_id=page.id,
            booking_product_id=product.id,
            host_user_id=page.owner_user_id,
            client_name=data.client_name,
            client_email=data.client_email,
            client_notes=data.client_notes,
            start_at=start_at,
            end_at=end_at,
            price_cents=product.price_cents,
            currency=product.currency or config.DEFAULT_CURRENCY,
            status=STATUS_REQUESTED,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)

        logger.info('Booking %s requested on page %s for %s', booking.id, page.slug, start_at.isoformat())
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and database credentials.',
        ) from exc
