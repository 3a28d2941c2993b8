import logging
import re
from datetime import date, datetime, time
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from sessionify.auth.dependencies import get_current_owner_id
from sessionify.core import config
from sessionify.database import get_db
from sessionify.models.availability_override import AvailabilityOverride
from sessionify.models.availability_rule import AvailabilityRule
from sessionify.models.booking import STATUS_ACCEPTED, STATUS_DECLINED, STATUS_REQUESTED, Booking
from sessionify.models.booking_page import BookingPage
from sessionify.models.booking_product import BookingProduct
from sessionify.routes.public_booking_routes import (
    BookingPageResponse,
    BookingRequestResponse,
    current_time,
    ensure_database_ready,
)
from sessionify.scheduling import queries
from sessionify.scheduling.slots import (
    OVERRIDE_TYPE_UNAVAILABLE,
    ValidationError,
    parse_wall_time,
    stored_weekday_to_calendar,
)

router = APIRouter(tags=['setup'])

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*$')
OVERRIDE_DAY_END_INPUT = time(23, 59)
SLUG_TAKEN_DETAIL = 'This address is already taken. Try another.'


def _normalize_slug(value: str) -> str:
    normalized = value.strip().lower()
    if not SLUG_PATTERN.match(normalized):
        raise ValueError('Slugs may only contain letters, numbers and hyphens.')
    return normalized


def _slug_from_email(email: str) -> str | None:
    local_part = email.strip().lower().split('@')[0]
    return re.sub(r'[^a-z0-9]+', '-', local_part).strip('-') or None


class PageSettingsRequest(BaseModel):
    slug: str | None = None
    email: str | None = None
    title: str | None = None
    description: str | None = None
    logo_url: str | None = None
    min_gap_minutes: int | None = None
    is_live: bool | None = None

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return _normalize_slug(value)

    @field_validator('title', 'description', 'logo_url')
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator('min_gap_minutes')
    @classmethod
    def validate_min_gap(cls, value: int | None) -> int | None:
        if value is not None and value < 0:
            raise ValueError('Minimum gap must be zero or more minutes.')
        return value


class OwnerPageResponse(BookingPageResponse):
    owner_user_id: str
    is_live: bool


class SlugAvailabilityResponse(BaseModel):
    slug: str
    available: bool


class ProductRequest(BaseModel):
    name: str
    description: str | None = None
    duration_minutes: int | None = Field(default=None, validate_default=True)
    price_cents: int | None = Field(default=None, validate_default=True)
    currency: str | None = None
    is_in_person: bool = False
    location: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Please give your product a name.')
        return normalized

    @field_validator('description', 'location')
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip()

    @field_validator('duration_minutes')
    @classmethod
    def default_duration(cls, value: int | None) -> int:
        if not value or value <= 0:
            return config.DEFAULT_DURATION_MINUTES
        return value

    @field_validator('price_cents')
    @classmethod
    def default_price(cls, value: int | None) -> int:
        if value is None:
            return 0
        if value < 0:
            raise ValueError('Price cannot be negative.')
        return value


class OwnerProductResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    duration_minutes: int
    price_cents: int
    currency: str | None = None
    is_active: bool
    is_in_person: bool
    location: str | None = None

    class Config:
        from_attributes = True


class RuleRequest(BaseModel):
    weekday: int
    start_time: time
    end_time: time
    valid_from: date | None = None
    valid_to: date | None = None

    @field_validator('weekday')
    @classmethod
    def validate_weekday(cls, value: int) -> int:
        try:
            stored_weekday_to_calendar(value)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_times(cls, value):
        try:
            return parse_wall_time(value)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

    @model_validator(mode='after')
    def check_bounds(self) -> 'RuleRequest':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        if self.valid_from and self.valid_to and self.valid_to < self.valid_from:
            raise ValueError('valid_to must not be before valid_from.')
        return self


class RuleResponse(BaseModel):
    id: int
    weekday: int
    start_time: time
    end_time: time
    valid_from: date | None = None
    valid_to: date | None = None

    class Config:
        from_attributes = True


class OverrideRequest(BaseModel):
    date: date
    start_time: time = time(0, 0)
    end_time: time = OVERRIDE_DAY_END_INPUT
    type: Literal['unavailable'] = OVERRIDE_TYPE_UNAVAILABLE

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_times(cls, value):
        try:
            return parse_wall_time(value)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

    @model_validator(mode='after')
    def check_bounds(self) -> 'OverrideRequest':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self

    def interval(self) -> tuple[datetime, datetime]:
        start_at = datetime.combine(self.date, self.start_time)
        # 23:59 is the editor's "end of day"; store the last instant so the day is fully blocked.
        end_time = time.max if self.end_time == OVERRIDE_DAY_END_INPUT else self.end_time
        return start_at, datetime.combine(self.date, end_time)


class OverrideResponse(BaseModel):
    id: int
    start_at: datetime
    end_at: datetime
    type: str

    class Config:
        from_attributes = True


def _database_unavailable() -> HTTPException:
    logger.exception('Database error while handling setup request')
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


def get_owner_page_or_404(db: Session, owner_user_id: str) -> BookingPage:
    page = queries.get_owner_page(db, owner_user_id)
    if not page:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Create your booking page first.',
        )
    return page


def ensure_slug_free(db: Session, slug: str, page_id: int | None) -> None:
    existing = queries.get_page_by_slug(db, slug)
    if existing and existing.id != page_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLUG_TAKEN_DETAIL,
        )


def get_owned_product_or_404(db: Session, page: BookingPage, product_id: int) -> BookingProduct:
    product = db.query(BookingProduct).filter(
        BookingProduct.id == product_id,
        BookingProduct.booking_page_id == page.id,
    ).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Session type not found.')
    return product


def get_owned_request_or_404(db: Session, page: BookingPage, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.booking_page_id == page.id,
    ).first()
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Booking request not found.')
    return booking


@router.get('/page', response_model=OwnerPageResponse)
def get_my_page(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_owner_page_or_404(db, owner_user_id)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.put('/page', response_model=OwnerPageResponse)
def save_page_settings(
    data: PageSettingsRequest,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = queries.get_owner_page(db, owner_user_id)

        if page is None:
            slug = data.slug
            if slug is None and data.email:
                slug = _slug_from_email(data.email)
            if slug is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Please choose a booking page address.',
                )
            ensure_slug_free(db, slug, None)
            page = BookingPage(
                owner_user_id=owner_user_id,
                slug=slug,
                title=data.title or 'Session bookings',
                description=data.description or 'Book time with me.',
                logo_url=data.logo_url,
                min_gap_minutes=config.DEFAULT_MIN_GAP_MINUTES if data.min_gap_minutes is None else data.min_gap_minutes,
                is_live=bool(data.is_live),
            )
            db.add(page)
        else:
            if data.slug is not None:
                ensure_slug_free(db, data.slug, page.id)
                page.slug = data.slug
            for field in ('title', 'description', 'logo_url'):
                if field in data.model_fields_set:
                    setattr(page, field, getattr(data, field))
            if data.min_gap_minutes is not None:
                page.min_gap_minutes = data.min_gap_minutes
            if data.is_live is not None:
                page.is_live = data.is_live

        db.commit()
        db.refresh(page)
        return page
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Slug conflict while saving booking page for owner %s', owner_user_id)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLUG_TAKEN_DETAIL,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/slug-availability', response_model=SlugAvailabilityResponse)
def check_slug_availability(
    slug: str = Query(...),
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        normalized = _normalize_slug(slug)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    ensure_database_ready()

    try:
        page = queries.get_owner_page(db, owner_user_id)
        existing = queries.get_page_by_slug(db, normalized)
        available = existing is None or (page is not None and existing.id == page.id)
        return SlugAvailabilityResponse(slug=normalized, available=available)
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.post('/page/live', response_model=OwnerPageResponse)
def toggle_page_live(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        page.is_live = not page.is_live
        db.commit()
        db.refresh(page)
        logger.info('Booking page %s is now %s', page.slug, 'live' if page.is_live else 'offline')
        return page
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/products', response_model=list[OwnerProductResponse])
def list_my_products(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        return db.query(BookingProduct).filter(
            BookingProduct.booking_page_id == page.id,
        ).order_by(BookingProduct.created_at.asc(), BookingProduct.id.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


def _apply_product_fields(product: BookingProduct, data: ProductRequest) -> None:
    product.name = data.name
    product.description = data.description
    product.duration_minutes = data.duration_minutes
    product.price_cents = data.price_cents
    product.currency = data.currency or product.currency or config.DEFAULT_CURRENCY
    product.is_in_person = data.is_in_person
    product.location = data.location if data.is_in_person else None


@router.post('/products', response_model=OwnerProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductRequest,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        product = BookingProduct(booking_page_id=page.id, is_active=True)
        _apply_product_fields(product, data)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.put('/products/{product_id}', response_model=OwnerProductResponse)
def update_product(
    product_id: int,
    data: ProductRequest,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        product = get_owned_product_or_404(db, page, product_id)
        _apply_product_fields(product, data)
        db.commit()
        db.refresh(product)
        return product
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.post('/products/{product_id}/toggle-active', response_model=OwnerProductResponse)
def toggle_product_active(
    product_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        product = get_owned_product_or_404(db, page, product_id)
        product.is_active = not product.is_active
        db.commit()
        db.refresh(product)
        return product
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.delete('/products/{product_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        product = get_owned_product_or_404(db, page, product_id)
        db.delete(product)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/rules', response_model=list[RuleResponse])
def list_my_rules(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        return db.query(AvailabilityRule).filter(
            AvailabilityRule.booking_page_id == page.id,
        ).order_by(AvailabilityRule.weekday.asc(), AvailabilityRule.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.post('/rules', response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: RuleRequest,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        rule = AvailabilityRule(
            booking_page_id=page.id,
            weekday=data.weekday,
            start_time=data.start_time,
            end_time=data.end_time,
            valid_from=data.valid_from,
            valid_to=data.valid_to,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        rule = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.booking_page_id == page.id,
        ).first()
        if not rule:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Availability rule not found.')

        db.delete(rule)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/overrides', response_model=list[OverrideResponse])
def list_my_overrides(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        return db.query(AvailabilityOverride).filter(
            AvailabilityOverride.booking_page_id == page.id,
        ).order_by(AvailabilityOverride.start_at.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.post('/overrides', response_model=OverrideResponse, status_code=status.HTTP_201_CREATED)
def create_override(
    data: OverrideRequest,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        start_at, end_at = data.interval()
        override = AvailabilityOverride(
            booking_page_id=page.id,
            start_at=start_at,
            end_at=end_at,
            type=data.type,
        )
        db.add(override)
        db.commit()
        db.refresh(override)
        return override
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.delete('/overrides/{override_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_override(
    override_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        override = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.id == override_id,
            AvailabilityOverride.booking_page_id == page.id,
        ).first()
        if not override:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Override not found.')

        db.delete(override)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.get('/requests', response_model=list[BookingRequestResponse])
def list_booking_requests(
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        return db.query(Booking).filter(
            Booking.booking_page_id == page.id,
            Booking.status == STATUS_REQUESTED,
        ).order_by(Booking.start_at.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


@router.get('/sessions', response_model=list[BookingRequestResponse])
def list_sessions(
    period: Literal['upcoming', 'past'] = Query(default='upcoming'),
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = get_owner_page_or_404(db, owner_user_id)
        now = current_time()
        sessions = db.query(Booking).filter(
            Booking.booking_page_id == page.id,
            Booking.status == STATUS_ACCEPTED,
        )
        if period == 'past':
            return sessions.filter(Booking.end_at < now).order_by(Booking.start_at.desc()).all()
        return sessions.filter(Booking.start_at >= now).order_by(Booking.start_at.asc()).all()
    except SQLAlchemyError as exc:
        raise _database_unavailable() from exc


def _decide_request(db: Session, owner_user_id: str, booking_id: int, new_status: str) -> Booking:
    page = get_owner_page_or_404(db, owner_user_id)
    booking = get_owned_request_or_404(db, page, booking_id)
    if booking.status != STATUS_REQUESTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f'Only requested bookings can be {new_status}; this one is {booking.status}.',
        )

    booking.status = new_status
    db.commit()
    db.refresh(booking)
    logger.info('Booking %s on page %s %s', booking.id, page.slug, new_status)
    return booking


@router.post('/requests/{booking_id}/accept', response_model=BookingRequestResponse)
def accept_booking_request(
    booking_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return _decide_request(db, owner_user_id, booking_id, STATUS_ACCEPTED)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc


@router.post('/requests/{booking_id}/decline', response_model=BookingRequestResponse)
def decline_booking_request(
    booking_id: int,
    owner_user_id: str = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return _decide_request(db, owner_user_id, booking_id, STATUS_DECLINED)
    except SQLAlchemyError as exc:
        db.rollback()
        raise _database_unavailable() from exc
