import os
from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from sessionify.core import config  # noqa: E402
from sessionify.database import Base  # noqa: E402
from sessionify.models.booking import Booking  # noqa: E402
from sessionify.models.booking_page import BookingPage  # noqa: E402
from sessionify.models.booking_product import BookingProduct  # noqa: E402
from sessionify.routes.booking_setup_routes import (  # noqa: E402
    OverrideRequest,
    PageSettingsRequest,
    ProductRequest,
    RuleRequest,
    accept_booking_request,
    check_slug_availability,
    create_override,
    create_product,
    create_rule,
    decline_booking_request,
    delete_rule,
    get_my_page,
    list_booking_requests,
    list_my_rules,
    list_sessions,
    save_page_settings,
    toggle_page_live,
    toggle_product_active,
)
from sessionify.routes.public_booking_routes import list_available_slots  # noqa: E402

OWNER = 'owner-1'
NOW = datetime(2026, 1, 5, 8, 0)


@pytest.fixture
def setup_db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('sessionify.routes.booking_setup_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('sessionify.routes.booking_setup_routes.current_time', lambda: NOW)
    monkeypatch.setattr('sessionify.routes.public_booking_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('sessionify.routes.public_booking_routes.current_time', lambda: NOW)
    monkeypatch.setattr(config, 'BOOKING_WINDOW_DAYS', 14)
    monkeypatch.setattr(config, 'BOOKING_INCLUDE_END_DAY', True)
    monkeypatch.setattr(config, 'BOOKING_HIDE_PAST_SLOTS', True)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def owner_page(setup_db) -> BookingPage:
    return save_page_settings(
        data=PageSettingsRequest(slug='dr-smith', is_live=True),
        owner_user_id=OWNER,
        db=setup_db,
    )


def _add_booking(db, page: BookingPage, start_at: datetime, end_at: datetime, status: str) -> Booking:
    booking = Booking(
        booking_page_id=page.id,
        host_user_id=page.owner_user_id,
        client_name='Client',
        client_email='client@example.com',
        start_at=start_at,
        end_at=end_at,
        status=status,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def test_page_settings_request_normalizes_slug() -> None:
    request = PageSettingsRequest(slug='  Dr-Smith ', title='  ')

    assert request.slug == 'dr-smith'
    assert request.title is None


@pytest.mark.parametrize('slug', ['dr smith', 'dr/smith', '-leading'])
def test_page_settings_request_rejects_bad_slug(slug: str) -> None:
    with pytest.raises(ValidationError):
        PageSettingsRequest(slug=slug)


def test_page_settings_request_rejects_negative_gap() -> None:
    with pytest.raises(ValidationError):
        PageSettingsRequest(slug='dr-smith', min_gap_minutes=-1)


def test_save_page_settings_creates_page_with_defaults(setup_db, owner_page) -> None:
    assert owner_page.owner_user_id == OWNER
    assert owner_page.slug == 'dr-smith'
    assert owner_page.title == 'Session bookings'
    assert owner_page.description == 'Book time with me.'
    assert owner_page.min_gap_minutes == 15
    assert owner_page.is_live is True


def test_save_page_settings_derives_slug_from_email(setup_db) -> None:
    page = save_page_settings(
        data=PageSettingsRequest(email='Jane.Doe@example.com'),
        owner_user_id=OWNER,
        db=setup_db,
    )

    assert page.slug == 'jane-doe'


def test_save_page_settings_requires_slug_for_new_page(setup_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        save_page_settings(data=PageSettingsRequest(), owner_user_id=OWNER, db=setup_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Please choose a booking page address.'


def test_save_page_settings_rejects_slug_taken_by_another_owner(setup_db, owner_page) -> None:
    with pytest.raises(HTTPException) as exception_info:
        save_page_settings(data=PageSettingsRequest(slug='dr-smith'), owner_user_id='owner-2', db=setup_db)

    assert exception_info.value.status_code == 409


def test_save_page_settings_updates_existing_page(setup_db, owner_page) -> None:
    page = save_page_settings(
        data=PageSettingsRequest(slug='dr-jones', title='Dr Jones', min_gap_minutes=0),
        owner_user_id=OWNER,
        db=setup_db,
    )

    assert page.id == owner_page.id
    assert page.slug == 'dr-jones'
    assert page.title == 'Dr Jones'
    assert page.min_gap_minutes == 0
    assert page.is_live is True
    assert page.description == 'Book time with me.'


def test_save_page_settings_keeps_text_fields_left_out_of_update(setup_db, owner_page) -> None:
    save_page_settings(
        data=PageSettingsRequest(title='Dr Smith', logo_url='https://example.com/logo.png'),
        owner_user_id=OWNER,
        db=setup_db,
    )

    page = save_page_settings(data=PageSettingsRequest(is_live=False), owner_user_id=OWNER, db=setup_db)

    assert page.is_live is False
    assert page.title == 'Dr Smith'
    assert page.description == 'Book time with me.'
    assert page.logo_url == 'https://example.com/logo.png'


def test_save_page_settings_clears_text_field_sent_blank(setup_db, owner_page) -> None:
    page = save_page_settings(data=PageSettingsRequest(description='  '), owner_user_id=OWNER, db=setup_db)

    assert page.description is None
    assert page.title == 'Session bookings'


def test_save_page_settings_reports_slug_race_as_conflict(
    setup_db,
    owner_page,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr('sessionify.routes.booking_setup_routes.ensure_slug_free', lambda db, slug, page_id: None)

    with pytest.raises(HTTPException) as exception_info:
        save_page_settings(data=PageSettingsRequest(slug='dr-smith'), owner_user_id='owner-2', db=setup_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This address is already taken. Try another.'
    assert setup_db.query(BookingPage).count() == 1


def test_check_slug_availability(setup_db, owner_page) -> None:
    assert check_slug_availability(slug='DR-SMITH', owner_user_id=OWNER, db=setup_db).available is True
    assert check_slug_availability(slug='dr-smith', owner_user_id='owner-2', db=setup_db).available is False
    assert check_slug_availability(slug='someone-else', owner_user_id='owner-2', db=setup_db).available is True


def test_get_my_page_without_page_returns_not_found(setup_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_my_page(owner_user_id=OWNER, db=setup_db)

    assert exception_info.value.status_code == 404


def test_toggle_page_live_flips_flag(setup_db, owner_page) -> None:
    page = toggle_page_live(owner_user_id=OWNER, db=setup_db)

    assert page.is_live is False


def test_product_request_applies_defaults() -> None:
    request = ProductRequest(name=' Intro call ', duration_minutes=0)

    assert request.name == 'Intro call'
    assert request.duration_minutes == 60
    assert request.price_cents == 0


def test_product_request_requires_name() -> None:
    with pytest.raises(ValidationError):
        ProductRequest(name='   ')


def test_create_product_drops_location_for_online_sessions(setup_db, owner_page) -> None:
    product = create_product(
        data=ProductRequest(name='Online session', duration_minutes=45, price_cents=3000, location='Room 4'),
        owner_user_id=OWNER,
        db=setup_db,
    )

    assert product.booking_page_id == owner_page.id
    assert product.duration_minutes == 45
    assert product.location is None
    assert product.currency == 'GBP'
    assert product.is_active is True


def test_toggle_product_active(setup_db, owner_page) -> None:
    product = create_product(data=ProductRequest(name='Session'), owner_user_id=OWNER, db=setup_db)

    toggled = toggle_product_active(product_id=product.id, owner_user_id=OWNER, db=setup_db)

    assert toggled.is_active is False


def test_toggle_product_active_rejects_other_owner(setup_db, owner_page) -> None:
    product = create_product(data=ProductRequest(name='Session'), owner_user_id=OWNER, db=setup_db)
    save_page_settings(data=PageSettingsRequest(slug='other-page'), owner_user_id='owner-2', db=setup_db)

    with pytest.raises(HTTPException) as exception_info:
        toggle_product_active(product_id=product.id, owner_user_id='owner-2', db=setup_db)

    assert exception_info.value.status_code == 404


def test_rule_request_parses_wall_clock_strings() -> None:
    request = RuleRequest(weekday=7, start_time='09:00', end_time='17:30:00')

    assert request.start_time == time(9, 0)
    assert request.end_time == time(17, 30)


@pytest.mark.parametrize(
    'payload',
    [
        {'weekday': 8, 'start_time': '09:00', 'end_time': '12:00'},
        {'weekday': 1, 'start_time': '12:00', 'end_time': '09:00'},
        {'weekday': 1, 'start_time': '9am', 'end_time': '12:00'},
        {'weekday': 1, 'start_time': '09:00', 'end_time': '12:00', 'valid_from': '2026-02-01', 'valid_to': '2026-01-01'},
    ],
)
def test_rule_request_rejects_invalid_rules(payload: dict) -> None:
    with pytest.raises(ValidationError):
        RuleRequest(**payload)


def test_create_and_delete_rule(setup_db, owner_page) -> None:
    rule = create_rule(
        data=RuleRequest(weekday=1, start_time='09:00', end_time='12:00'),
        owner_user_id=OWNER,
        db=setup_db,
    )

    assert [r.id for r in list_my_rules(owner_user_id=OWNER, db=setup_db)] == [rule.id]

    delete_rule(rule_id=rule.id, owner_user_id=OWNER, db=setup_db)

    assert list_my_rules(owner_user_id=OWNER, db=setup_db) == []


def test_delete_missing_rule_returns_not_found(setup_db, owner_page) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_rule(rule_id=999, owner_user_id=OWNER, db=setup_db)

    assert exception_info.value.status_code == 404


def test_override_request_default_interval_covers_whole_day() -> None:
    request = OverrideRequest(date=date(2026, 1, 5))

    assert request.interval() == (datetime(2026, 1, 5, 0, 0), datetime.combine(date(2026, 1, 5), time.max))


def test_override_request_keeps_partial_interval() -> None:
    request = OverrideRequest(date=date(2026, 1, 5), start_time='12:00', end_time='13:30')

    assert request.interval() == (datetime(2026, 1, 5, 12, 0), datetime(2026, 1, 5, 13, 30))


def test_override_request_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        OverrideRequest(date=date(2026, 1, 5), type='available')


def test_default_override_blocks_public_slots_for_that_day(setup_db, owner_page) -> None:
    product = create_product(data=ProductRequest(name='Session', duration_minutes=60), owner_user_id=OWNER, db=setup_db)
    create_rule(data=RuleRequest(weekday=1, start_time='09:00', end_time='12:00'), owner_user_id=OWNER, db=setup_db)
    create_override(data=OverrideRequest(date=date(2026, 1, 5)), owner_user_id=OWNER, db=setup_db)

    calendar = list_available_slots(slug='dr-smith', product_id=product.id, db=setup_db)

    assert calendar.first_available_date == date(2026, 1, 12)
    assert not calendar.days[0].slots


def test_accept_booking_request_moves_it_to_upcoming_sessions(setup_db, owner_page) -> None:
    booking = _add_booking(setup_db, owner_page, datetime(2026, 1, 6, 9, 0), datetime(2026, 1, 6, 10, 0), 'requested')

    assert [b.id for b in list_booking_requests(owner_user_id=OWNER, db=setup_db)] == [booking.id]

    accepted = accept_booking_request(booking_id=booking.id, owner_user_id=OWNER, db=setup_db)

    assert accepted.status == 'accepted'
    assert list_booking_requests(owner_user_id=OWNER, db=setup_db) == []
    assert [b.id for b in list_sessions(period='upcoming', owner_user_id=OWNER, db=setup_db)] == [booking.id]


def test_decline_after_accept_is_a_conflict(setup_db, owner_page) -> None:
    booking = _add_booking(setup_db, owner_page, datetime(2026, 1, 6, 9, 0), datetime(2026, 1, 6, 10, 0), 'requested')
    accept_booking_request(booking_id=booking.id, owner_user_id=OWNER, db=setup_db)

    with pytest.raises(HTTPException) as exception_info:
        decline_booking_request(booking_id=booking.id, owner_user_id=OWNER, db=setup_db)

    assert exception_info.value.status_code == 409


def test_declined_request_stops_blocking_slots(setup_db, owner_page) -> None:
    product = create_product(data=ProductRequest(name='Session', duration_minutes=60), owner_user_id=OWNER, db=setup_db)
    create_rule(data=RuleRequest(weekday=1, start_time='09:00', end_time='10:00'), owner_user_id=OWNER, db=setup_db)
    booking = _add_booking(setup_db, owner_page, datetime(2026, 1, 5, 9, 0), datetime(2026, 1, 5, 10, 0), 'requested')

    before = list_available_slots(slug='dr-smith', product_id=product.id, db=setup_db)
    decline_booking_request(booking_id=booking.id, owner_user_id=OWNER, db=setup_db)
    after = list_available_slots(slug='dr-smith', product_id=product.id, db=setup_db)

    assert datetime(2026, 1, 5, 9, 0) not in [slot.start for slot in before.slots]
    assert datetime(2026, 1, 5, 9, 0) in [slot.start for slot in after.slots]


def test_list_sessions_splits_past_and_upcoming(setup_db, owner_page) -> None:
    past = _add_booking(setup_db, owner_page, datetime(2026, 1, 1, 9, 0), datetime(2026, 1, 1, 10, 0), 'accepted')
    older = _add_booking(setup_db, owner_page, datetime(2025, 12, 20, 9, 0), datetime(2025, 12, 20, 10, 0), 'accepted')
    upcoming = _add_booking(setup_db, owner_page, datetime(2026, 1, 7, 9, 0), datetime(2026, 1, 7, 10, 0), 'accepted')
    _add_booking(setup_db, owner_page, datetime(2026, 1, 8, 9, 0), datetime(2026, 1, 8, 10, 0), 'requested')

    assert [b.id for b in list_sessions(period='past', owner_user_id=OWNER, db=setup_db)] == [past.id, older.id]
    assert [b.id for b in list_sessions(period='upcoming', owner_user_id=OWNER, db=setup_db)] == [upcoming.id]


def test_accept_request_of_another_page_returns_not_found(setup_db, owner_page) -> None:
    booking = _add_booking(setup_db, owner_page, datetime(2026, 1, 6, 9, 0), datetime(2026, 1, 6, 10, 0), 'requested')
    save_page_settings(data=PageSettingsRequest(slug='other-page'), owner_user_id='owner-2', db=setup_db)

    with pytest.raises(HTTPException) as exception_info:
        accept_booking_request(booking_id=booking.id, owner_user_id='owner-2', db=setup_db)

    assert exception_info.value.status_code == 404
