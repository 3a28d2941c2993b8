from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from sessionify.core import config


connect_args = {"check_same_thread": False} if config.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(config.DATABASE_URL, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_booking_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'booking_availability_rules' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_rules_page_weekday ON booking_availability_rules(booking_page_id, weekday)')
            )
            if 'booking_availability_overrides' in inspector.get_table_names():
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_overrides_page_range ON booking_availability_overrides(booking_page_id, start_at, end_at)')
                )

        _availability_schema_checked = True


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_page_range ON bookings(booking_page_id, start_at, end_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_page_status ON bookings(booking_page_id, status)')
            )

        _booking_schema_checked = True
