import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from sessionify.core import config
from sessionify.database import Base, engine, ensure_availability_schema, ensure_booking_schema
from sessionify.models import availability_override, availability_rule, booking, booking_page, booking_product  # noqa: F401
from sessionify.routes import booking_setup_routes, public_booking_routes

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Sessionify Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Sessionify Booking API Running'}


@app.get('/health')
def health():
    return {'status': 'ok', 'service': 'sessionify'}


app.include_router(public_booking_routes.router, prefix='/booking')
app.include_router(booking_setup_routes.router, prefix='/setup')
