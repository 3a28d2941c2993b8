import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sessionify.db")

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "")

BOOKING_WINDOW_DAYS = int(os.getenv("BOOKING_WINDOW_DAYS", "14"))
BOOKING_INCLUDE_END_DAY = _get_bool(os.getenv("BOOKING_INCLUDE_END_DAY"), default=True)
BOOKING_DEDUPLICATE_SLOTS = _get_bool(os.getenv("BOOKING_DEDUPLICATE_SLOTS"), default=False)
BOOKING_HIDE_PAST_SLOTS = _get_bool(os.getenv("BOOKING_HIDE_PAST_SLOTS"), default=True)
BOOKING_VERIFY_SLOT_ON_SUBMIT = _get_bool(os.getenv("BOOKING_VERIFY_SLOT_ON_SUBMIT"), default=True)

DEFAULT_MIN_GAP_MINUTES = int(os.getenv("DEFAULT_MIN_GAP_MINUTES", "15"))
DEFAULT_DURATION_MINUTES = int(os.getenv("DEFAULT_DURATION_MINUTES", "60"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "GBP")
MAX_CLIENT_NOTES_LENGTH = int(os.getenv("MAX_CLIENT_NOTES_LENGTH", "600"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if BOOKING_WINDOW_DAYS < 1:
        raise RuntimeError("BOOKING_WINDOW_DAYS must be at least 1.")
    if DEFAULT_MIN_GAP_MINUTES < 0:
        raise RuntimeError("DEFAULT_MIN_GAP_MINUTES must not be negative.")
    if DEFAULT_DURATION_MINUTES < 1:
        raise RuntimeError("DEFAULT_DURATION_MINUTES must be positive.")
