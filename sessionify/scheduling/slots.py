"""Bookable slot generation for public booking pages.

``resolve_slots`` turns a page's weekly availability rules, its date overrides
and the bookings already holding time into the concrete slots offered for one
session product. All datetimes are naive local wall-clock values. Nothing in
this module reads the clock or touches the database, so callers pass "now"
and the window start explicitly.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, NamedTuple

from sessionify.core import config

logger = logging.getLogger(__name__)

WALL_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$')
DAY_END_TIME = time(23, 59, 59, 999000)
OVERRIDE_TYPE_UNAVAILABLE = 'unavailable'


class ValidationError(ValueError):
    """Raised when slot resolution inputs are malformed."""


@dataclass(frozen=True)
class Slot:
    id: str
    date_key: str
    start: datetime
    end: datetime


class _Rule(NamedTuple):
    weekday: int
    start_time: time
    end_time: time
    valid_from: str | None
    valid_to: str | None


def calendar_weekday(day: date) -> int:
    """Weekday of ``day`` counted 0=Sunday..6=Saturday."""
    return day.isoweekday() % 7


def stored_weekday_to_calendar(stored: int) -> int:
    """Map a stored rule weekday onto the 0=Sunday..6=Saturday calendar.

    Rules store ISO weekdays (1=Monday..7=Sunday). Rows written by the old
    weekly editor used 0 for Sunday, so both 0 and 7 map to Sunday.
    """
    if isinstance(stored, bool) or not isinstance(stored, int) or not 0 <= stored <= 7:
        raise ValidationError(f'Invalid rule weekday: {stored!r}. Expected 1 (Monday) to 7 (Sunday).')
    return 0 if stored == 7 else stored


def parse_wall_time(value: time | str) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) wall-clock value; seconds are ignored."""
    if isinstance(value, time):
        return value

    if isinstance(value, str):
        match = WALL_TIME_PATTERN.match(value.strip())
        if match:
            hour, minute = int(match.group(1)), int(match.group(2))
            if hour < 24 and minute < 60:
                return time(hour, minute)

    raise ValidationError(f'Invalid wall-clock time: {value!r}. Expected HH:MM.')


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap of [a_start, a_end) and [b_start, b_end); touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def to_local_wall_clock(value: datetime) -> datetime:
    """Read an aware timestamp in local wall-clock time; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def window_bounds(
    window_start: date | datetime,
    window_days: int,
    include_end_day: bool = True,
) -> tuple[datetime, datetime]:
    """First and last instant of the days ``resolve_slots`` walks for this window."""
    days = list(_iter_window_days(window_start, window_days, include_end_day))
    return datetime.combine(days[0], time.min), datetime.combine(days[-1], time.max)


def group_slots_by_day(
    slots: Iterable[Slot],
    window_start: date | datetime,
    window_days: int,
    include_end_day: bool = True,
) -> list[tuple[str, list[Slot]]]:
    """Group slots under every day of the window, keeping days without slots."""
    grouped: dict[str, list[Slot]] = {
        day.isoformat(): [] for day in _iter_window_days(window_start, window_days, include_end_day)
    }
    for slot in slots:
        grouped.setdefault(slot.date_key, []).append(slot)
    return list(grouped.items())


def first_available_day(day_groups: Iterable[tuple[str, list[Slot]]]) -> str | None:
    for date_key, day_slots in day_groups:
        if day_slots:
            return date_key
    return None


def resolve_slots(
    page,
    product,
    rules,
    overrides,
    existing_bookings,
    window_start: date | datetime,
    window_days: int = 14,
    *,
    include_end_day: bool = True,
    deduplicate: bool = False,
    not_before: datetime | None = None,
) -> list[Slot]:
    """Compute the bookable slots for ``product`` on ``page``.

    Days are walked from ``window_start`` for ``window_days`` days, plus the
    end day itself when ``include_end_day`` is set. For each day the rules on
    that weekday (and inside their valid_from/valid_to bounds) are walked from
    their start time in steps of duration plus the page's minimum gap, keeping
    every candidate that fits before the rule ends and overlaps neither a
    partial "unavailable" override nor an existing booking. A full-day
    "unavailable" override empties the day.

    Slots come back day by day, then in rule order, then chronologically
    within a rule. Overlapping rules can yield duplicate candidates; pass
    ``deduplicate=True`` to keep only the first. Candidates starting at or
    before ``not_before`` are dropped when it is given.

    Raises:
        ValidationError: on a malformed rule time or weekday, a non-positive
            duration, a negative gap, or an invalid window.
    """
    duration_minutes = _resolve_duration(product)
    gap_minutes = _resolve_gap(page)
    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=duration_minutes + gap_minutes)

    prepared_rules = [_prepare_rule(rule) for rule in rules or ()]
    blocks = [
        (_as_datetime(override.start_at, 'override start_at'), _as_datetime(override.end_at, 'override end_at'))
        for override in overrides or ()
        if override.type == OVERRIDE_TYPE_UNAVAILABLE
    ]
    busy = [
        (_as_datetime(booking.start_at, 'booking start_at'), _as_datetime(booking.end_at, 'booking end_at'))
        for booking in existing_bookings or ()
    ]

    slots: list[Slot] = []

    for day in _iter_window_days(window_start, window_days, include_end_day):
        date_key = day.isoformat()
        weekday = calendar_weekday(day)

        applicable_rules = [
            rule for rule in prepared_rules
            if rule.weekday == weekday
            and (rule.valid_from is None or date_key >= rule.valid_from)
            and (rule.valid_to is None or date_key <= rule.valid_to)
        ]

        day_blocks = [(start, end) for start, end in blocks if start.date() <= day <= end.date()]
        day_start = datetime.combine(day, time.min)
        day_end = datetime.combine(day, DAY_END_TIME)
        if any(start <= day_start and end >= day_end for start, end in day_blocks):
            continue

        if not applicable_rules:
            continue

        emitted: set[tuple[datetime, datetime]] = set()

        for rule in applicable_rules:
            rule_end = datetime.combine(day, rule.end_time)
            slot_start = datetime.combine(day, rule.start_time)

            while slot_start + duration <= rule_end:
                slot_end = slot_start + duration

                if (
                    (not_before is None or slot_start > not_before)
                    and not any(intervals_overlap(slot_start, slot_end, start, end) for start, end in day_blocks)
                    and not any(intervals_overlap(slot_start, slot_end, start, end) for start, end in busy)
                    and not (deduplicate and (slot_start, slot_end) in emitted)
                ):
                    emitted.add((slot_start, slot_end))
                    slots.append(
                        Slot(
                            id=f'{date_key}-{slot_start.isoformat()}',
                            date_key=date_key,
                            start=slot_start,
                            end=slot_end,
                        )
                    )

                slot_start += step

    logger.debug(
        'Resolved %d slots (duration=%d, gap=%d) from %d rules, %d blocks, %d bookings',
        len(slots), duration_minutes, gap_minutes, len(prepared_rules), len(blocks), len(busy),
    )
    return slots


def _iter_window_days(window_start: date | datetime, window_days: int, include_end_day: bool) -> Iterator[date]:
    if isinstance(window_start, datetime):
        first_day = window_start.date()
    elif isinstance(window_start, date):
        first_day = window_start
    else:
        raise ValidationError(f'Window start must be a date, got {window_start!r}.')

    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days < 1:
        raise ValidationError(f'Window must cover at least one day, got {window_days!r}.')

    day_count = window_days + 1 if include_end_day else window_days
    for offset in range(day_count):
        yield first_day + timedelta(days=offset)


def _resolve_duration(product) -> int:
    duration = getattr(product, 'duration_minutes', None)
    if duration is None:
        return config.DEFAULT_DURATION_MINUTES

    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValidationError(f'Product duration must be a positive number of minutes, got {duration!r}.')

    return duration


def _resolve_gap(page) -> int:
    gap = getattr(page, 'min_gap_minutes', None)
    if gap is None:
        return config.DEFAULT_MIN_GAP_MINUTES

    if isinstance(gap, bool) or not isinstance(gap, int) or gap < 0:
        raise ValidationError(f'Minimum gap must be zero or more minutes, got {gap!r}.')

    return gap


def _prepare_rule(rule) -> _Rule:
    return _Rule(
        weekday=stored_weekday_to_calendar(rule.weekday),
        start_time=parse_wall_time(rule.start_time),
        end_time=parse_wall_time(rule.end_time),
        valid_from=_date_key(rule.valid_from),
        valid_to=_date_key(rule.valid_to),
    )


def _date_key(value: date | str | None) -> str | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return value[:10]
    raise ValidationError(f'Invalid rule date bound: {value!r}.')


def _as_datetime(value: datetime | str, field: str) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(f'Invalid {field}: {value!r}.') from None

    if not isinstance(value, datetime):
        raise ValidationError(f'Invalid {field}: {value!r}.')

    return to_local_wall_clock(value)
