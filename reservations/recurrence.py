"""
Recurrence expansion engine.

Turns one recurring reservation request into concrete (start, end) occurrences.

Algorithm: walk a cursor from the series start, one step per frequency/interval,
until the end of the "until" day (inclusive). Each cursor position becomes an
occurrence unless it falls on an excluded date or on a weekend while weekends
are disabled. Every occurrence keeps the original duration exactly.

All values are naive wall-clock datetimes. Date keys come from the cursor's
own year/month/day, never from a UTC-normalized value.

Monthly steps are computed from the series start with relativedelta, so a
series starting on the 31st lands on the last day of shorter months
(Jan 31 -> Feb 28 -> Mar 31) instead of rolling into the next month.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, NamedTuple

from dateutil.relativedelta import relativedelta

from .enums import Frequency
from .types import parse_calendar_date, parse_wall_clock


# Inclusive end of the "until" day
END_OF_DAY = time(23, 59, 59, 999000)

# Saturday and Sunday in date.weekday()
WEEKEND_DAYS = (5, 6)


class ValidationError(ValueError):
    """Malformed recurrence or reservation input. No job is ever created for it."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class Occurrence(NamedTuple):
    start: datetime
    end: datetime


@dataclass(frozen=True)
class RecurrenceRule:
    """
    A recurrence definition as submitted with a reservation request.

    Values are kept as given; expand() parses and validates them.
    """

    start: Any
    end: Any
    frequency: Any
    until: Any
    interval: Any = 1
    exclude_dates: Iterable[Any] = field(default_factory=tuple)

    @classmethod
    def from_request(cls, start: Any, end: Any, recurrence: dict) -> "RecurrenceRule":
        """Build from the API's recurrence object ({frequency, interval, until, excludeDates})."""
        exclude = recurrence.get("excludeDates")
        if exclude is None:
            exclude = recurrence.get("exclude_dates")
        return cls(
            start=start,
            end=end,
            frequency=recurrence.get("frequency"),
            interval=recurrence.get("interval", 1),
            until=recurrence.get("until"),
            exclude_dates=tuple(exclude or ()),
        )


def is_weekend(value: date) -> bool:
    return value.weekday() in WEEKEND_DAYS


def normalize_interval(value: Any) -> int:
    """Coerce interval to a positive integer, falling back to 1."""
    if isinstance(value, bool):
        return 1
    if isinstance(value, int):
        return value if value >= 1 else 1
    if isinstance(value, float):
        return int(value) if value.is_integer() and value >= 1 else 1
    if isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
        return number if number >= 1 else 1
    return 1


def parse_frequency(value: Any) -> Frequency:
    try:
        return Frequency(value)
    except ValueError:
        raise ValidationError(f"Unsupported recurrence frequency: {value}") from None


def _parse(label: str, value: Any, parser) -> Any:
    try:
        return parser(value)
    except (ValueError, TypeError, OverflowError):
        raise ValidationError(f"Invalid {label} date: {value!r}") from None


def _step(frequency: Frequency, interval: int, index: int) -> timedelta | relativedelta:
    if frequency is Frequency.daily:
        return timedelta(days=interval * index)
    if frequency is Frequency.weekly:
        return timedelta(days=7 * interval * index)
    return relativedelta(months=interval * index)


def expand(rule: RecurrenceRule, weekends_enabled: bool = False) -> list[Occurrence]:
    """
    Expand a recurrence rule into ordered occurrences.

    Args:
        rule: The recurrence definition
        weekends_enabled: Keep occurrences that fall on Saturday/Sunday

    Returns:
        Occurrences in chronological order, each lasting exactly end - start

    Raises:
        ValidationError: If start, end or until don't parse, end is not after
            start, or the frequency is unknown
    """
    start = _parse("start", rule.start, parse_wall_clock)
    end = _parse("end", rule.end, parse_wall_clock)
    until = _parse("until", rule.until, parse_calendar_date)
    frequency = parse_frequency(rule.frequency)

    if end <= start:
        raise ValidationError("Recurrence end must be after start.")

    interval = normalize_interval(rule.interval)
    excluded = parse_exclude_dates(rule.exclude_dates)
    boundary = datetime.combine(until, END_OF_DAY)
    duration = end - start

    occurrences: list[Occurrence] = []
    index = 0
    cursor = start
    while cursor <= boundary:
        day_key = cursor.date()

        if (weekends_enabled or not is_weekend(day_key)) and day_key not in excluded:
            try:
                occurrences.append(Occurrence(cursor, cursor + duration))
            except OverflowError:
                break

        index += 1
        try:
            cursor = start + _step(frequency, interval, index)
        except (OverflowError, ValueError):
            # Past year 9999, where nothing later can be represented
            break

    return occurrences


def parse_exclude_dates(values: Iterable[Any]) -> set[date]:
    """Excluded calendar dates. Entries that don't parse can never match and are ignored."""
    excluded = set()
    for value in values or ():
        try:
            excluded.add(parse_calendar_date(value))
        except (ValueError, TypeError, OverflowError):
            continue
    return excluded


def expand_reservation(
    start: Any,
    end: Any,
    recurrence: dict | None = None,
    weekends_enabled: bool = False,
) -> list[Occurrence]:
    """
    Expand a reservation request that may or may not recur.

    Without a recurrence the request is its own single occurrence.
    """
    if not recurrence:
        start_dt = _parse("start", start, parse_wall_clock)
        end_dt = _parse("end", end, parse_wall_clock)
        return [Occurrence(start_dt, end_dt)]

    rule = RecurrenceRule.from_request(start, end, recurrence)
    return expand(rule, weekends_enabled=weekends_enabled)


def validate_recurrence_payload(recurrence: dict | None, end: Any) -> list[str]:
    """
    Check a recurrence object from a reservation request.

    Returns a list of problems; empty when the payload is acceptable or there
    is no recurrence at all.
    """
    if not recurrence:
        return []

    errors = []

    frequency = recurrence.get("frequency")
    if not frequency:
        errors.append("Recurrence frequency is required.")
    elif frequency not in {f.value for f in Frequency}:
        errors.append(f"Unsupported recurrence frequency: {frequency}.")

    interval = recurrence.get("interval")
    if interval is not None and normalize_interval(interval) != _as_number(interval):
        errors.append("Recurrence interval must be an integer >= 1.")

    until_raw = recurrence.get("until")
    if not until_raw:
        errors.append("Recurrence end date is required.")
    else:
        try:
            until = parse_calendar_date(until_raw)
        except (ValueError, TypeError, OverflowError):
            errors.append("Recurring end date must be a valid date.")
        else:
            try:
                end_dt = parse_wall_clock(end)
            except (ValueError, TypeError, OverflowError):
                end_dt = None
            if end_dt is not None and datetime.combine(until, END_OF_DAY) <= end_dt:
                errors.append("Recurring end date must be after reservation end.")

    exclude = recurrence.get("excludeDates", recurrence.get("exclude_dates"))
    if exclude is not None and not isinstance(exclude, (list, tuple, set, frozenset)):
        errors.append("excludeDates must be an array.")

    return errors


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
