"""
Time helpers for the booking engine.

Bookings are stored as naive UTC datetimes. Weekday and time-of-day checks
against a counsellor's availability are done in a single reference timezone
(``BOOKING_TIMEZONE``), so ``"09:00-11:00"`` means 09:00 local to the campus.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from scheduling.errors import InvalidInput

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_RANGE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)-(([01]\d|2[0-3]):([0-5]\d)|24:00)$")


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone {name!r}") from exc


def parse_timestamp(value, tz: ZoneInfo, field: str = "time") -> datetime:
    """Parse an ISO-8601 string into an aware datetime.

    Values without an offset are taken to be in the reference zone.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput(f"{field} is required")
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            raise InvalidInput(f"Invalid {field}. Use ISO e.g. 2026-01-19T09:00:00")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def to_storage(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def from_storage(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc)


def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def local_slot(start: datetime, end: datetime, tz: ZoneInfo) -> Optional[Tuple[str, str, str]]:
    """Return ``(weekday, "HH:MM", "HH:MM")`` for a slot in the reference zone.

    ``None`` when the slot runs into a later local day. An end of exactly
    midnight is reported as ``"24:00"``.
    """
    local_start = start.astimezone(tz)
    local_end = end.astimezone(tz)

    start_hm = local_start.strftime("%H:%M")
    if local_end.date() == local_start.date():
        end_hm = local_end.strftime("%H:%M")
    elif (
        local_end.date() == local_start.date() + timedelta(days=1)
        and local_end.time() == datetime.min.time()
    ):
        end_hm = "24:00"
    else:
        return None

    return WEEKDAYS[local_start.weekday()], start_hm, end_hm


def parse_range(value: str) -> Tuple[str, str]:
    if not isinstance(value, str) or not _RANGE.match(value.strip()):
        raise InvalidInput(f"Invalid availability range {value!r}. Use HH:MM-HH:MM")
    slot_start, slot_end = value.strip().split("-")
    if slot_end <= slot_start:
        raise InvalidInput(f"Availability range {value!r} must end after it starts")
    return slot_start, slot_end


def fits_availability(availability: Dict[str, List[str]], weekday: str, start_hm: str, end_hm: str) -> bool:
    # zero-padded HH:MM compares correctly as strings
    for slot in (availability or {}).get(weekday, []):
        slot_start, _, slot_end = slot.partition("-")
        if slot_start <= start_hm and end_hm <= slot_end:
            return True
    return False


def validate_availability(table) -> Dict[str, List[str]]:
    """Normalise a weekday -> ranges table, rejecting overlaps within a day."""
    if not isinstance(table, dict):
        raise InvalidInput("availability must be an object keyed by weekday")

    cleaned = {}
    for day, ranges in table.items():
        name = day.strip().capitalize() if isinstance(day, str) else day
        if name not in WEEKDAYS:
            raise InvalidInput(f"Unknown weekday {day!r}")
        if not isinstance(ranges, list):
            raise InvalidInput(f"Ranges for {name} must be a list")

        parsed = sorted(parse_range(r) for r in ranges)
        for (_, prev_end), (next_start, _) in zip(parsed, parsed[1:]):
            if next_start < prev_end:
                raise InvalidInput(f"Availability ranges overlap on {name}")
        if parsed:
            cleaned[name] = [f"{s}-{e}" for s, e in parsed]
    return cleaned


def week_window(moment: datetime, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """Sunday 00:00 (inclusive) to the next Sunday 00:00 (exclusive), local time."""
    local = moment.astimezone(tz)
    days_since_sunday = (local.weekday() + 1) % 7
    sunday = local.date() - timedelta(days=days_since_sunday)
    start = datetime(sunday.year, sunday.month, sunday.day, tzinfo=tz)
    next_sunday = sunday + timedelta(days=7)
    end = datetime(next_sunday.year, next_sunday.month, next_sunday.day, tzinfo=tz)
    return start, end


def format_local(dt: datetime, tz: ZoneInfo) -> str:
    return dt.astimezone(tz).strftime("%A %d %b %Y, %H:%M")
