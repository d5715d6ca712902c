"""Region-to-local-time conversion used to enforce contact-hour windows.

Offsets come from a fixed table with a simple North American daylight-saving
rule (second Sunday of March through the first Sunday of November). All
inputs and outputs are naive UTC datetimes except where a function explicitly
returns local wall-clock time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

DEFAULT_REGION = "British Columbia"

REGION_UTC_OFFSETS: dict[str, float] = {
    "British Columbia": -8,
    "Alberta": -7,
    "Saskatchewan": -6,
    "Manitoba": -6,
    "Ontario": -5,
    "Quebec": -5,
    "New Brunswick": -4,
    "Nova Scotia": -4,
    "Prince Edward Island": -4,
    "Newfoundland and Labrador": -3.5,
}

NO_DST_REGIONS = frozenset({"Saskatchewan"})

_ABBREVIATIONS = {
    "British Columbia": ("PST", "PDT"),
    "Alberta": ("MST", "MDT"),
    "Saskatchewan": ("CST", "CST"),
    "Manitoba": ("CST", "CDT"),
    "Ontario": ("EST", "EDT"),
    "Quebec": ("EST", "EDT"),
    "Newfoundland and Labrador": ("NST", "NDT"),
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation used by the store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _nth_sunday(year: int, month: int, n: int) -> int:
    first = date(year, month, 1)
    first_sunday = 1 + (6 - first.weekday()) % 7
    return first_sunday + 7 * (n - 1)


def is_dst_active(day: date) -> bool:
    """North American DST window, evaluated per calendar day."""
    if day.month < 3 or day.month > 11:
        return False
    if 3 < day.month < 11:
        return True
    if day.month == 3:
        return day.day >= _nth_sunday(day.year, 3, 2)
    return day.day < _nth_sunday(day.year, 11, 1)


def resolve_region(region: str | None, default_region: str = DEFAULT_REGION) -> str:
    if region and region in REGION_UTC_OFFSETS:
        return region
    return default_region if default_region in REGION_UTC_OFFSETS else DEFAULT_REGION


def utc_offset_hours(region: str | None, day: date, default_region: str = DEFAULT_REGION) -> float:
    resolved = resolve_region(region, default_region)
    offset = REGION_UTC_OFFSETS[resolved]
    if resolved not in NO_DST_REGIONS and is_dst_active(day):
        offset += 1
    return offset


def local_time(region: str | None, now: datetime, default_region: str = DEFAULT_REGION) -> datetime:
    """Local wall-clock time in ``region`` for the naive UTC instant ``now``."""
    # DST is decided on the local calendar date, not the UTC one.
    standard = now + timedelta(hours=REGION_UTC_OFFSETS[resolve_region(region, default_region)])
    offset = utc_offset_hours(region, standard.date(), default_region)
    return now + timedelta(hours=offset)


def is_within_contact_hours(
    region: str | None,
    now: datetime,
    start_hour: int = 8,
    end_hour: int = 21,
    default_region: str = DEFAULT_REGION,
) -> bool:
    hour = local_time(region, now, default_region).hour
    return start_hour <= hour < end_hour


def next_local_hour(
    region: str | None,
    now: datetime,
    hour: int = 8,
    default_region: str = DEFAULT_REGION,
) -> datetime:
    """Next occurrence of ``hour``:00 local time, returned as naive UTC."""
    local_now = local_time(region, now, default_region)
    target = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if local_now.hour >= hour:
        target += timedelta(days=1)
    offset = utc_offset_hours(region, target.date(), default_region)
    return target - timedelta(hours=offset)


def next_local_8am(region: str | None, now: datetime, default_region: str = DEFAULT_REGION) -> datetime:
    return next_local_hour(region, now, hour=8, default_region=default_region)


def format_local_time(region: str | None, now: datetime, default_region: str = DEFAULT_REGION) -> str:
    """Human readable local time, e.g. ``3:05 PM PDT``."""
    resolved = resolve_region(region, default_region)
    local_now = local_time(resolved, now)
    hour12 = local_now.hour % 12 or 12
    suffix = "PM" if local_now.hour >= 12 else "AM"
    standard, daylight = _ABBREVIATIONS.get(resolved, ("AST", "ADT"))
    abbreviation = daylight if is_dst_active(local_now.date()) else standard
    return f"{hour12}:{local_now.minute:02d} {suffix} {abbreviation}"
