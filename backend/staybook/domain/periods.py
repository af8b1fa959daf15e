"""Date-range arithmetic for stays. Ranges are half-open: [check_in, check_out)."""

import math
from datetime import datetime, timedelta, timezone

ONE_DAY = timedelta(days=1)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes from clients are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def nights(check_in: datetime, check_out: datetime) -> int:
    return math.ceil((check_out - check_in) / ONE_DAY)


def price_per_night(total_price: float, check_in: datetime, check_out: datetime) -> float:
    count = nights(check_in, check_out)
    return total_price / count if count > 0 else total_price


def start_of_day(now: datetime) -> datetime:
    return as_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
