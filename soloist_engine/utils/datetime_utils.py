from datetime import datetime, timedelta
from typing import Optional

import pytz

DEFAULT_TZ = "UTC"

def get_timezone(name: Optional[str] = None):
    return pytz.timezone(name or DEFAULT_TZ)

def now_in_zone(tz_name: Optional[str] = None) -> datetime:
    """Локальное время зоны без tzinfo (все сравнения движка идут в naive)"""
    return datetime.now(get_timezone(tz_name)).replace(tzinfo=None)

def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)

def end_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)

def is_same_day(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None or b is None:
        return False
    return a.date() == b.date()

def is_within(dt: Optional[datetime], start: datetime, end: datetime) -> bool:
    if dt is None:
        return False
    return start <= dt <= end

def _days_since_sunday(dt: datetime) -> int:
    # weekday(): понедельник = 0, воскресенье = 6
    return (dt.weekday() + 1) % 7

def start_of_week(dt: datetime) -> datetime:
    """Неделя начинается в воскресенье"""
    return start_of_day(dt) - timedelta(days=_days_since_sunday(dt))

def end_of_week(dt: datetime) -> datetime:
    """Ближайшее следующее воскресенье, 23:59:59.999999"""
    days_until_sunday = 7 - _days_since_sunday(dt)
    return end_of_day(dt + timedelta(days=days_until_sunday))

def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)

def to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None

def from_iso(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)

def format_date(dt: datetime, fmt: str = "%d.%m.%Y") -> str:
    return dt.strftime(fmt)
