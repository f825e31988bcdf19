from .datetime_utils import (
    start_of_day, end_of_day, start_of_week, end_of_week,
    is_same_day, is_within, add_days, now_in_zone,
)
from .decorators import retry_on_exception
from .logger import setup_logging

__all__ = [
    'start_of_day',
    'end_of_day',
    'start_of_week',
    'end_of_week',
    'is_same_day',
    'is_within',
    'add_days',
    'now_in_zone',
    'retry_on_exception',
    'setup_logging',
]
