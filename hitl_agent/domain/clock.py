from typing import Callable
from datetime import datetime, timezone


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Timezone-aware current time, the default clock everywhere"""
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds between two instants, never negative"""
    return max(0, int((end - start).total_seconds() * 1000))
