from datetime import datetime
from typing import Optional
import pytz

from library_backend.config import settings

UTC = pytz.utc
LIBRARY_TZ = pytz.timezone(settings.library_timezone)

def now_utc() -> datetime:
    """Get current datetime as an aware UTC value."""
    return datetime.now(UTC)

def now_local() -> datetime:
    """Get current datetime in the library's timezone."""
    return datetime.now(LIBRARY_TZ)

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return UTC.localize(value)
    return value.astimezone(UTC)

def start_of_local_day(moment: Optional[datetime] = None) -> datetime:
    """Midnight of the library's current day, expressed in UTC."""
    local = (moment or now_utc()).astimezone(LIBRARY_TZ)
    midnight = LIBRARY_TZ.localize(datetime(local.year, local.month, local.day))
    return midnight.astimezone(UTC)
