from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from fieldtrack.config import settings


APP_TIMEZONE = settings.app_timezone or 'Europe/Warsaw'
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def now_iso(self) -> str:
        return to_iso(self.now())


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        raise ValueError('Naive datetime not allowed in business logic')
    return dt


def to_iso(dt: datetime) -> str:
    # Fixed-width UTC form keeps string order equal to chronological order.
    utc = ensure_aware(dt).astimezone(timezone.utc)
    return utc.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


default_time_provider = TimeProvider()
