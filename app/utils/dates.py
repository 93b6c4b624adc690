# app/utils/dates.py

import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def business_date(moment: datetime | None = None) -> date:
    """Календарный день момента в бизнес-таймзоне. Naive-значения считаем UTC."""
    moment = moment or now_utc()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(business_tz()).date()


def business_day_bounds(moment: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Границы "сегодня" (полночь-полночь в бизнес-таймзоне), переведенные в UTC.
    Правая граница не включается.
    """
    day = business_date(moment)
    start = datetime.combine(day, time.min, tzinfo=business_tz())
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """Сколько (неполных) суток прошло от start до end, с округлением вверх."""
    seconds = (end - start).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)
