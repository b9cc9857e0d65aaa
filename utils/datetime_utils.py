from datetime import date, datetime
from typing import Optional, Union
import pytz

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAY_ALIASES = {"tues": 1, "thur": 3, "thurs": 3}
MINUTES_PER_DAY = 24 * 60

def get_timezone(name: Optional[str] = None):
    if name is None:
        from config import config
        name = config.schedule.timezone
    return pytz.timezone(name)

def now_local(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(get_timezone(tz_name))

def local_date(dt: datetime, tz_name: Optional[str] = None) -> date:
    """Календарная дата момента времени в локальной зоне"""
    tz = get_timezone(tz_name)
    if dt.tzinfo is None:
        dt = tz.localize(dt)
    return dt.astimezone(tz).date()

def parse_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt

def to_minutes(value: Union[str, int]) -> int:
    """"HH:MM" -> минуты от начала суток; int пропускается как есть"""
    if isinstance(value, int):
        return value
    hours, minutes = str(value).strip().split(":")
    return int(hours) * 60 + int(minutes)

def to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"

def weekday_index(value: Union[str, int, None]) -> Optional[int]:
    """Имя дня недели или индекс -> индекс 0=понедельник, None если не распознан"""
    if isinstance(value, int):
        return value if 0 <= value < len(WEEKDAYS) else None
    if value is None:
        return None
    name = str(value).strip().lower().rstrip(".")
    if name.isdigit():
        return weekday_index(int(name))
    for index, weekday in enumerate(WEEKDAYS):
        if name in (weekday, weekday[:3]):
            return index
    return WEEKDAY_ALIASES.get(name)

def current_weekday(tz_name: Optional[str] = None) -> int:
    return now_local(tz_name).weekday()
