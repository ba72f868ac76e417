"""
Business-hours arithmetic for review-request time tracking.

Hours are counted only inside ``[start_hour, end_hour)`` on configured ISO weekdays
(1=Monday ... 7=Sunday), evaluated in the configured IANA time zone.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_START_HOUR = 8
DEFAULT_END_HOUR = 17
DEFAULT_WORKING_DAYS = (1, 2, 3, 4, 5)
DEFAULT_TIMEZONE = "America/Los_Angeles"


class WorkingHoursConfig(BaseModel):
    start_hour: int = Field(default=DEFAULT_START_HOUR, ge=0, le=23, examples=[8])
    end_hour: int = Field(default=DEFAULT_END_HOUR, ge=0, le=23, examples=[17])
    working_days: tuple[int, ...] = Field(
        default=DEFAULT_WORKING_DAYS,
        description="ISO weekdays counted as working days.",
        examples=[[1, 2, 3, 4, 5]],
    )
    timezone_name: str = Field(default=DEFAULT_TIMEZONE, examples=["America/Los_Angeles"])

    model_config = {"frozen": True}

    @field_validator("working_days")
    @classmethod
    def _validate_working_days(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value:
            raise ValueError("WORKING_DAYS_REQUIRED")
        if any(day < 1 or day > 7 for day in value):
            raise ValueError("WORKING_DAYS_OUT_OF_RANGE")
        return tuple(sorted(set(value)))

    @field_validator("timezone_name")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"UNKNOWN_TIMEZONE: {value}") from exc
        return value

    @model_validator(mode="after")
    def _validate_hours(self) -> "WorkingHoursConfig":
        if self.start_hour >= self.end_hour:
            raise ValueError("WORKING_HOURS_START_MUST_PRECEDE_END")
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)


DEFAULT_WORKING_HOURS = WorkingHoursConfig()


def elapsed_business_hours(start: datetime, end: datetime, config: WorkingHoursConfig) -> float:
    """Business hours between two instants, rounded to one decimal.

    Inverted or empty ranges yield 0.
    """
    start_utc = as_utc(start)
    end_utc = as_utc(end)
    if start_utc >= end_utc:
        return 0.0

    zone = config.zone
    first_day = start_utc.astimezone(zone).date()
    last_day = end_utc.astimezone(zone).date()
    total_seconds = 0.0
    day = first_day
    while day <= last_day:
        if day.isoweekday() in config.working_days:
            window_start, window_end = _working_window(day, config, zone)
            overlap_start = max(window_start, start_utc)
            overlap_end = min(window_end, end_utc)
            if overlap_end > overlap_start:
                total_seconds += (overlap_end - overlap_start).total_seconds()
        day += timedelta(days=1)
    return round(total_seconds / 3600, 1)


def is_working_day(moment: datetime, config: WorkingHoursConfig) -> bool:
    return as_utc(moment).astimezone(config.zone).isoweekday() in config.working_days


def is_within_working_hours(moment: datetime, config: WorkingHoursConfig) -> bool:
    local = as_utc(moment).astimezone(config.zone)
    if local.isoweekday() not in config.working_days:
        return False
    return config.start_hour <= local.hour < config.end_hour


def format_business_hours(hours: float) -> str:
    if hours == 0:
        return "0 hrs"
    if hours == 1:
        return "1 hr"
    return f"{round(hours, 1):g} hrs"


def parse_working_hours_config(
    start_hour: Optional[str],
    end_hour: Optional[str],
    working_days: Optional[str],
    timezone_name: Optional[str] = None,
) -> WorkingHoursConfig:
    """Build a config from raw string settings, falling back to defaults per field."""
    start = _parse_hour(start_hour, DEFAULT_START_HOUR)
    end = _parse_hour(end_hour, DEFAULT_END_HOUR)
    if start >= end:
        start, end = DEFAULT_START_HOUR, DEFAULT_END_HOUR
    days = _parse_days(working_days)
    return WorkingHoursConfig(
        start_hour=start,
        end_hour=end,
        working_days=days,
        timezone_name=(timezone_name or "").strip() or DEFAULT_TIMEZONE,
    )


def _working_window(
    day: date, config: WorkingHoursConfig, zone: ZoneInfo
) -> tuple[datetime, datetime]:
    window_start = datetime.combine(day, time(hour=config.start_hour), tzinfo=zone)
    window_end = datetime.combine(day, time(hour=config.end_hour), tzinfo=zone)
    # compare in UTC; same-tzinfo subtraction ignores DST offsets
    return window_start.astimezone(timezone.utc), window_end.astimezone(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _parse_hour(raw: Optional[str], default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    if value < 0 or value > 23:
        return default
    return value


def _parse_days(raw: Optional[str]) -> tuple[int, ...]:
    if raw is None or not raw.strip():
        return DEFAULT_WORKING_DAYS
    days = []
    for token in raw.split(","):
        token = token.strip()
        if token.isdigit() and 1 <= int(token) <= 7:
            days.append(int(token))
    return tuple(days) or DEFAULT_WORKING_DAYS
