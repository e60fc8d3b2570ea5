from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from errors import ValidationError
from recurrence import add_months


PERIODS = ("Daily", "Weekly", "Monthly", "Quarterly", "Annual", "Custom")
DEFAULT_PERIOD = "Monthly"


@dataclass(frozen=True)
class Window:
    period: str
    start: datetime
    end: datetime

    @property
    def span(self) -> timedelta:
        return self.end - self.start


def _parse_bound(value: Union[str, date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(value).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


def resolve_window(
    period: Optional[str],
    start_date: Optional[Union[str, date, datetime]] = None,
    end_date: Optional[Union[str, date, datetime]] = None,
    *,
    now: Optional[datetime] = None,
) -> Window:
    now = now or datetime.now()
    period = period or DEFAULT_PERIOD
    if period not in PERIODS:
        raise ValidationError(f"Unknown period: {period}")

    if period == "Custom":
        if not start_date or not end_date:
            raise ValidationError("Custom period requires startDate and endDate")
        start = datetime.combine(_parse_bound(start_date), time.min)
        end = datetime.combine(_parse_bound(end_date), time.max)
        if start > end:
            raise ValidationError("startDate must be before endDate")
        return Window(period, start, end)

    if period == "Daily":
        start = datetime.combine(now.date(), time.min)
    elif period == "Weekly":
        start = now - timedelta(days=7)
    elif period == "Quarterly":
        start = add_months(now, -3)
    elif period == "Annual":
        start = add_months(now, -12)
    else:
        start = add_months(now, -1)
    return Window(period, start, now)


REPORT_PRESETS = (
    "today",
    "this_week",
    "this_month",
    "last_3_months",
    "last_6_months",
    "last_12_months",
)
ALL_TIME_START = datetime(1970, 1, 1)


def resolve_report_window(
    preset: Optional[str],
    date_from: Optional[Union[str, date, datetime]] = None,
    date_to: Optional[Union[str, date, datetime]] = None,
    *,
    now: Optional[datetime] = None,
) -> Window:
    """Window for expense reports. Presets run through the end of today; no
    preset and no dates means everything up to the end of today."""
    now = now or datetime.now()
    end_of_today = datetime.combine(now.date(), time.max)

    if preset:
        preset = getattr(preset, "value", preset)
        if preset not in REPORT_PRESETS:
            raise ValidationError(f"Unknown date preset: {preset}")
        today = datetime.combine(now.date(), time.min)
        if preset == "today":
            start = today
        elif preset == "this_week":
            # Weeks start on Sunday.
            start = today - timedelta(days=(today.weekday() + 1) % 7)
        elif preset == "this_month":
            start = today.replace(day=1)
        else:
            months = int(preset.split("_")[1])
            start = add_months(now, -months)
        return Window(preset, start, end_of_today)

    if date_from or date_to:
        window = resolve_window("Custom", date_from, date_to, now=now)
        return Window("custom", window.start, window.end)
    return Window("all", ALL_TIME_START, end_of_today)
