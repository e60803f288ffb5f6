"""Five-field cron expressions.

Supported syntax per field: ``*``, single values, ranges ``a-b``, steps
``*/n`` and ``a-b/n`` and ``a/n``, and comma-separated lists of these.
Day-of-week accepts 0-7 with both 0 and 7 meaning Sunday.

When both day-of-month and day-of-week are restricted, a day matches if
either one matches (Vixie cron semantics). A field starting with ``*``
counts as unrestricted.

Times are evaluated in the timezone of the datetime passed in; the
scheduler passes UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Final

_FIELD_BOUNDS: Final[tuple[tuple[str, int, int], ...]] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 7),
)

_MAX_LOOKAHEAD_DAYS: Final[int] = 366 * 5


class CronError(ValueError):
    """Raised for a malformed cron expression."""


def _parse_value(raw: str, name: str, low: int, high: int) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise CronError(f"Invalid {name} value: {raw!r}") from e
    if not low <= value <= high:
        raise CronError(f"{name} value {value} out of range {low}-{high}")
    return value


def _parse_field(raw: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in raw.split(","):
        if not part:
            raise CronError(f"Empty list item in {name} field: {raw!r}")

        base, _, step_raw = part.partition("/")
        step = 1
        if step_raw:
            step = _parse_value(step_raw, f"{name} step", 1, high - low + 1)

        if base == "*":
            start, end = low, high
        elif "-" in base:
            start_raw, _, end_raw = base.partition("-")
            start = _parse_value(start_raw, name, low, high)
            end = _parse_value(end_raw, name, low, high)
            if start > end:
                raise CronError(f"Descending range in {name} field: {base!r}")
        else:
            start = _parse_value(base, name, low, high)
            end = high if step_raw else start

        values.update(range(start, end + 1, step))
    return frozenset(values)


def _cron_weekday(day: date) -> int:
    """0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


@dataclass(frozen=True)
class CronSchedule:
    """A parsed cron expression."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]
    day_of_month_restricted: bool
    day_of_week_restricted: bool

    @classmethod
    def parse(cls, expression: str) -> CronSchedule:
        """Parse a five-field cron expression.

        Raises:
            CronError: If the expression is malformed.
        """
        fields = expression.split()
        if len(fields) != len(_FIELD_BOUNDS):
            raise CronError(
                f"Cron expression must have {len(_FIELD_BOUNDS)} fields, got {len(fields)}: "
                f"{expression!r}"
            )

        parsed = [
            _parse_field(raw, name, low, high)
            for raw, (name, low, high) in zip(fields, _FIELD_BOUNDS, strict=True)
        ]
        days_of_week = frozenset(0 if d == 7 else d for d in parsed[4])

        return cls(
            expression=" ".join(fields),
            minutes=parsed[0],
            hours=parsed[1],
            days_of_month=parsed[2],
            months=parsed[3],
            days_of_week=days_of_week,
            day_of_month_restricted=not fields[2].startswith("*"),
            day_of_week_restricted=not fields[4].startswith("*"),
        )

    def matches_day(self, day: date) -> bool:
        """True when the schedule fires on some minute of day."""
        if day.month not in self.months:
            return False

        dom = day.day in self.days_of_month
        dow = _cron_weekday(day) in self.days_of_week
        if self.day_of_month_restricted and self.day_of_week_restricted:
            return dom or dow
        return dom and dow

    def matches(self, moment: datetime) -> bool:
        """True when the schedule fires at moment's minute."""
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and self.matches_day(moment.date())
        )

    def next_after(self, after: datetime) -> datetime:
        """First firing time strictly after the given instant.

        Raises:
            CronError: If nothing fires within the lookahead horizon
                (e.g. "0 0 31 2 *").
        """
        start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        hours = sorted(self.hours)
        minutes = sorted(self.minutes)

        day = start.date()
        for _ in range(_MAX_LOOKAHEAD_DAYS):
            if self.matches_day(day):
                for hour in hours:
                    for minute in minutes:
                        candidate = datetime(
                            day.year, day.month, day.day, hour, minute, tzinfo=after.tzinfo
                        )
                        if candidate >= start:
                            return candidate
            day += timedelta(days=1)

        raise CronError(f"Cron expression never fires: {self.expression!r}")
