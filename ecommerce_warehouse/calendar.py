"""
Calendar Ranges

Bounded date sequences used for calendar gap-filling: the daily revenue
calendar and the monthly observation window of the seller status history.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator, Union


class Step(str, Enum):
    """Spacing between consecutive dates"""
    DAY = "day"
    MONTH = "month"


def month_start(value: Union[date, datetime]) -> date:
    """First day of the month containing value"""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def next_month(value: date) -> date:
    """First day of the month after value"""
    return (value.replace(day=28) + timedelta(days=4)).replace(day=1)


@dataclass(frozen=True)
class DateSpan:
    """
    Inclusive range of consecutive dates between two known bounds.

    Iterating produces dates lazily; every iteration starts over from the
    first date, so one span can be consumed any number of times.

    Example:
        list(DateSpan(date(2018, 1, 1), date(2018, 3, 15), Step.MONTH))
        # [date(2018, 1, 1), date(2018, 2, 1), date(2018, 3, 1)]
    """
    start: date
    end: date
    step: Step = Step.DAY

    def __post_init__(self):
        if isinstance(self.start, datetime) or isinstance(self.end, datetime):
            raise TypeError("DateSpan bounds must be dates, not datetimes")

    def __iter__(self) -> Iterator[date]:
        if self.step == Step.MONTH:
            current = month_start(self.start)
            advance = next_month
        else:
            current = self.start
            advance = lambda d: d + timedelta(days=1)

        while current <= self.end:
            yield current
            current = advance(current)

    def __len__(self) -> int:
        if self.end < self.start:
            return 0
        if self.step == Step.MONTH:
            return (self.end.year - self.start.year) * 12 + self.end.month - self.start.month + 1
        return (self.end - self.start).days + 1


def days(start: date, end: date) -> DateSpan:
    """Every calendar day from start to end, inclusive"""
    return DateSpan(start, end, Step.DAY)


def months(start: date, end: date) -> DateSpan:
    """First day of every month from start's month to end's month"""
    return DateSpan(month_start(start), end, Step.MONTH)
