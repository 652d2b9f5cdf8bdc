from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Hashable, Iterable, List, Sequence, TypeVar

from booking_core.utils.datetime_normaliser import format_calendar_date

D = TypeVar("D", bound=Hashable)


@dataclass(frozen=True)
class ConflictResult:
    has_conflict: bool
    conflicting: List = field(default_factory=list)


def expand_dates(starting_date: date, number_of_days: int) -> List[date]:
    """Consecutive calendar dates occupied by a booking, starting_date first."""
    return [starting_date + timedelta(days=offset) for offset in range(number_of_days)]


def expand_calendar_dates(starting_date: date, number_of_days: int) -> List[str]:
    return [format_calendar_date(d) for d in expand_dates(starting_date, number_of_days)]


def find_conflicts(requested: Sequence[D], booked: Iterable[D]) -> ConflictResult:
    booked_set = set(booked)
    conflicting = []
    seen = set()
    for item in requested:
        if item in booked_set and item not in seen:
            conflicting.append(item)
            seen.add(item)
    return ConflictResult(has_conflict=bool(conflicting), conflicting=conflicting)
