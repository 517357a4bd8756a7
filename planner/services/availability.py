"""Availability solver.

Given each participant's busy calendar intervals over a date range, build
fixed-length candidate windows (on the hour, 09:00 to 21:00 local time) and
rank them by how many participants are free during each one.

The solver is a pure function: no I/O, no shared state. Callers gather the
busy intervals (see ``planner.services.calendar``) and decide how many of the
ranked slots to use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DAY_START_HOUR = 9
DAY_END_HOUR = 21


class InvalidArgument(ValueError):
    """Raised for a malformed availability request."""


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class AvailabilityRequest:
    busy_by_participant: Mapping[str, Sequence[BusyInterval]]
    range_start: datetime
    range_end: datetime
    slot_duration_minutes: int
    timezone: str = "UTC"


@dataclass(frozen=True)
class CandidateSlot:
    start: datetime
    end: datetime
    available_participants: FrozenSet[str] = field(default_factory=frozenset)


def _zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidArgument(f"unknown timezone: {name!r}") from e


def _localize(dt: datetime, tz: tzinfo) -> datetime:
    """Read naive datetimes as wall-clock time in ``tz``."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def _validate(request: AvailabilityRequest) -> tzinfo:
    duration = request.slot_duration_minutes
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidArgument("slot_duration_minutes must be an integer")
    if duration <= 0:
        raise InvalidArgument("slot_duration_minutes must be positive")
    tz = _zone(request.timezone)
    if _localize(request.range_start, tz) > _localize(request.range_end, tz):
        raise InvalidArgument("range_start must not be after range_end")
    return tz


def _days(first: date, last: date) -> Iterator[date]:
    day = first
    while day <= last:
        yield day
        day += timedelta(days=1)


def slot_start_hours(duration_minutes: int) -> range:
    """Hours at which a slot of ``duration_minutes`` may start on any day.

    Empty when the duration leaves no room in the daily window.
    """
    last = DAY_END_HOUR - duration_minutes // 60
    return range(DAY_START_HOUR, last + 1)


def overlaps(slot_start: datetime, slot_end: datetime, busy: BusyInterval) -> bool:
    """Whether ``busy`` makes a participant unavailable for the slot.

    Touching boundaries (slot ends when the busy interval starts, or starts
    when it ends) do not count as overlap.
    """
    es, ee = busy.start, busy.end
    return (
        (slot_start >= es and slot_start < ee)
        or (slot_end > es and slot_end <= ee)
        or (slot_start <= es and slot_end >= ee)
    )


def solve(request: AvailabilityRequest) -> List[CandidateSlot]:
    """Return candidate slots ranked by available participant count.

    Ties keep chronological order. Slots nobody can attend are dropped.
    Raises ``InvalidArgument`` for a non-positive duration, an inverted range
    or an unknown timezone.
    """
    tz = _validate(request)
    duration = timedelta(minutes=request.slot_duration_minutes)

    busy: Dict[str, List[BusyInterval]] = {
        pid: [
            BusyInterval(_localize(iv.start, tz), _localize(iv.end, tz))
            for iv in intervals
        ]
        for pid, intervals in request.busy_by_participant.items()
    }

    first = _localize(request.range_start, tz).date()
    last = _localize(request.range_end, tz).date()
    hours = slot_start_hours(request.slot_duration_minutes)

    slots: List[CandidateSlot] = []
    for day in _days(first, last):
        for hour in hours:
            start = datetime.combine(day, time(hour=hour), tzinfo=tz)
            end = start + duration
            free = frozenset(
                pid
                for pid, intervals in busy.items()
                if not any(overlaps(start, end, iv) for iv in intervals)
            )
            if free:
                slots.append(CandidateSlot(start, end, free))

    # list.sort is stable, so generation order breaks ties
    slots.sort(key=lambda s: len(s.available_participants), reverse=True)
    return slots


def slot_to_dict(slot: CandidateSlot) -> Dict[str, object]:
    return {
        "start": slot.start.isoformat(),
        "end": slot.end.isoformat(),
        "participants": sorted(slot.available_participants),
    }


def describe_slot(slot: CandidateSlot, names: Optional[Mapping[str, str]] = None) -> str:
    """One human-readable line, e.g. ``Sat Jun 01 10:00-11:00 (2 free: Ann, Bo)``."""
    names = names or {}
    who = ", ".join(sorted(names.get(pid, pid) for pid in slot.available_participants))
    return (
        f"{slot.start:%a %b %d %H:%M}-{slot.end:%H:%M} "
        f"({len(slot.available_participants)} free: {who})"
    )
