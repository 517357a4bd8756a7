"""Nearby-activity suggestions remembered per event."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional

from planner.models.events import Activity


@dataclass
class _Suggestions:
    address: str
    activities: List[Activity]
    fetched_at: float


class ActivityCache:
    """Places lookups for an event's location, reused across chat turns.

    An entry answers only for the address it was fetched for, so moving the
    event misses without an explicit eviction. Age counts from the fetch,
    not the last read: place ratings and opening status go stale however
    often the entry is used. Past ``maxsize`` events the least recently read
    one is dropped.
    """

    def __init__(
        self,
        maxsize: int = 128,
        ttl: int = 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.maxsize = maxsize
        self.ttl = ttl
        self._clock = clock
        self._by_event: "OrderedDict[str, _Suggestions]" = OrderedDict()

    def get(self, event_id: str, address: str) -> Optional[List[Activity]]:
        entry = self._by_event.get(event_id)
        if entry is None:
            return None
        if entry.address != address or self._clock() - entry.fetched_at > self.ttl:
            del self._by_event[event_id]
            return None
        self._by_event.move_to_end(event_id)
        return list(entry.activities)

    def put(self, event_id: str, address: str, activities: List[Activity]) -> None:
        self._by_event[event_id] = _Suggestions(address, list(activities), self._clock())
        self._by_event.move_to_end(event_id)
        while len(self._by_event) > self.maxsize:
            self._by_event.popitem(last=False)

    def evict(self, event_id: str) -> None:
        self._by_event.pop(event_id, None)

    def __len__(self) -> int:
        return len(self._by_event)
