"""Google Calendar REST client and busy-interval gathering."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo

import requests
from dateutil import parser as dateparse

from planner.models.events import CalendarEvent, User
from planner.services.availability import BusyInterval

API_BASE = "https://www.googleapis.com/calendar/v3"
DEFAULT_TIMEOUT = 10.0

log = logging.getLogger(__name__)


class CalendarError(RuntimeError):
    """Raised when the calendar API call fails."""


def _rfc3339(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_calendar_event(item: Dict) -> CalendarEvent:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return CalendarEvent(
        id=item.get("id", ""),
        summary=item.get("summary") or "Untitled Event",
        start=start.get("dateTime") or start.get("date") or "",
        end=end.get("dateTime") or end.get("date") or "",
        time_zone=start.get("timeZone") or "UTC",
        attendees=[
            {"email": a.get("email", ""), "responseStatus": a.get("responseStatus") or "needsAction"}
            for a in item.get("attendees") or []
        ],
    )


class GoogleCalendarClient:
    """Primary-calendar access for one user, authorized by an OAuth access token."""

    def __init__(self, access_token: str, session: Optional[requests.Session] = None) -> None:
        self.access_token = access_token
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def get_events(self, time_min: datetime, time_max: datetime) -> List[CalendarEvent]:
        params = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        try:
            resp = self.session.get(
                f"{API_BASE}/calendars/primary/events",
                params=params,
                headers=self._headers(),
                timeout=DEFAULT_TIMEOUT,
            )
            resp.raise_for_status()
            items = resp.json().get("items") or []
        except (requests.RequestException, ValueError) as e:
            log.error("Error fetching calendar events: %s", e)
            raise CalendarError("Failed to fetch calendar events") from e
        return [_to_calendar_event(i) for i in items]

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        attendees: Iterable[str],
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> str:
        """Insert an event on the primary calendar and return its id."""
        body = {
            "summary": title,
            "description": description,
            "location": location,
            "start": {"dateTime": _rfc3339(start), "timeZone": "UTC"},
            "end": {"dateTime": _rfc3339(end), "timeZone": "UTC"},
            "attendees": [{"email": e} for e in attendees],
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            },
        }
        try:
            resp = self.session.post(
                f"{API_BASE}/calendars/primary/events",
                params={"sendUpdates": "all"},
                json=body,
                headers=self._headers(),
                timeout=DEFAULT_TIMEOUT,
            )
            resp.raise_for_status()
            return resp.json()["id"]
        except (requests.RequestException, ValueError, KeyError) as e:
            log.error("Error creating calendar event: %s", e)
            raise CalendarError("Failed to create calendar event") from e


def _parse_instant(value: str, tz: ZoneInfo) -> datetime:
    dt = dateparse.isoparse(value)
    if dt.tzinfo is None:
        # all-day entries carry a bare date
        dt = dt.replace(tzinfo=tz)
    return dt


def to_busy_intervals(events: Sequence[CalendarEvent], tz_name: str = "UTC") -> List[BusyInterval]:
    """Convert calendar entries to busy intervals, dropping malformed ones."""
    tz = ZoneInfo(tz_name)
    out: List[BusyInterval] = []
    for ev in events:
        try:
            start = _parse_instant(ev.start, tz)
            end = _parse_instant(ev.end, tz)
        except (ValueError, OverflowError):
            log.warning("Skipping calendar entry %s with unparseable times", ev.id)
            continue
        if end < start:
            log.warning("Skipping calendar entry %s that ends before it starts", ev.id)
            continue
        out.append(BusyInterval(start, end))
    return out


ClientFactory = Callable[[str], GoogleCalendarClient]


def gather_busy_intervals(
    users: Sequence[User],
    time_min: datetime,
    time_max: datetime,
    tz_name: str = "UTC",
    client_factory: ClientFactory = GoogleCalendarClient,
) -> Dict[str, List[BusyInterval]]:
    """Busy intervals for every user that has connected a calendar.

    Users without an access token are left out entirely. A user whose fetch
    fails is kept with an empty list so one broken calendar does not sink the
    whole request.
    """
    busy: Dict[str, List[BusyInterval]] = {}
    for user in users:
        if not user.has_calendar:
            continue
        try:
            client = client_factory(user.google_access_token or "")
            busy[user.id] = to_busy_intervals(client.get_events(time_min, time_max), tz_name)
        except Exception as e:
            log.warning("Error fetching calendar for user %s: %s", user.id, e)
            busy[user.id] = []
    return busy
