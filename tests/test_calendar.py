import os, sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime, timezone

import pytest
import requests

from conftest import FakeCalendar, entry
from planner.models.events import User
from planner.services.availability import BusyInterval
from planner.services.calendar import (
    CalendarError,
    GoogleCalendarClient,
    gather_busy_intervals,
    to_busy_intervals,
)

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 6, 2, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append(("GET", url, kwargs))
        return self.response

    def post(self, url, **kwargs):
        self.requests.append(("POST", url, kwargs))
        return self.response


def test_get_events_maps_timed_and_all_day_entries():
    session = FakeSession(
        FakeResponse(
            {
                "items": [
                    {
                        "id": "a",
                        "summary": "Standup",
                        "start": {"dateTime": "2024-06-01T09:00:00Z", "timeZone": "UTC"},
                        "end": {"dateTime": "2024-06-01T09:30:00Z"},
                        "attendees": [{"email": "x@example.com"}],
                    },
                    {"id": "b", "start": {"date": "2024-06-01"}, "end": {"date": "2024-06-02"}},
                ]
            }
        )
    )
    events = GoogleCalendarClient("tok", session=session).get_events(T0, T1)

    assert [e.summary for e in events] == ["Standup", "Untitled Event"]
    assert events[0].start == "2024-06-01T09:00:00Z"
    assert events[0].attendees == [{"email": "x@example.com", "responseStatus": "needsAction"}]
    assert events[1].start == "2024-06-01"

    method, url, kwargs = session.requests[0]
    assert url.endswith("/calendars/primary/events")
    assert kwargs["headers"] == {"Authorization": "Bearer tok"}
    assert kwargs["params"]["timeMin"] == "2024-06-01T00:00:00Z"
    assert kwargs["params"]["singleEvents"] == "true"


def test_get_events_wraps_http_errors():
    client = GoogleCalendarClient("tok", session=FakeSession(FakeResponse({}, status=401)))
    with pytest.raises(CalendarError):
        client.get_events(T0, T1)


def test_create_event_posts_reminders_and_returns_id():
    session = FakeSession(FakeResponse({"id": "new-id"}))
    event_id = GoogleCalendarClient("tok", session=session).create_event(
        "Picnic", T0, T1, ["a@example.com"], description="Bring food"
    )
    assert event_id == "new-id"
    _, _, kwargs = session.requests[0]
    assert kwargs["params"] == {"sendUpdates": "all"}
    assert kwargs["json"]["attendees"] == [{"email": "a@example.com"}]
    assert kwargs["json"]["reminders"]["overrides"][0] == {"method": "email", "minutes": 1440}


def test_to_busy_intervals_drops_malformed_entries():
    intervals = to_busy_intervals(
        [
            entry("2024-06-01T09:00:00+00:00", "2024-06-01T10:00:00+00:00"),
            entry("garbage", "2024-06-01T10:00:00+00:00", id="bad"),
            entry("2024-06-01T12:00:00+00:00", "2024-06-01T11:00:00+00:00", id="inverted"),
            entry("2024-06-03", "2024-06-04", id="allday"),
        ],
        "Asia/Tokyo",
    )
    assert len(intervals) == 2
    assert intervals[0] == BusyInterval(
        datetime(2024, 6, 1, 9, tzinfo=timezone.utc), datetime(2024, 6, 1, 10, tzinfo=timezone.utc)
    )
    # all-day entries are read in the configured zone
    assert intervals[1].start.hour == 0
    assert intervals[1].start.tzinfo is not None
    assert str(intervals[1].start.tzinfo) == "Asia/Tokyo"


def test_gather_skips_users_without_calendar_and_degrades_on_failure():
    users = [
        User(id="ann", email="ann@example.com", google_access_token="tok-ann"),
        User(id="bo", email="bo@example.com", google_access_token="tok-bo"),
        User(id="cy", email="cy@example.com"),
    ]
    calendar = FakeCalendar(
        {
            "tok-ann": [entry("2024-06-01T09:00:00+00:00", "2024-06-01T10:00:00+00:00")],
            "tok-bo": CalendarError("expired token"),
        }
    )
    busy = gather_busy_intervals(users, T0, T1, "UTC", calendar)

    assert set(busy) == {"ann", "bo"}
    assert len(busy["ann"]) == 1
    assert busy["bo"] == []
