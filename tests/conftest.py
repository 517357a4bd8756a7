import os, sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableLambda

from planner.agent.llm_agent import PlannerAgent
from planner.config import Settings
from planner.flows.planning_flow import PlanningService
from planner.models.events import Activity, CalendarEvent, Coordinates, Location


class FakeCalendar:
    """Calendar client stand-in; tokens map to a list of entries or an exception."""

    def __init__(self, entries_by_token):
        self.entries_by_token = entries_by_token
        self.calls = []

    def __call__(self, token):
        self.token = token
        return self

    def get_events(self, time_min, time_max):
        self.calls.append((self.token, time_min, time_max))
        entries = self.entries_by_token.get(self.token, [])
        if isinstance(entries, Exception):
            raise entries
        return entries


class FakePlaces:
    def __init__(self, coords=None, activities=None):
        self.coords = coords
        self.activities = activities or []
        self.geocode_calls = 0
        self.suggest_calls = 0

    def geocode_address(self, address):
        self.geocode_calls += 1
        return self.coords

    def get_suggested_activities(self, location, preferences=(), radius=10000):
        self.suggest_calls += 1
        return list(self.activities)


class RecordingLLM:
    """Callable chat model: records the prompt messages and answers ``reply``."""

    def __init__(self, reply="Saturday at 10:00 works for everyone!"):
        self.reply = reply
        self.prompts = []

    def respond(self, prompt_value):
        self.prompts.append(prompt_value.to_messages())
        return AIMessage(content=self.reply)


def entry(start, end, id="e1"):
    return CalendarEvent(id=id, summary="busy", start=start, end=end)


def activity(name, rating, place_id=None):
    return Activity(
        id=place_id or name,
        name=name,
        type="park",
        location=Location(address=f"{name} street", coordinates=Coordinates(1.0, 2.0)),
        rating=rating,
        place_id=place_id or name,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=str(tmp_path / "planner.db"), timezone="UTC")


@pytest.fixture
def llm():
    return RecordingLLM()


@pytest.fixture
def calendar():
    return FakeCalendar({})


@pytest.fixture
def places():
    return FakePlaces(coords=Coordinates(35.0, 139.0), activities=[activity("Central Park", 4.7)])


@pytest.fixture
def service(settings, llm, calendar, places):
    agent = PlannerAgent(llm=RunnableLambda(llm.respond))
    return PlanningService(settings, agent, places=places, calendar_factory=calendar)


