"""Documents exchanged between the stores, collaborators and surfaces.

``to_dict`` produces the camelCase JSON shape used by the HTTP API; the
``from_dict`` constructors accept the same shape back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from dateutil import parser as dateparse

from planner.services.availability import CandidateSlot

EVENT_STATUSES = ("planning", "scheduled", "completed", "cancelled")
MESSAGE_TYPES = ("user", "ai", "system")
TIMES_OF_DAY = ("morning", "afternoon", "evening", "flexible")


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return dateparse.parse(str(value))


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


@dataclass
class User:
    id: str
    email: str
    name: str = "Anonymous"
    picture: Optional[str] = None
    google_access_token: Optional[str] = None
    google_refresh_token: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_calendar(self) -> bool:
        return bool(self.google_access_token)

    def to_dict(self) -> Dict[str, Any]:
        # tokens never leave the server
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "hasCalendar": self.has_calendar,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class Coordinates:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass
class Location:
    address: str
    coordinates: Optional[Coordinates] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Location"]:
        if not data:
            return None
        coords = data.get("coordinates") or None
        return cls(
            address=data.get("address", ""),
            coordinates=Coordinates(float(coords["lat"]), float(coords["lng"])) if coords else None,
        )


@dataclass
class Budget:
    min: int = 0
    max: int = 1000


@dataclass
class EventPreferences:
    time_of_day: str = "flexible"
    activity_types: List[str] = field(default_factory=list)
    budget: Optional[Budget] = field(default_factory=Budget)
    accessibility: List[str] = field(default_factory=list)
    dietary_restrictions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeOfDay": self.time_of_day,
            "activityTypes": list(self.activity_types),
            "budget": {"min": self.budget.min, "max": self.budget.max} if self.budget else None,
            "accessibility": list(self.accessibility),
            "dietaryRestrictions": list(self.dietary_restrictions),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EventPreferences":
        data = data or {}
        budget = data.get("budget")
        tod = data.get("timeOfDay") or "flexible"
        return cls(
            time_of_day=tod if tod in TIMES_OF_DAY else "flexible",
            activity_types=list(data.get("activityTypes") or []),
            budget=Budget(int(budget.get("min", 0)), int(budget.get("max", 1000))) if budget else None,
            accessibility=list(data.get("accessibility") or []),
            dietary_restrictions=list(data.get("dietaryRestrictions") or []),
        )


@dataclass
class Activity:
    id: str
    name: str
    type: str
    location: Location
    duration: int = 60
    cost: Optional[int] = None
    rating: Optional[float] = None
    description: Optional[str] = None
    place_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "location": self.location.to_dict(),
            "duration": self.duration,
            "cost": self.cost,
            "rating": self.rating,
            "description": self.description,
            "placeId": self.place_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type", "unknown"),
            location=Location.from_dict(data.get("location")) or Location(address=""),
            duration=int(data.get("duration") or 60),
            cost=data.get("cost"),
            rating=data.get("rating"),
            description=data.get("description"),
            place_id=data.get("placeId"),
        )


@dataclass
class ChatMessage:
    id: str
    event_id: str
    content: str
    type: str
    user_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "userId": self.user_id,
            "content": self.content,
            "type": self.type,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class Event:
    id: str
    title: str
    creator_id: str
    participants: List[str] = field(default_factory=list)
    description: Optional[str] = None
    location: Optional[Location] = None
    preferred_dates: List[datetime] = field(default_factory=list)
    finalized_date: Optional[datetime] = None
    duration: int = 120
    preferences: EventPreferences = field(default_factory=EventPreferences)
    activities: List[Activity] = field(default_factory=list)
    share_link: str = ""
    status: str = "planning"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "creatorId": self.creator_id,
            "participants": list(self.participants),
            "location": self.location.to_dict() if self.location else None,
            "preferredDates": [d.isoformat() for d in self.preferred_dates],
            "finalizedDate": _iso(self.finalized_date),
            "duration": self.duration,
            "preferences": self.preferences.to_dict(),
            "activities": [a.to_dict() for a in self.activities],
            "shareLink": self.share_link,
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            id=data["id"],
            title=data["title"],
            creator_id=data["creatorId"],
            participants=list(data.get("participants") or []),
            description=data.get("description"),
            location=Location.from_dict(data.get("location")),
            preferred_dates=[parse_datetime(d) for d in data.get("preferredDates") or []],
            finalized_date=parse_datetime(data.get("finalizedDate")),
            duration=int(data.get("duration") or 120),
            preferences=EventPreferences.from_dict(data.get("preferences")),
            activities=[Activity.from_dict(a) for a in data.get("activities") or []],
            share_link=data.get("shareLink", ""),
            status=data.get("status") or "planning",
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )

    def public_view(self) -> Dict[str, Any]:
        """Event fields safe to show to anyone holding the share link."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "participants": list(self.participants),
            "createdAt": _iso(self.created_at),
        }


@dataclass
class CalendarEvent:
    """One entry from a participant's calendar."""

    id: str
    summary: str
    start: str
    end: str
    time_zone: str = "UTC"
    attendees: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class PlanningContext:
    """Everything the planning agent sees for one chat turn."""

    event: Event
    participants: List[User] = field(default_factory=list)
    availability: List[CandidateSlot] = field(default_factory=list)
    nearby_activities: List[Activity] = field(default_factory=list)
    chat_history: List[ChatMessage] = field(default_factory=list)
