"""Planning orchestration shared by the HTTP API and the Slack handlers.

``PlanningService`` owns no state of its own beyond the activity cache; every
operation reads and writes through the SQLite DAO and calls the calendar,
places and language-model collaborators.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from planner.agent.llm_agent import PlannerAgent, analyze_best_time_slots
from planner.config import Settings
from planner.models.events import (
    EVENT_STATUSES,
    Activity,
    ChatMessage,
    Event,
    EventPreferences,
    Location,
    PlanningContext,
    User,
    parse_datetime,
)
from planner.services.availability import (
    AvailabilityRequest,
    CandidateSlot,
    InvalidArgument,
    slot_to_dict,
    solve,
)
from planner.services.calendar import GoogleCalendarClient, gather_busy_intervals
from planner.services.places import PlacesClient
from planner.state.activity_cache import ActivityCache
from planner.storage import dao

log = logging.getLogger(__name__)


class PlanningError(Exception):
    status_code = 500


class BadRequest(PlanningError):
    status_code = 400


class Unauthorized(PlanningError):
    status_code = 401


class AccessDenied(PlanningError):
    status_code = 403


class NotFound(PlanningError):
    status_code = 404


def _parse_date_field(name: str, value: Any) -> Optional[datetime]:
    try:
        return parse_datetime(value)
    except (ValueError, OverflowError, TypeError) as e:
        raise BadRequest(f"Invalid {name}: {value!r}") from e


class PlanningService:
    def __init__(
        self,
        settings: Settings,
        agent: PlannerAgent,
        places: Optional[PlacesClient] = None,
        calendar_factory: Callable[[str], GoogleCalendarClient] = GoogleCalendarClient,
        cache: Optional[ActivityCache] = None,
    ) -> None:
        self.settings = settings
        self.db_path = settings.db_path
        self.agent = agent
        self.places = places
        self.calendar_factory = calendar_factory
        self.cache = cache or ActivityCache(ttl=settings.activity_cache_ttl)
        self.tz = ZoneInfo(settings.timezone)
        dao.init_db(self.db_path)

    # ---------- lookups ----------

    def _require_event(self, event_id: str) -> Event:
        event = dao.get_event(self.db_path, event_id)
        if event is None:
            raise NotFound("Event not found")
        return event

    def _require_participant(self, event: Event, user_email: str) -> User:
        user = dao.get_user_by_email(self.db_path, user_email)
        if user is None or user.id not in event.participants:
            raise AccessDenied("Access denied")
        return user

    def participants(self, event: Event) -> List[User]:
        users = [dao.get_user(self.db_path, uid) for uid in event.participants]
        return [u for u in users if u is not None]

    # ---------- events ----------

    def create_event(
        self,
        title: str,
        user_email: str,
        user_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Event:
        if not title or not title.strip() or not user_email:
            raise BadRequest("Missing required fields")
        user = dao.get_or_create_user(self.db_path, user_email, user_name)
        event = Event(
            id="",
            title=title.strip(),
            creator_id=user.id,
            participants=[user.id],
            description=(description or "").strip() or None,
            duration=self.settings.default_duration_minutes,
            preferences=EventPreferences(),
        )
        event_id = dao.create_event(self.db_path, event)
        log.info("Created event %s for %s", event_id, user.id)
        return self._require_event(event_id)

    def list_events(self, user_email: str) -> List[Event]:
        if not user_email:
            raise BadRequest("User email required")
        user = dao.get_user_by_email(self.db_path, user_email)
        if user is None:
            return []
        return dao.get_user_events(self.db_path, user.id)

    def get_event(self, event_id: str, user_email: Optional[str] = None) -> Event:
        event = self._require_event(event_id)
        if user_email:
            # unknown emails may still look at the event, known outsiders may not
            user = dao.get_user_by_email(self.db_path, user_email)
            if user is not None and user.id not in event.participants:
                raise AccessDenied("Access denied")
        return event

    def update_event(
        self, event_id: str, updates: Dict[str, Any], user_email: Optional[str] = None
    ) -> Event:
        event = self._require_event(event_id)
        if user_email:
            self._require_participant(event, user_email)

        updates = dict(updates)
        if "preferredDates" in updates:
            updates["preferredDates"] = [
                _parse_date_field("preferredDates", d) for d in updates["preferredDates"] or [] if d
            ]
        if updates.get("finalizedDate"):
            updates["finalizedDate"] = _parse_date_field("finalizedDate", updates["finalizedDate"])
        if "status" in updates and updates["status"] not in EVENT_STATUSES:
            raise BadRequest(f"Invalid status: {updates['status']!r}")
        if "duration" in updates:
            duration = updates["duration"]
            if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
                raise BadRequest("Duration must be a positive number of minutes")

        try:
            dao.update_event(self.db_path, event_id, updates)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise BadRequest(f"Invalid event update: {e}") from e
        return self._require_event(event_id)

    def delete_event(self, event_id: str, user_email: Optional[str] = None) -> None:
        event = self._require_event(event_id)
        if user_email:
            user = dao.get_user_by_email(self.db_path, user_email)
            if user is None or user.id != event.creator_id:
                raise AccessDenied("Only the event creator can delete this event")
        dao.delete_event(self.db_path, event_id)
        self.cache.evict(event_id)

    def get_shared_event(self, share_link: str) -> Dict[str, Any]:
        event = dao.get_event_by_share_link(self.db_path, share_link)
        if event is None:
            raise NotFound("Event not found")
        return event.public_view()

    def join_event(self, event_id: str, user_email: str, user_name: Optional[str] = None) -> Event:
        if not user_email:
            raise BadRequest("User email required")
        self._require_event(event_id)
        user = dao.get_or_create_user(self.db_path, user_email, user_name)
        if dao.add_participant_to_event(self.db_path, event_id, user.id):
            dao.add_chat_message(self.db_path, event_id, f"{user.name} joined the event!", "system")
            log.info("User %s joined event %s", user.id, event_id)
        return self._require_event(event_id)

    # ---------- chat ----------

    def get_chat_messages(self, event_id: str, user_email: Optional[str] = None) -> List[ChatMessage]:
        event = self._require_event(event_id)
        if user_email:
            self._require_participant(event, user_email)
        return dao.get_event_chat_messages(self.db_path, event_id)

    def remember_message(self, event_id: str, message: str, user_email: str) -> bool:
        """Store a participant's message without asking the assistant.

        Returns False when the sender is not a participant or the text is empty.
        """
        if not message or not message.strip():
            return False
        event = self._require_event(event_id)
        try:
            user = self._require_participant(event, user_email)
        except AccessDenied:
            return False
        dao.add_chat_message(self.db_path, event_id, message.strip(), "user", user.id)
        return True

    def post_chat_message(self, event_id: str, message: str, user_email: str) -> str:
        """Store the user's message, ask the assistant and store its reply."""
        if not message or not message.strip() or not user_email:
            raise BadRequest("Message and user email required")
        event = self._require_event(event_id)
        user = self._require_participant(event, user_email)

        history = dao.get_event_chat_messages(self.db_path, event_id)
        dao.add_chat_message(self.db_path, event_id, message.strip(), "user", user.id)

        participants = self.participants(event)
        context = PlanningContext(
            event=event,
            participants=participants,
            availability=self._context_availability(event, participants),
            nearby_activities=self.suggest_activities(event_id),
            chat_history=history,
        )
        reply = self.agent.respond(message, context)
        dao.add_chat_message(self.db_path, event_id, reply, "ai")
        return reply

    # ---------- availability ----------

    def _day_bounds(self, first: date, last: date) -> Tuple[datetime, datetime]:
        start = datetime.combine(first, time.min, tzinfo=self.tz)
        end = datetime.combine(last + timedelta(days=1), time.min, tzinfo=self.tz)
        return start, end

    def _localize(self, dt: datetime) -> datetime:
        return dt.replace(tzinfo=self.tz) if dt.tzinfo is None else dt.astimezone(self.tz)

    def compute_availability(
        self,
        participants: Sequence[User],
        start: datetime,
        end: datetime,
        duration: int,
    ) -> List[CandidateSlot]:
        """Ranked slots for participants with a connected calendar."""
        start, end = self._localize(start), self._localize(end)
        time_min, time_max = self._day_bounds(start.date(), end.date())
        busy = gather_busy_intervals(
            participants, time_min, time_max, self.settings.timezone, self.calendar_factory
        )
        return solve(
            AvailabilityRequest(
                busy_by_participant=busy,
                range_start=start,
                range_end=end,
                slot_duration_minutes=duration,
                timezone=self.settings.timezone,
            )
        )

    def _context_window(self, event: Event) -> Tuple[datetime, datetime]:
        if event.preferred_dates:
            dates = sorted(self._localize(d) for d in event.preferred_dates)
            return dates[0], dates[-1]
        today = datetime.now(self.tz)
        return today, today + timedelta(days=self.settings.availability_window_days)

    def _context_availability(self, event: Event, participants: Sequence[User]) -> List[CandidateSlot]:
        if not any(p.has_calendar for p in participants):
            return []
        start, end = self._context_window(event)
        try:
            slots = self.compute_availability(participants, start, end, event.duration)
        except InvalidArgument as e:
            log.warning("Skipping availability for event %s: %s", event.id, e)
            return []
        return analyze_best_time_slots(slots, event.preferences, take=len(slots))

    def analyze_availability(
        self,
        event_id: str,
        user_email: str,
        start_date: Any,
        end_date: Any,
        duration: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        if not user_email:
            raise Unauthorized("Unauthorized")
        event = self._require_event(event_id)
        self._require_participant(event, user_email)

        start = _parse_date_field("startDate", start_date)
        end = _parse_date_field("endDate", end_date)
        if start is None or end is None:
            raise BadRequest("startDate and endDate are required")
        if limit is not None and limit < 0:
            raise BadRequest("limit must not be negative")

        participants = self.participants(event)
        with_calendar = [p for p in participants if p.has_calendar]
        if duration is None:
            duration = event.duration
        try:
            slots = self.compute_availability(with_calendar, start, end, duration)
        except InvalidArgument as e:
            raise BadRequest(str(e)) from e
        if limit is not None:
            slots = slots[:limit]
        return {
            "availability": [slot_to_dict(s) for s in slots],
            "participantsWithCalendar": len(with_calendar),
            "totalParticipants": len(event.participants),
        }

    # ---------- users ----------

    def save_calendar_token(
        self,
        user_email: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> User:
        if not user_email or not access_token:
            raise BadRequest("User email and access token required")
        user = dao.get_or_create_user(self.db_path, user_email, user_name)
        fields: Dict[str, Any] = {"google_access_token": access_token}
        if refresh_token:
            fields["google_refresh_token"] = refresh_token
        dao.update_user(self.db_path, user.id, **fields)
        return dao.get_user(self.db_path, user.id) or user

    # ---------- activities ----------

    def _coordinates(self, event: Event, location: Location):
        if location.coordinates:
            return location.coordinates
        if not location.address or self.places is None:
            return None
        coords = self.places.geocode_address(location.address)
        if coords is not None:
            location.coordinates = coords
            dao.update_event(self.db_path, event.id, {"location": location.to_dict()})
        return coords

    def suggest_activities(self, event_id: str) -> List[Activity]:
        """Nearby activities for the event's location; empty without one."""
        event = self._require_event(event_id)
        if self.places is None or event.location is None:
            return []
        address = event.location.address
        cached = self.cache.get(event_id, address)
        if cached is not None:
            return cached
        coords = self._coordinates(event, event.location)
        if coords is None:
            return []
        activities = self.places.get_suggested_activities(coords, event.preferences.activity_types)
        self.cache.put(event_id, address, activities)
        return activities
