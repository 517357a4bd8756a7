"""Gemini-based planning assistant.

Each chat turn is stateless on the model side: the stored chat history of the
event is replayed (last ``HISTORY_LIMIT`` messages) together with a system
prompt describing the event, the best availability windows and nearby
activities.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_google_genai import ChatGoogleGenerativeAI

from planner.config import Settings
from planner.models.events import ChatMessage, Event, EventPreferences, PlanningContext, User
from planner.services.availability import CandidateSlot, describe_slot

HISTORY_LIMIT = 10
PROMPT_SLOTS = 5
PROMPT_ACTIVITIES = 8

FALLBACK_REPLY = (
    "I encountered an error while processing your message. "
    "Please try again or ask me something else about your event planning!"
)
EMPTY_REPLY = (
    "I apologize, but I had trouble processing your message. Could you please try again?"
)
FALLBACK_SUGGESTIONS = [
    "Plan group activities",
    "Find a venue",
    "Coordinate schedules",
    "Organize food/drinks",
    "Set up entertainment",
]

RESPONSE_RULES = """Your responses should:
- Be direct and actionable (1-3 sentences)
- Give specific suggestions when possible, using the availability and places above when present
- Ask clarifying questions if you need more info
- Never explain your reasoning or show thinking
- Never invent calendar data or places that are not listed above"""

log = logging.getLogger(__name__)


def _availability_lines(slots: Sequence[CandidateSlot], participants: Sequence[User]) -> List[str]:
    names = {p.id: p.name for p in participants}
    return [f"- {describe_slot(s, names)}" for s in slots[:PROMPT_SLOTS]]


def build_system_prompt(context: PlanningContext) -> str:
    """System prompt for one chat turn."""
    event = context.event
    lines = [
        "You are a helpful event planning assistant. Give direct, practical responses. "
        "DO NOT show your thinking process, reasoning, or any internal thoughts.",
        "",
        f'Event: "{event.title}"',
    ]
    if event.description:
        lines.append(f"Description: {event.description}")
    lines.append(f"Participants: {len(context.participants)} people")
    if event.created_at:
        lines.append(f"Created: {event.created_at:%Y-%m-%d}")
    if event.location:
        lines.append(f"Location: {event.location.address}")
    lines.append(f"Planned duration: {event.duration} minutes")

    if context.availability:
        lines += ["", "Best times (most participants free first):"]
        lines += _availability_lines(context.availability, context.participants)
    else:
        lines += ["", "No calendar availability is known; do not claim to know anyone's schedule."]

    if context.nearby_activities:
        lines += ["", "Nearby activities:"]
        for a in context.nearby_activities[:PROMPT_ACTIVITIES]:
            rating = f", rated {a.rating}" if a.rating is not None else ""
            lines.append(f"- {a.name} ({a.type}{rating}) - {a.location.address}")

    lines += ["", RESPONSE_RULES]
    return "\n".join(lines)


def history_messages(history: Sequence[ChatMessage], limit: int = HISTORY_LIMIT) -> List[BaseMessage]:
    """Map stored chat messages onto LangChain messages; non-user turns become AI turns."""
    out: List[BaseMessage] = []
    for m in list(history)[-limit:]:
        if m.type == "user":
            out.append(HumanMessage(content=m.content))
        else:
            out.append(AIMessage(content=m.content))
    return out


def _slot_matches(slot: CandidateSlot, time_of_day: str) -> bool:
    hour = slot.start.hour
    if time_of_day == "morning":
        return hour < 12
    if time_of_day == "afternoon":
        return 12 <= hour < 17
    if time_of_day == "evening":
        return hour >= 17
    return True


def analyze_best_time_slots(
    slots: Sequence[CandidateSlot], preferences: EventPreferences, take: int = 3
) -> List[CandidateSlot]:
    """Top ``take`` slots by free-participant count.

    The event's time of day only breaks ties between equal counts; otherwise
    ``slots`` keep their ranked order.
    """
    tod = preferences.time_of_day
    ranked = sorted(slots, key=lambda s: (-len(s.available_participants), not _slot_matches(s, tod)))
    return ranked[:take]


class PlannerAgent:
    """Planning assistant backed by a chat model (Gemini by default)."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm: Optional[BaseChatModel] = None,
    ) -> None:
        if llm is None:
            settings = settings or Settings.from_env()
            settings.require("gemini_api_key")
            llm = ChatGoogleGenerativeAI(
                model=settings.gemini_model, google_api_key=settings.gemini_api_key
            )
        self.llm = llm
        self.prompt = ChatPromptTemplate.from_messages(
            [
                ("system", "{system}"),
                MessagesPlaceholder("history"),
                ("human", "{input}"),
            ]
        )
        self.chain = self.prompt | self.llm

    def respond(self, message: str, context: PlanningContext) -> str:
        """Reply to ``message`` in the light of ``context``."""

        if not message or not message.strip():
            return "What would you like to plan? Tell me in a sentence."

        try:
            result = self.chain.invoke(
                {
                    "system": build_system_prompt(context),
                    "history": history_messages(context.chat_history),
                    "input": message.strip(),
                }
            )
        except Exception:
            log.exception("Error processing AI message")
            return FALLBACK_REPLY
        text = getattr(result, "content", result)
        if not isinstance(text, str) or not text.strip():
            return EMPTY_REPLY
        return text.strip()

    def generate_event_suggestions(self, event: Event, participants: Sequence[User]) -> List[str]:
        """Up to five short activity ideas for the event."""
        prompt = (
            f'Based on this event: "{event.title}" with {len(participants)} participants, '
            "suggest 5 specific activity ideas, one per line. Be brief and practical."
        )
        reply = self.respond(prompt, PlanningContext(event=event, participants=list(participants)))
        if reply in (FALLBACK_REPLY, EMPTY_REPLY):
            return list(FALLBACK_SUGGESTIONS)
        lines = [line.strip().lstrip("-*• ").strip() for line in reply.splitlines()]
        return [line for line in lines if line][:5]
