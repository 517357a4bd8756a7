"""Utilities to build Slack Block Kit structures for events."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from planner.models.events import Activity, Event
from planner.services.availability import CandidateSlot, describe_slot


def event_blocks(event: Event, join_url: str) -> List[Dict]:
    """Thread root for a newly created event, with a join button."""

    text = f"*{event.title}*"
    if event.description:
        text += f"\n{event.description}"
    text += f"\n<{join_url}|Join link> | {len(event.participants)} participant(s)"
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Join"},
                    "style": "primary",
                    "action_id": "join_event",
                    "value": event.id,
                }
            ],
        },
        {
            "type": "context",
            "elements": [
                {"type": "mrkdwn", "text": "Mention me in this thread to plan with the assistant."}
            ],
        },
    ]


def slot_blocks(slots: Sequence[CandidateSlot], names: Optional[Mapping[str, str]] = None) -> List[Dict]:
    """Ranked availability windows."""

    if not slots:
        return [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "No free windows found. Has anyone connected a calendar?",
                },
            }
        ]
    lines = [f"{i}. {describe_slot(s, names)}" for i, s in enumerate(slots, 1)]
    return [
        {"type": "header", "text": {"type": "plain_text", "text": "Best times"}},
        {"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}},
    ]


def activity_blocks(activities: Sequence[Activity], limit: int = 5) -> List[Dict]:
    if not activities:
        return [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": "No nearby activities yet. Set a location first."},
            }
        ]
    lines = []
    for a in activities[:limit]:
        rating = f" :star: {a.rating}" if a.rating is not None else ""
        lines.append(f"- *{a.name}* ({a.type}){rating}\n  {a.location.address}")
    return [{"type": "section", "text": {"type": "mrkdwn", "text": "\n".join(lines)}}]
