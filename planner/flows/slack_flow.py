# planner/flows/slack_flow.py
"""Slack surface: one thread per event, the assistant answers mentions in it."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from slack_bolt import App

from planner.blocks.events import activity_blocks, event_blocks, slot_blocks
from planner.flows.planning_flow import PlanningError, PlanningService
from planner.storage import dao

SLOT_LIMIT = 5

log = logging.getLogger(__name__)


def strip_mention(text: str) -> str:
    if not text:
        return ""
    if text.startswith("<@"):
        after = text.split(">", 1)
        return after[1].strip() if len(after) == 2 else text
    return text.strip()


def slack_identity(client, user_id: str) -> Tuple[str, str]:
    """(email, display name) of a Slack user.

    Falls back to a synthetic address when the profile hides the email or the
    lookup fails, so the same Slack user always maps to the same planner user.
    """
    email = f"{user_id.lower()}@slack.invalid"
    name = user_id
    try:
        profile = (client.users_info(user=user_id).get("user") or {}).get("profile") or {}
        email = profile.get("email") or email
        name = profile.get("real_name") or profile.get("display_name") or name
    except Exception as e:
        log.warning("users_info failed for %s: %s", user_id, e)
    return email, name


def _thread_event(service: PlanningService, event: Dict) -> Optional[str]:
    thread_ts = event.get("thread_ts")
    if not thread_ts:
        return None
    return dao.get_event_for_thread(service.db_path, thread_ts)


def register_slack_flow(app: App, service: PlanningService, bot_user_id: Optional[str] = None) -> None:
    # /plan <title>: start an event in a new thread
    @app.command("/plan")
    def cmd_plan(ack, body, client, say, logger):
        ack()
        title = (body.get("text") or "").strip()
        if not title:
            say(text="Usage: `/plan <event title>`")
            return
        channel_id = body["channel_id"]
        try:
            email, name = slack_identity(client, body["user_id"])
            event = service.create_event(title, email, name)
            res = client.chat_postMessage(
                channel=channel_id,
                text=f"New event: {event.title}",
                blocks=event_blocks(event, service.settings.join_url(event.share_link)),
            )
            dao.link_slack_thread(service.db_path, res["ts"], channel_id, event.id)
        except Exception as e:
            logger.exception(e)
            say(text="Could not create the event. Please try again.")

    # /plan-slots: best times for the latest event in the channel
    @app.command("/plan-slots")
    def cmd_slots(ack, body, say, logger):
        ack()
        event_id = dao.get_latest_thread_event(service.db_path, body.get("channel_id"))
        if not event_id:
            say(text="No event in this channel yet. Start one with `/plan <title>`.")
            return
        try:
            event = service.get_event(event_id)
            participants = service.participants(event)
            start = datetime.now(service.tz)
            end = start + timedelta(days=service.settings.availability_window_days)
            slots = service.compute_availability(
                [p for p in participants if p.has_calendar], start, end, event.duration
            )
            names = {p.id: p.name for p in participants}
            say(text=f"Best times for {event.title}", blocks=slot_blocks(slots[:SLOT_LIMIT], names))
        except Exception as e:
            logger.exception(e)
            say(text="Could not compute availability. Please try again.")

    # /plan-places: nearby activities for the latest event in the channel
    @app.command("/plan-places")
    def cmd_places(ack, body, say, logger):
        ack()
        event_id = dao.get_latest_thread_event(service.db_path, body.get("channel_id"))
        if not event_id:
            say(text="No event in this channel yet. Start one with `/plan <title>`.")
            return
        try:
            say(text="Nearby activities", blocks=activity_blocks(service.suggest_activities(event_id)))
        except Exception as e:
            logger.exception(e)
            say(text="Could not look up activities. Please try again.")

    @app.action("join_event")
    def on_join(ack, body, action, client, logger):
        ack()
        user_id = body["user"]["id"]
        try:
            email, name = slack_identity(client, user_id)
            event = service.join_event(action["value"], email, name)
            channel = (body.get("channel") or {}).get("id")
            if channel:
                client.chat_postEphemeral(
                    channel=channel, user=user_id, text=f"You joined *{event.title}*!"
                )
        except PlanningError as e:
            logger.warning("join failed: %s", e)
        except Exception as e:
            logger.exception(e)

    @app.event("app_mention")
    def on_mention(event, say, client, logger):
        thread_ts = event.get("thread_ts") or event.get("ts")
        event_id = _thread_event(service, event)
        if not event_id:
            say(text="Start an event with `/plan <title>` and mention me in its thread.", thread_ts=thread_ts)
            return
        user = event.get("user")
        prompt = strip_mention(event.get("text", ""))
        try:
            email, _ = slack_identity(client, user)
            reply = service.post_chat_message(event_id, prompt, email)
        except PlanningError as e:
            say(text=f"<@{user}> {e}", thread_ts=thread_ts)
            return
        except Exception as e:
            logger.exception(e)
            say(text="Something went wrong. Please try again.", thread_ts=thread_ts)
            return
        say(text=f"<@{user}> {reply}", thread_ts=thread_ts)

    # passive ingest: thread chatter becomes chat history (no reply)
    @app.event("message")
    def on_message(event, client, logger):
        if event.get("subtype"):
            return
        user = event.get("user")
        if not user or user == bot_user_id:
            return
        text = event.get("text", "")
        if bot_user_id and f"<@{bot_user_id}>" in text:
            return  # handled by app_mention
        event_id = _thread_event(service, event)
        if not event_id:
            return
        try:
            email, _ = slack_identity(client, user)
            service.remember_message(event_id, strip_mention(text), email)
        except Exception as e:
            logger.exception(e)
