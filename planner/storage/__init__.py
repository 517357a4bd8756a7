"""Storage package exposing DAO helpers."""

from .dao import (
    RecordNotFound,
    init_db,
    create_user,
    get_user,
    get_user_by_email,
    get_or_create_user,
    update_user,
    create_event,
    get_event,
    get_event_by_share_link,
    get_user_events,
    update_event,
    delete_event,
    add_participant_to_event,
    add_chat_message,
    get_event_chat_messages,
    generate_share_link,
    link_slack_thread,
    get_event_for_thread,
    get_latest_thread_event,
)

__all__ = [
    "RecordNotFound",
    "init_db",
    "create_user",
    "get_user",
    "get_user_by_email",
    "get_or_create_user",
    "update_user",
    "create_event",
    "get_event",
    "get_event_by_share_link",
    "get_user_events",
    "update_event",
    "delete_event",
    "add_participant_to_event",
    "add_chat_message",
    "get_event_chat_messages",
    "generate_share_link",
    "link_slack_thread",
    "get_event_for_thread",
    "get_latest_thread_event",
]
