"""SQLite Data Access Object for users, events and chat messages.

Events are stored as JSON documents; participant membership lives in its
own table so that "events containing user X" is a plain indexed query.
"""

from __future__ import annotations

import json
import os
import random
import sqlite3
import string
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from planner.models.events import ChatMessage, Event, EventPreferences, User, parse_datetime

# fields a partial update may not touch
PROTECTED_EVENT_FIELDS = ("id", "creatorId", "shareLink", "createdAt", "participants")

_B36 = string.digits + string.ascii_lowercase


class RecordNotFound(LookupError):
    """Raised when a write targets a document that does not exist."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _B36[r] + out
    return out or "0"


def generate_share_link() -> str:
    """Random 9-char token followed by the current time in base36."""
    token = "".join(random.choices(_B36, k=9))
    return token + _base36(int(time.time() * 1000))


@contextmanager
def _connect(db_path: str) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def init_db(db_path: str) -> None:
    """Initialize database and ensure tables exist."""
    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with _connect(db_path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                name TEXT,
                picture TEXT,
                google_access_token TEXT,
                google_refresh_token TEXT,
                created_at TEXT,
                updated_at TEXT
            );
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                share_link TEXT NOT NULL UNIQUE,
                creator_id TEXT NOT NULL,
                created_at TEXT,
                updated_at TEXT,
                doc TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS event_participants (
                event_id TEXT NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                user_id TEXT NOT NULL,
                PRIMARY KEY (event_id, user_id)
            );
            CREATE INDEX IF NOT EXISTS idx_event_participants_user
                ON event_participants(user_id);
            CREATE TABLE IF NOT EXISTS chat_messages (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL REFERENCES events(id) ON DELETE CASCADE,
                user_id TEXT,
                content TEXT NOT NULL,
                type TEXT NOT NULL,
                timestamp TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_chat_messages_event
                ON chat_messages(event_id, timestamp);
            CREATE TABLE IF NOT EXISTS slack_threads (
                thread_ts TEXT PRIMARY KEY,
                channel_id TEXT NOT NULL,
                event_id TEXT NOT NULL REFERENCES events(id) ON DELETE CASCADE
            );
            """
        )


# ---------- users ----------

def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        name=row["name"] or "Anonymous",
        picture=row["picture"],
        google_access_token=row["google_access_token"],
        google_refresh_token=row["google_refresh_token"],
        created_at=parse_datetime(row["created_at"]),
        updated_at=parse_datetime(row["updated_at"]),
    )


def create_user(db_path: str, email: str, name: Optional[str] = None, picture: Optional[str] = None) -> str:
    user_id = _new_id()
    with _connect(db_path) as conn:
        conn.execute(
            "INSERT INTO users (id, email, name, picture, created_at) VALUES (?,?,?,?,?)",
            (user_id, email, name or "Anonymous", picture, _now().isoformat()),
        )
    return user_id


def get_user(db_path: str, user_id: str) -> Optional[User]:
    with _connect(db_path) as conn:
        row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
    return _row_to_user(row) if row else None


def get_user_by_email(db_path: str, email: str) -> Optional[User]:
    with _connect(db_path) as conn:
        row = conn.execute("SELECT * FROM users WHERE email=? LIMIT 1", (email,)).fetchone()
    return _row_to_user(row) if row else None


def get_or_create_user(db_path: str, email: str, name: Optional[str] = None) -> User:
    user = get_user_by_email(db_path, email)
    if user:
        return user
    try:
        create_user(db_path, email, name)
    except sqlite3.IntegrityError:
        # created concurrently; fall through to the lookup
        pass
    user = get_user_by_email(db_path, email)
    if user is None:
        raise RecordNotFound(f"user {email} could not be created")
    return user


_USER_COLUMNS = ("name", "picture", "google_access_token", "google_refresh_token")


def update_user(db_path: str, user_id: str, **fields: Any) -> None:
    cols = {k: v for k, v in fields.items() if k in _USER_COLUMNS}
    if not cols:
        return
    assignments = ", ".join(f"{k}=?" for k in cols)
    with _connect(db_path) as conn:
        cur = conn.execute(
            f"UPDATE users SET {assignments}, updated_at=? WHERE id=?",
            (*cols.values(), _now().isoformat(), user_id),
        )
        if cur.rowcount == 0:
            raise RecordNotFound(f"user {user_id} not found")


# ---------- events ----------

def _participants(conn: sqlite3.Connection, event_id: str) -> List[str]:
    rows = conn.execute(
        "SELECT user_id FROM event_participants WHERE event_id=? ORDER BY rowid",
        (event_id,),
    ).fetchall()
    return [r["user_id"] for r in rows]


def _row_to_event(conn: sqlite3.Connection, row: sqlite3.Row) -> Event:
    doc = json.loads(row["doc"])
    doc.update(
        {
            "id": row["id"],
            "shareLink": row["share_link"],
            "creatorId": row["creator_id"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
            "participants": _participants(conn, row["id"]),
        }
    )
    return Event.from_dict(doc)


def create_event(db_path: str, event: Event) -> str:
    """Insert ``event`` and return its id.

    A missing id, share link or status is filled in; the participants listed
    on the event are stored as its initial members.
    """
    event.id = event.id or _new_id()
    event.share_link = event.share_link or generate_share_link()
    event.status = event.status or "planning"
    event.preferences = event.preferences or EventPreferences()
    event.created_at = event.created_at or _now()
    doc = event.to_dict()
    with _connect(db_path) as conn:
        conn.execute(
            "INSERT INTO events (id, share_link, creator_id, created_at, updated_at, doc)"
            " VALUES (?,?,?,?,?,?)",
            (
                event.id,
                event.share_link,
                event.creator_id,
                event.created_at.isoformat(),
                None,
                json.dumps(doc, ensure_ascii=False),
            ),
        )
        for user_id in dict.fromkeys(event.participants):
            conn.execute(
                "INSERT INTO event_participants (event_id, user_id) VALUES (?,?)",
                (event.id, user_id),
            )
    return event.id


def get_event(db_path: str, event_id: str) -> Optional[Event]:
    with _connect(db_path) as conn:
        row = conn.execute("SELECT * FROM events WHERE id=?", (event_id,)).fetchone()
        return _row_to_event(conn, row) if row else None


def get_event_by_share_link(db_path: str, share_link: str) -> Optional[Event]:
    with _connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM events WHERE share_link=? LIMIT 1", (share_link,)
        ).fetchone()
        return _row_to_event(conn, row) if row else None


def get_user_events(db_path: str, user_id: str) -> List[Event]:
    """Events the user participates in, most recently created first."""
    with _connect(db_path) as conn:
        rows = conn.execute(
            "SELECT e.* FROM events e"
            " JOIN event_participants p ON p.event_id = e.id"
            " WHERE p.user_id=? ORDER BY e.created_at DESC, e.rowid DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_event(conn, r) for r in rows]


def update_event(db_path: str, event_id: str, updates: Dict[str, Any]) -> None:
    """Merge camelCase ``updates`` into the stored event document."""
    with _connect(db_path) as conn:
        row = conn.execute("SELECT * FROM events WHERE id=?", (event_id,)).fetchone()
        if not row:
            raise RecordNotFound(f"event {event_id} not found")
        current = _row_to_event(conn, row).to_dict()
        current.update({k: v for k, v in updates.items() if k not in PROTECTED_EVENT_FIELDS})
        now = _now()
        current["updatedAt"] = now.isoformat()
        # round-trip through the model to normalize dates and nested documents
        doc = Event.from_dict(current).to_dict()
        conn.execute(
            "UPDATE events SET doc=?, updated_at=? WHERE id=?",
            (json.dumps(doc, ensure_ascii=False), now.isoformat(), event_id),
        )


def delete_event(db_path: str, event_id: str) -> None:
    with _connect(db_path) as conn:
        conn.execute("DELETE FROM events WHERE id=?", (event_id,))


def add_participant_to_event(db_path: str, event_id: str, user_id: str) -> bool:
    """Add ``user_id`` to the event. Returns False if already a participant."""
    with _connect(db_path) as conn:
        if not conn.execute("SELECT 1 FROM events WHERE id=?", (event_id,)).fetchone():
            raise RecordNotFound(f"event {event_id} not found")
        cur = conn.execute(
            "INSERT OR IGNORE INTO event_participants (event_id, user_id) VALUES (?,?)",
            (event_id, user_id),
        )
        if cur.rowcount:
            conn.execute(
                "UPDATE events SET updated_at=? WHERE id=?", (_now().isoformat(), event_id)
            )
        return bool(cur.rowcount)


# ---------- chat ----------

def add_chat_message(
    db_path: str,
    event_id: str,
    content: str,
    type: str,
    user_id: Optional[str] = None,
) -> str:
    message_id = _new_id()
    with _connect(db_path) as conn:
        conn.execute(
            "INSERT INTO chat_messages (id, event_id, user_id, content, type, timestamp)"
            " VALUES (?,?,?,?,?,?)",
            (message_id, event_id, user_id, content, type, _now().isoformat()),
        )
    return message_id


def get_event_chat_messages(db_path: str, event_id: str) -> List[ChatMessage]:
    """Messages of an event, oldest first."""
    with _connect(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM chat_messages WHERE event_id=? ORDER BY timestamp, rowid",
            (event_id,),
        ).fetchall()
    return [
        ChatMessage(
            id=r["id"],
            event_id=r["event_id"],
            user_id=r["user_id"],
            content=r["content"],
            type=r["type"],
            timestamp=parse_datetime(r["timestamp"]),
        )
        for r in rows
    ]


# ---------- slack threads ----------

def link_slack_thread(db_path: str, thread_ts: str, channel_id: str, event_id: str) -> None:
    with _connect(db_path) as conn:
        conn.execute(
            "INSERT OR REPLACE INTO slack_threads (thread_ts, channel_id, event_id) VALUES (?,?,?)",
            (thread_ts, channel_id, event_id),
        )


def get_event_for_thread(db_path: str, thread_ts: str) -> Optional[str]:
    with _connect(db_path) as conn:
        row = conn.execute(
            "SELECT event_id FROM slack_threads WHERE thread_ts=?", (thread_ts,)
        ).fetchone()
    return row["event_id"] if row else None


def get_latest_thread_event(db_path: str, channel_id: str) -> Optional[str]:
    """Event of the most recently linked thread in ``channel_id``."""
    with _connect(db_path) as conn:
        row = conn.execute(
            "SELECT event_id FROM slack_threads WHERE channel_id=? ORDER BY rowid DESC LIMIT 1",
            (channel_id,),
        ).fetchone()
    return row["event_id"] if row else None
