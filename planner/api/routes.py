"""FastAPI application exposing the planning operations as JSON routes."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from planner.flows.planning_flow import BadRequest, PlanningError, PlanningService

log = logging.getLogger(__name__)


def _optional_int(body: Dict[str, Any], key: str, minimum: int) -> Optional[int]:
    """Whole number at ``body[key]`` no smaller than ``minimum``, or None if absent."""
    value = body.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise BadRequest(f"{key} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise BadRequest(f"{key} must be an integer") from e
    if number < minimum:
        raise BadRequest(f"{key} must be at least {minimum}")
    return number


def create_app(service: PlanningService) -> FastAPI:
    app = FastAPI(title="Event Planner")
    app.state.service = service

    @app.exception_handler(PlanningError)
    async def planning_error(_: Request, exc: PlanningError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/healthz")
    def health():
        return {"ok": True}

    # ---------- events ----------

    @app.post("/api/events")
    def create_event(body: dict = Body(...)):
        event = service.create_event(
            title=body.get("title") or "",
            user_email=body.get("userEmail") or "",
            user_name=body.get("userName"),
            description=body.get("description"),
        )
        return {"event": event.to_dict()}

    @app.get("/api/events")
    def list_events(userEmail: Optional[str] = Query(None)):
        events = service.list_events(userEmail or "")
        return {"events": [e.to_dict() for e in events]}

    @app.get("/api/events/share/{share_link}")
    def shared_event(share_link: str):
        return {"event": service.get_shared_event(share_link)}

    @app.get("/api/events/{event_id}")
    def get_event(event_id: str, userEmail: Optional[str] = Query(None)):
        return {"event": service.get_event(event_id, userEmail).to_dict()}

    @app.put("/api/events/{event_id}")
    def update_event(event_id: str, body: dict = Body(...)):
        updates = dict(body)
        user_email = updates.pop("userEmail", None)
        event = service.update_event(event_id, updates, user_email)
        return {"event": event.to_dict()}

    @app.delete("/api/events/{event_id}")
    def delete_event(event_id: str, userEmail: Optional[str] = Query(None)):
        service.delete_event(event_id, userEmail)
        return {"success": True}

    @app.post("/api/events/{event_id}/join")
    def join_event(event_id: str, body: dict = Body(...)):
        event = service.join_event(event_id, body.get("userEmail") or "", body.get("userName"))
        return {"event": event.to_dict()}

    # ---------- chat ----------

    @app.post("/api/events/{event_id}/chat")
    def post_chat(event_id: str, body: dict = Body(...)):
        reply = service.post_chat_message(
            event_id, body.get("message") or "", body.get("userEmail") or ""
        )
        return {"response": reply}

    @app.get("/api/events/{event_id}/chat")
    def get_chat(event_id: str, userEmail: Optional[str] = Query(None)):
        messages = service.get_chat_messages(event_id, userEmail)
        return {"messages": [m.to_dict() for m in messages]}

    @app.get("/api/events/{event_id}/activities")
    def activities(event_id: str):
        return {"activities": [a.to_dict() for a in service.suggest_activities(event_id)]}

    # ---------- calendar ----------

    @app.post("/api/calendar/availability")
    def availability(body: dict = Body(...)):
        if not body.get("eventId"):
            raise BadRequest("eventId is required")
        return service.analyze_availability(
            event_id=body["eventId"],
            user_email=body.get("userEmail") or "",
            start_date=body.get("startDate"),
            end_date=body.get("endDate"),
            duration=_optional_int(body, "duration", minimum=1),
            limit=_optional_int(body, "limit", minimum=0),
        )

    @app.post("/api/users/calendar-token")
    def calendar_token(body: dict = Body(...)):
        user = service.save_calendar_token(
            user_email=body.get("userEmail") or "",
            access_token=body.get("accessToken") or "",
            refresh_token=body.get("refreshToken"),
            user_name=body.get("userName"),
        )
        return {"user": user.to_dict()}

    return app
