"""Entry point: HTTP API (``web``) or Slack Socket Mode bot (``slack``).

Configuration comes from the environment (and ``.env``), see ``planner.config``.
"""

import argparse
import logging
import sys

from planner.agent.llm_agent import PlannerAgent
from planner.config import Settings
from planner.flows.planning_flow import PlanningService
from planner.services.places import PlacesClient

log = logging.getLogger("planner")


def build_service(settings: Settings) -> PlanningService:
    places = PlacesClient(settings.google_maps_api_key) if settings.google_maps_api_key else None
    if places is None:
        log.warning("GOOGLE_MAPS_API_KEY is not set; activity suggestions are disabled")
    return PlanningService(settings, PlannerAgent(settings), places=places)


def run_web(settings: Settings, service: PlanningService) -> None:
    import uvicorn

    from planner.api.routes import create_app

    uvicorn.run(create_app(service), host="0.0.0.0", port=settings.port)


def run_slack(settings: Settings, service: PlanningService) -> None:
    from slack_bolt import App
    from slack_bolt.adapter.socket_mode import SocketModeHandler

    from planner.flows.slack_flow import register_slack_flow

    app = App(token=settings.slack_bot_token)
    bot_user_id = None
    try:
        bot_user_id = app.client.auth_test()["user_id"]
    except Exception as e:
        log.warning("auth_test failed: %s", e)

    register_slack_flow(app, service, bot_user_id)
    SocketModeHandler(app, settings.slack_app_token).start()


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Collaborative event planner")
    ap.add_argument("surface", choices=["web", "slack"], nargs="?", default="web")
    args = ap.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    required = ["gemini_api_key"]
    if args.surface == "slack":
        required += ["slack_bot_token", "slack_app_token"]
    missing = settings.missing(*required)
    if missing:
        log.error("Missing settings: %s", ", ".join(missing))
        return 1

    service = build_service(settings)
    if args.surface == "slack":
        run_slack(settings, service)
    else:
        run_web(settings, service)
    return 0


if __name__ == "__main__":
    sys.exit(main())
