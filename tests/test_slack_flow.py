import os, sys, logging

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from planner.blocks.events import activity_blocks, event_blocks, slot_blocks
from planner.flows.slack_flow import register_slack_flow, slack_identity, strip_mention
from planner.storage import dao

BOT = "UBOT"
logger = logging.getLogger("test")


class DummyApp:
    """Collects the registered handlers by command, action or event name."""

    def __init__(self):
        self.handlers = {}

    def event(self, name, *args, **kwargs):
        def decorator(func):
            self.handlers[name] = func
            return func

        return decorator

    command = action = event


class DummyClient:
    def __init__(self, profiles=None):
        self.profiles = profiles or {}
        self.posted = []
        self.ephemeral = []

    def users_info(self, user):
        if user not in self.profiles:
            raise RuntimeError("user_not_found")
        return {"user": {"profile": self.profiles[user]}}

    def chat_postMessage(self, **kwargs):
        self.posted.append(kwargs)
        return {"ts": f"{len(self.posted)}.000"}

    def chat_postEphemeral(self, **kwargs):
        self.ephemeral.append(kwargs)


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)


def ack():
    pass


PROFILES = {
    "UANN": {"email": "ann@example.com", "real_name": "Ann"},
    "UBO": {"email": "bo@example.com", "real_name": "Bo"},
}


def setup(service):
    app = DummyApp()
    register_slack_flow(app, service, bot_user_id=BOT)
    return app.handlers, DummyClient(PROFILES)


def start_event(handlers, client, title="Picnic"):
    say = Recorder()
    handlers["/plan"](
        ack=ack,
        body={"text": title, "channel_id": "C1", "user_id": "UANN"},
        client=client,
        say=say,
        logger=logger,
    )
    return client.posted[-1]


def test_strip_mention():
    assert strip_mention("<@U123> hello") == "hello"
    assert strip_mention("no mention ") == "no mention"
    assert strip_mention("") == ""


def test_slack_identity_falls_back_to_synthetic_email():
    client = DummyClient(PROFILES)
    assert slack_identity(client, "UANN") == ("ann@example.com", "Ann")
    assert slack_identity(client, "UZED") == ("uzed@slack.invalid", "UZED")


def test_plan_command_posts_thread_root_and_links_it(service):
    handlers, client = setup(service)
    post = start_event(handlers, client)

    assert post["channel"] == "C1"
    assert post["text"] == "New event: Picnic"
    button = post["blocks"][1]["elements"][0]
    assert button["action_id"] == "join_event"
    event_id = dao.get_event_for_thread(service.db_path, "1.000")
    assert button["value"] == event_id
    assert service.get_event(event_id).title == "Picnic"


def test_plan_command_without_title_shows_usage(service):
    handlers, client = setup(service)
    say = Recorder()
    handlers["/plan"](ack=ack, body={"text": " ", "channel_id": "C1", "user_id": "UANN"}, client=client, say=say, logger=logger)
    assert "Usage" in say.calls[0]["text"]
    assert client.posted == []


def test_join_button_adds_participant(service):
    handlers, client = setup(service)
    start_event(handlers, client)
    event_id = dao.get_event_for_thread(service.db_path, "1.000")

    handlers["join_event"](
        ack=ack,
        body={"user": {"id": "UBO"}, "channel": {"id": "C1"}},
        action={"value": event_id},
        client=client,
        logger=logger,
    )
    assert len(service.get_event(event_id).participants) == 2
    assert client.ephemeral[0]["user"] == "UBO"
    assert "Picnic" in client.ephemeral[0]["text"]


def test_mention_in_event_thread_relays_to_assistant(service, llm):
    handlers, client = setup(service)
    start_event(handlers, client)
    say = Recorder()

    handlers["app_mention"](
        event={"user": "UANN", "text": f"<@{BOT}> when should we meet?", "ts": "2.000", "thread_ts": "1.000"},
        say=say,
        client=client,
        logger=logger,
    )
    assert say.calls == [{"text": f"<@UANN> {llm.reply}", "thread_ts": "1.000"}]
    assert llm.prompts[0][-1].content == "when should we meet?"


def test_mention_from_outsider_gets_error_text(service, llm):
    handlers, client = setup(service)
    start_event(handlers, client)
    say = Recorder()
    handlers["app_mention"](
        event={"user": "UBO", "text": f"<@{BOT}> hi", "ts": "2.000", "thread_ts": "1.000"},
        say=say,
        client=client,
        logger=logger,
    )
    assert say.calls[0]["text"] == "<@UBO> Access denied"
    assert llm.prompts == []


def test_mention_outside_event_thread_explains_usage(service):
    handlers, client = setup(service)
    say = Recorder()
    handlers["app_mention"](event={"user": "UANN", "text": f"<@{BOT}> hi", "ts": "9.000"}, say=say, client=client, logger=logger)
    assert "/plan" in say.calls[0]["text"]
    assert say.calls[0]["thread_ts"] == "9.000"


def test_thread_messages_become_history(service, llm):
    handlers, client = setup(service)
    start_event(handlers, client)
    event_id = dao.get_event_for_thread(service.db_path, "1.000")

    on_message = handlers["message"]
    on_message(event={"user": "UANN", "text": "Saturday works for me", "thread_ts": "1.000"}, client=client, logger=logger)
    on_message(event={"user": "UANN", "text": f"<@{BOT}> ping", "thread_ts": "1.000"}, client=client, logger=logger)
    on_message(event={"user": BOT, "text": "bot chatter", "thread_ts": "1.000"}, client=client, logger=logger)
    on_message(event={"user": "UANN", "text": "edited", "subtype": "message_changed", "thread_ts": "1.000"}, client=client, logger=logger)
    on_message(event={"user": "UBO", "text": "not a participant", "thread_ts": "1.000"}, client=client, logger=logger)
    on_message(event={"user": "UANN", "text": "top level", "ts": "5.000"}, client=client, logger=logger)

    messages = service.get_chat_messages(event_id)
    assert [m.content for m in messages] == ["Saturday works for me"]
    assert llm.prompts == []


def test_slots_command_for_latest_channel_event(service):
    handlers, client = setup(service)
    say = Recorder()
    handlers["/plan-slots"](ack=ack, body={"channel_id": "C9"}, say=say, logger=logger)
    assert "No event" in say.calls[0]["text"]

    start_event(handlers, client)
    service.save_calendar_token("ann@example.com", "tok-ann")
    handlers["/plan-slots"](ack=ack, body={"channel_id": "C1"}, say=say, logger=logger)
    blocks = say.calls[-1]["blocks"]
    assert blocks[0]["text"]["text"] == "Best times"
    assert blocks[1]["text"]["text"].count("\n") == 4


def test_places_command_without_location(service):
    handlers, client = setup(service)
    start_event(handlers, client)
    say = Recorder()
    handlers["/plan-places"](ack=ack, body={"channel_id": "C1"}, say=say, logger=logger)
    assert "Set a location" in say.calls[0]["blocks"][0]["text"]["text"]


def test_blocks_render_empty_states():
    assert "No free windows" in slot_blocks([])[0]["text"]["text"]
    assert "No nearby activities" in activity_blocks([])[0]["text"]["text"]


def test_event_blocks_carry_join_link(service):
    event = service.create_event("Picnic", "ann@example.com", description="Bring food")
    blocks = event_blocks(event, "http://localhost:8000/join/abc")
    text = blocks[0]["text"]["text"]
    assert "*Picnic*" in text
    assert "Bring food" in text
    assert "<http://localhost:8000/join/abc|Join link>" in text
