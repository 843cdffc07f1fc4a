from datetime import datetime, timedelta, timezone

import pytest

from teledesk.config import Settings
from teledesk.runtime import Runtime
from teledesk.services.bot_service import BotService
from teledesk.services.chat_outbox import ChatOutbox
from teledesk.services.reaction_poller import ReactionPoller
from teledesk.services.relay_service import RelayService
from teledesk.services.session_store import SessionStore
from teledesk.services.state_machine import ConversationMachine
from teledesk.services.ticket_service import TicketService, TicketSessionCache
from teledesk.storage import JsonDocumentStorage

REQUESTER_ID = 1001
TEAM_MEMBER_ID = 2002
ACK_REACTIONS = frozenset({"white_check_mark", "heavy_check_mark", "+1", "thumbsup", "eyes"})


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeTelegram:
    def __init__(self):
        self.sent = []
        self.edited = []
        self.deleted = []
        self.answered = []
        self.fail_send = False
        self.fail_edit = False
        self.fail_delete = False
        self._next_id = 500

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode="Markdown", disable_web_page_preview=False):
        if self.fail_send:
            return {"ok": False, "error": "Forbidden: bot was blocked by the user"}
        self._next_id += 1
        self.sent.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup, "message_id": self._next_id})
        return {"ok": True, "result": {"message_id": self._next_id}}

    async def edit_message(self, chat_id, message_id, text, reply_markup=None, parse_mode=None):
        if self.fail_edit:
            return {"ok": False, "description": "Bad Request: message to edit not found"}
        self.edited.append({"chat_id": chat_id, "message_id": message_id, "text": text})
        return {"ok": True, "result": {"message_id": message_id}}

    async def delete_message(self, chat_id, message_id):
        if self.fail_delete:
            return {"ok": False, "description": "Bad Request: message can't be deleted"}
        self.deleted.append((chat_id, message_id))
        return {"ok": True, "result": True}

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append((callback_query_id, text))
        return {"ok": True, "result": True}


class FakeSlack:
    def __init__(self):
        self.posts = []
        self.updates = []
        self.reactions = {}
        self.blocks = {}
        self.users = {}
        self.fail_post = False
        self._counter = 0

    async def post_message(self, text, blocks=None, channel=None):
        if self.fail_post:
            return {"ok": False, "error": "channel_not_found"}
        self._counter += 1
        ts = f"1700000000.{self._counter:06d}"
        self.posts.append({"ts": ts, "text": text, "blocks": blocks})
        self.blocks[ts] = blocks or []
        return {"ok": True, "ts": ts, "channel": "C123"}

    async def update_message(self, ts, text, blocks=None, channel=None):
        self.updates.append({"ts": ts, "text": text, "blocks": blocks})
        return {"ok": True, "ts": ts}

    async def get_reactions(self, ts, channel=None):
        return {
            "ok": True,
            "type": "message",
            "message": {"ts": ts, "reactions": self.reactions.get(ts, []), "blocks": self.blocks.get(ts, [])},
        }

    async def get_user_name(self, user_id):
        return self.users.get(user_id, "Team Member")


class FakeZendesk:
    def __init__(self):
        self.tickets = {}
        self.comments = []
        self.status_updates = []
        self.search_queries = []
        self.categories = [{"id": 11, "name": "Getting Started"}, {"id": 12, "name": "Troubleshooting"}]
        self.articles = {11: [{"title": "Welcome", "html_url": "https://help.example.com/a/1"}]}
        self.article_results = []
        self.fail_create = False
        self._next_id = 1000

    def agent_ticket_url(self, ticket_id):
        return f"https://acme.zendesk.com/agent/tickets/{ticket_id}"

    async def create_ticket(self, subject, body, requester_name, requester_email, priority, tags):
        from teledesk.services.zendesk_service import TicketBackendError

        if self.fail_create:
            raise TicketBackendError("Zendesk POST tickets.json failed", 503)
        self._next_id += 1
        ticket = {
            "id": self._next_id,
            "subject": subject,
            "description": body,
            "status": "new",
            "priority": priority,
            "tags": tags,
            "requester": {"name": requester_name, "email": requester_email},
        }
        self.tickets[self._next_id] = ticket
        return ticket

    async def add_comment(self, ticket_id, body, public=True):
        self.comments.append({"ticket_id": ticket_id, "body": body, "public": public})
        return self.tickets.get(ticket_id, {"id": ticket_id})

    async def get_ticket(self, ticket_id):
        from teledesk.services.zendesk_service import TicketBackendError

        if ticket_id not in self.tickets:
            raise TicketBackendError(f"Zendesk GET tickets/{ticket_id}.json failed", 404)
        return self.tickets[ticket_id]

    async def search_tickets(self, query):
        self.search_queries.append(query)
        email = query.split("requester:", 1)[1].split(" ", 1)[0]
        wants_solved = "status:solved" in query
        matches = []
        for ticket in sorted(self.tickets.values(), key=lambda t: t["id"], reverse=True):
            if ticket["requester"]["email"] != email:
                continue
            solved = ticket["status"] in ("solved", "closed")
            if solved == wants_solved:
                matches.append(ticket)
        return matches

    async def update_status(self, ticket_id, status, comment=None):
        self.status_updates.append((ticket_id, status, comment))
        self.tickets[ticket_id]["status"] = status
        return self.tickets[ticket_id]

    async def list_categories(self):
        return self.categories

    async def list_category_articles(self, category_id):
        return self.articles.get(category_id, [])

    async def search_articles(self, query):
        return self.article_results


@pytest.fixture(autouse=True)
def no_alerts(monkeypatch):
    """Keep operator alerts offline in tests."""
    monkeypatch.setattr("teledesk.services.alert_service.ALERT_BOT_TOKEN", None)
    monkeypatch.setattr("teledesk.services.alert_service.ALERT_CHAT_ID", None)
    monkeypatch.setattr("teledesk.services.alert_service._last_sent", {})


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(tmp_path):
    return JsonDocumentStorage(tmp_path / "state")


@pytest.fixture
def store(storage, clock):
    return SessionStore(storage, clock=clock)


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def slack():
    return FakeSlack()


@pytest.fixture
def zendesk():
    return FakeZendesk()


@pytest.fixture
def tickets(store, zendesk, slack):
    return TicketService(TicketSessionCache(store, zendesk), zendesk, slack)


@pytest.fixture
def relay(store, slack, telegram, clock):
    return RelayService(store, slack, telegram, clock=clock)


@pytest.fixture
def poller(store, slack, relay):
    return ReactionPoller(store, slack, relay, ACK_REACTIONS)


@pytest.fixture
def machine(tickets, relay, zendesk, clock):
    return ConversationMachine(tickets, relay, zendesk, {TEAM_MEMBER_ID}, clock=clock)


@pytest.fixture
def bot(store, machine, telegram):
    return BotService(store, machine, ChatOutbox(telegram, store))


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        state_dir=str(tmp_path / "state"),
        team_members=str(TEAM_MEMBER_ID),
        slack_signing_secret="test-signing-secret",
        admin_token="admin-secret",
        deploy_env="development",
        telegram_webhook_secret=None,
    )


@pytest.fixture
def runtime(test_settings, store, telegram, slack, zendesk, tickets, relay, poller, machine, bot):
    return Runtime(
        settings=test_settings,
        store=store,
        telegram=telegram,
        slack=slack,
        zendesk=zendesk,
        tickets=tickets,
        relay=relay,
        poller=poller,
        machine=machine,
        bot=bot,
    )


@pytest.fixture
def client(runtime):
    from fastapi.testclient import TestClient

    from teledesk.main import app
    from teledesk.runtime import get_runtime

    app.dependency_overrides[get_runtime] = lambda: runtime
    yield TestClient(app)
    app.dependency_overrides.clear()
