import hashlib
import hmac
import json
import time
from datetime import timedelta
from urllib.parse import urlencode

from teledesk.models.session import PendingAcknowledgment, Session, SupportState
from tests.conftest import REQUESTER_ID

SIGNING_SECRET = "test-signing-secret"


def slack_headers(body: bytes, secret: str = SIGNING_SECRET, timestamp=None):
    timestamp = str(int(time.time()) if timestamp is None else timestamp)
    base = f"v0:{timestamp}:".encode() + body
    signature = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": signature,
        "Content-Type": "application/x-www-form-urlencoded",
    }


def interaction_body(message_ts: str, action_id: str = "acknowledge_forward") -> bytes:
    payload = {
        "type": "block_actions",
        "user": {"id": "U42", "username": "dana", "name": "dana"},
        "actions": [{"action_id": action_id, "block_id": "ack_actions"}],
        "container": {"type": "message", "message_ts": message_ts, "channel_id": "C123"},
        "message": {"ts": message_ts, "blocks": [{"type": "section", "block_id": "forward_header"}]},
    }
    return urlencode({"payload": json.dumps(payload)}).encode()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestTelegramWebhook:
    def test_start_command_sends_menu(self, client, telegram):
        update = {
            "update_id": 1,
            "message": {
                "message_id": 1,
                "date": 1709294400,
                "chat": {"id": REQUESTER_ID, "type": "private"},
                "from": {"id": REQUESTER_ID, "first_name": "Alice"},
                "text": "/start",
            },
        }

        response = client.post("/telegram-webhook", json=update)

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert "Support Main Menu" in telegram.sent[0]["text"]

    def test_non_actionable_update(self, client):
        response = client.post("/telegram-webhook", json={"update_id": 2})
        assert response.json() == {"success": True, "message": "No actionable content"}

    def test_invalid_payload(self, client):
        response = client.post("/telegram-webhook", content=b"\xff\xfe not json")
        assert response.json()["success"] is False

    def test_secret_token_is_enforced(self, client, runtime):
        runtime.settings.telegram_webhook_secret = "hook-secret"

        denied = client.post("/telegram-webhook", json={"update_id": 3})
        allowed = client.post(
            "/telegram-webhook", json={"update_id": 3}, headers={"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200


class TestSlackInteractions:
    def test_button_acknowledges_pending_forward(self, client, store, telegram, slack, clock):
        dest_id = "1700000000.000001"
        store.add_pending_ack(
            PendingAcknowledgment(
                destination_message_id=dest_id,
                origin_chat_id=2002,
                origin_message_id=55,
                sender_name="bob",
                created_at=clock.now,
                status_message_id=77,
            )
        )
        body = interaction_body(dest_id)

        response = client.post("/slack/interactions", content=body, headers=slack_headers(body))

        assert response.status_code == 200
        assert store.get_pending_ack(dest_id) is None
        assert "acknowledged by dana" in telegram.edited[0]["text"]
        assert slack.updates[0]["blocks"][-1]["elements"][0]["text"].startswith("🟢 Acknowledged by <@U42>")

    def test_bad_signature_rejected(self, client):
        body = interaction_body("1700000000.000001")
        headers = slack_headers(body, secret="wrong")

        assert client.post("/slack/interactions", content=body, headers=headers).status_code == 401

    def test_stale_timestamp_rejected(self, client):
        body = interaction_body("1700000000.000001")
        headers = slack_headers(body, timestamp=int(time.time()) - 301)

        assert client.post("/slack/interactions", content=body, headers=headers).status_code == 401

    def test_unknown_message_takes_fallback(self, client, slack, telegram):
        body = interaction_body("1700000000.999999")

        response = client.post("/slack/interactions", content=body, headers=slack_headers(body))

        assert response.status_code == 200
        assert telegram.sent == []
        assert slack.updates[0]["blocks"][-1]["elements"][0]["text"].endswith("(no Telegram notification sent)")

    def test_other_actions_are_ignored(self, client, slack):
        body = interaction_body("1700000000.000001", action_id="something_else")

        assert client.post("/slack/interactions", content=body, headers=slack_headers(body)).status_code == 200
        assert slack.updates == []

    def test_missing_secret_skips_check_outside_production(self, client, runtime, slack):
        runtime.settings.slack_signing_secret = None
        body = interaction_body("1700000000.000001")

        response = client.post("/slack/interactions", content=body)

        assert response.status_code == 200
        assert len(slack.updates) == 1

    def test_missing_secret_in_production_fails(self, client, runtime):
        runtime.settings.slack_signing_secret = None
        runtime.settings.deploy_env = "production"
        body = interaction_body("1700000000.000001")

        assert client.post("/slack/interactions", content=body).status_code == 500


class TestAdmin:
    def test_requires_token(self, client):
        assert client.get("/admin/acks").status_code == 401
        assert client.get("/admin/acks", headers={"X-Admin-Token": "nope"}).status_code == 401

    def test_lists_pending_acks(self, client, store, clock):
        store.add_pending_ack(
            PendingAcknowledgment(
                destination_message_id="1700.1",
                origin_chat_id=2002,
                origin_message_id=5,
                sender_name="bob",
                created_at=clock.now,
                status_message_id=9,
            )
        )

        response = client.get("/admin/acks", headers={"X-Admin-Token": "admin-secret"})

        assert response.status_code == 200
        assert response.json()[0]["destination_message_id"] == "1700.1"
        assert response.json()[0]["has_status_message"] is True

    def test_acks_hidden_in_production(self, client, runtime):
        runtime.settings.deploy_env = "production"
        response = client.get("/admin/acks", headers={"X-Admin-Token": "admin-secret"})
        assert response.status_code == 403

    def test_manual_ack(self, client):
        response = client.post(
            "/admin/acks/1700.1/ack", json={"acknowledged_by": "Ops"}, headers={"X-Admin-Token": "admin-secret"}
        )
        assert response.json() == {"destination_message_id": "1700.1", "resolved": False}

    def test_sweep(self, client, store, clock):
        store.put(1, Session.start(1, 1, SupportState(), clock.now - timedelta(hours=49)))

        response = client.post("/admin/sweep", headers={"X-Admin-Token": "admin-secret"})

        assert response.json()["removed"] == 1
