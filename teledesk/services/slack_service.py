import hashlib
import hmac
import time
from typing import Any, Optional

import httpx

from teledesk.logging_config import get_logger

logger = get_logger("slack_service")

ACK_ACTION_ID = "acknowledge_forward"
ACK_HINT_BLOCK_ID = "ack_hint"
ACK_STATUS_BLOCK_ID = "ack_status"


class SlackService:
    """Service for the Slack Web API."""

    BASE_URL = "https://slack.com/api"

    def __init__(self, api_token: str, channel_id: str, timeout: float = 10.0):
        self.api_token = api_token
        self.channel_id = channel_id
        self.timeout = timeout

    async def _make_request(self, method: str, data: Optional[dict] = None, params: Optional[dict] = None) -> dict:
        """Make request to Slack API. Read methods pass ``params`` and use GET."""
        url = f"{self.BASE_URL}/{method}"
        headers = {"Authorization": f"Bearer {self.api_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if params is not None:
                    response = await client.get(url, params=params, headers=headers)
                else:
                    response = await client.post(url, json=data or {}, headers=headers)
                result = response.json()
        except Exception as e:
            logger.error(f"Slack API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "error": str(e)}

        if not result.get("ok"):
            logger.warning(
                "Slack API call rejected",
                extra={"context": {"method": method, "error": result.get("error")}},
            )
        return result

    async def post_message(self, text: str, blocks: Optional[list] = None, channel: Optional[str] = None) -> dict:
        data = {"channel": channel or self.channel_id, "text": text}
        if blocks:
            data["blocks"] = blocks
        return await self._make_request("chat.postMessage", data)

    async def update_message(
        self, ts: str, text: str, blocks: Optional[list] = None, channel: Optional[str] = None
    ) -> dict:
        data = {"channel": channel or self.channel_id, "ts": ts, "text": text}
        if blocks is not None:
            data["blocks"] = blocks
        return await self._make_request("chat.update", data)

    async def get_reactions(self, ts: str, channel: Optional[str] = None) -> dict:
        """Return the reactions.get response; reactions and blocks live under ``message``."""
        params = {"channel": channel or self.channel_id, "timestamp": ts, "full": "true"}
        return await self._make_request("reactions.get", params=params)

    async def get_user_name(self, user_id: str) -> str:
        result = await self._make_request("users.info", params={"user": user_id})
        user = result.get("user") or {}
        return user.get("real_name") or user.get("name") or "Team Member"


def verify_slack_signature(
    signing_secret: str,
    timestamp: Optional[str],
    body: bytes,
    signature: Optional[str],
    max_age_seconds: int = 300,
    now: Optional[float] = None,
) -> bool:
    """Check X-Slack-Signature for a request body (v0 scheme)."""
    if not timestamp or not signature:
        return False
    try:
        request_time = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - request_time) > max_age_seconds:
        return False

    base = f"v0:{timestamp}:".encode() + body
    expected = "v0=" + hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def build_forward_blocks(
    text: str,
    source: str,
    forwarded_by: str,
    context: str,
    origin_url: Optional[str] = None,
) -> list[dict[str, Any]]:
    header = f"📢 *Forwarded Message*\n*Source:* {source}\n*Forwarded by:* {forwarded_by}\n*Context:* {context}"
    if origin_url:
        header += f"\n<{origin_url}|Open original>"
    return [
        {"type": "section", "block_id": "forward_header", "text": {"type": "mrkdwn", "text": header}},
        {"type": "section", "block_id": "forward_body", "text": {"type": "mrkdwn", "text": f"*Message:*\n{text}"}},
        {
            "type": "context",
            "block_id": ACK_HINT_BLOCK_ID,
            "elements": [
                {"type": "mrkdwn", "text": "React with :white_check_mark: or :thumbsup: to acknowledge"}
            ],
        },
        {
            "type": "actions",
            "block_id": "ack_actions",
            "elements": [
                {
                    "type": "button",
                    "action_id": ACK_ACTION_ID,
                    "text": {"type": "plain_text", "text": "Acknowledge"},
                    "style": "primary",
                }
            ],
        },
    ]


def build_acknowledged_blocks(
    original_blocks: Optional[list[dict[str, Any]]],
    acknowledged_by: str,
    acknowledged_at: str,
    notified: bool = True,
) -> list[dict[str, Any]]:
    """Drop the acknowledge affordances and append who acknowledged and when."""
    blocks = [
        block
        for block in (original_blocks or [])
        if block.get("type") != "actions" and block.get("block_id") not in (ACK_HINT_BLOCK_ID, ACK_STATUS_BLOCK_ID)
    ]
    status = f"🟢 Acknowledged by {acknowledged_by} at {acknowledged_at}"
    if not notified:
        status += " (no Telegram notification sent)"
    blocks.append(
        {"type": "context", "block_id": ACK_STATUS_BLOCK_ID, "elements": [{"type": "mrkdwn", "text": status}]}
    )
    return blocks
