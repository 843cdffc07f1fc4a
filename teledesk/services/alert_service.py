"""Operator alerts delivered to a Telegram chat.

Alerts are best-effort: every failure is logged and reported through the
return value, never raised. Identical alerts inside the cooldown window are
suppressed so a flapping backend does not flood the operator chat.
"""

import time
from typing import Optional

import httpx

from teledesk.config import settings
from teledesk.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_BOT_TOKEN = settings.alert_bot_token
ALERT_CHAT_ID = settings.alert_chat_id
ALERT_COOLDOWN_SECONDS = settings.alert_cooldown_seconds

LEVEL_EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

_last_sent: dict[tuple[str, str], float] = {}


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{LEVEL_EMOJI.get(level, '📢')} *{level}* [teledesk/{settings.deploy_env}]\n\n{message}"
    if context:
        lines = "\n".join(f"  {key}: {value}" for key, value in context.items())
        text += f"\n\n```\n{lines}\n```"
    return text


def _in_cooldown(level: str, message: str, now: float) -> bool:
    last = _last_sent.get((level, message))
    return last is not None and now - last < ALERT_COOLDOWN_SECONDS


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Returns True only if the alert reached Telegram."""
    if not ALERT_BOT_TOKEN or not ALERT_CHAT_ID:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    now = time.monotonic()
    if _in_cooldown(level, message, now):
        logger.info("Alert suppressed by cooldown", extra={"context": {"level": level, "alert": message}})
        return False

    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{ALERT_BOT_TOKEN}/sendMessage",
                json={"chat_id": ALERT_CHAT_ID, "text": format_alert(level, message, context), "parse_mode": "Markdown"},
            )
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False

    if response.status_code != 200:
        logger.error("Alert rejected by Telegram", extra={"context": {"status": response.status_code}})
        return False
    _last_sent[(level, message)] = now
    return True


async def alert_error(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("ERROR", message, context)


async def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("WARNING", message, context)
