import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from teledesk.logging_config import get_logger
from teledesk.runtime import Runtime, get_runtime
from teledesk.schemas.telegram import TelegramUpdate, TelegramWebhookResponse

logger = get_logger("telegram_webhook")

router = APIRouter()


async def parse_telegram_update(request: Request) -> Optional[dict]:
    """Decode the update body, replacing undecodable bytes rather than failing."""
    raw = await request.body()
    try:
        body = json.loads(raw.decode("utf-8", errors="replace"))
    except ValueError as e:
        logger.warning(
            "Telegram webhook body is not JSON",
            extra={"context": {"bytes": len(raw), "error": str(e)}},
        )
        return None
    if not isinstance(body, dict):
        logger.warning("Telegram webhook body is not an object")
        return None
    return body


def _check_secret(expected: Optional[str], provided: Optional[str]) -> None:
    if not expected:
        return
    if not provided or not hmac.compare_digest(expected, provided):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid webhook secret")


@router.post("/telegram-webhook", response_model=TelegramWebhookResponse)
async def handle_telegram_webhook(
    request: Request,
    runtime: Runtime = Depends(get_runtime),
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None),
):
    """
    Handle Telegram webhook updates:
    - Commands and free text -> conversation state machine
    - Forwarded messages from team members -> Slack relay
    - Callback queries (button clicks) -> menu actions
    """
    _check_secret(runtime.settings.telegram_webhook_secret, x_telegram_bot_api_secret_token)

    body = await parse_telegram_update(request)
    if body is None:
        return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

    try:
        update = TelegramUpdate.model_validate(body)
    except ValidationError as e:
        logger.warning("Unrecognized Telegram update", extra={"context": {"error": str(e)}})
        return TelegramWebhookResponse(success=False, message="Invalid telegram payload")

    try:
        handled = await runtime.bot.handle_update(update)
    except Exception as e:
        logger.error(
            "Telegram update processing failed",
            extra={"context": {"update_id": update.update_id, "error": str(e)}},
            exc_info=True,
        )
        return TelegramWebhookResponse(success=False, message="Processing error")

    if not handled:
        return TelegramWebhookResponse(success=True, message="No actionable content")
    return TelegramWebhookResponse(success=True)
