from typing import Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError

from teledesk.config import Settings
from teledesk.logging_config import get_logger
from teledesk.runtime import Runtime, get_runtime
from teledesk.schemas.slack import SlackInteractionPayload
from teledesk.services.slack_service import ACK_ACTION_ID, verify_slack_signature

logger = get_logger("slack_interactions")

router = APIRouter(prefix="/slack", tags=["slack"])


def _require_valid_signature(
    settings: Settings, timestamp: Optional[str], body: bytes, signature: Optional[str]
) -> None:
    if not settings.slack_signing_secret:
        if settings.is_production:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="SLACK_SIGNING_SECRET not configured",
            )
        logger.warning("Slack signing secret not set, skipping signature check")
        return

    if not verify_slack_signature(
        settings.slack_signing_secret,
        timestamp,
        body,
        signature,
        max_age_seconds=settings.slack_signature_max_age_seconds,
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Slack signature")


async def acknowledge_from_button(runtime: Runtime, payload: SlackInteractionPayload) -> None:
    message_ts = payload.message_ts
    try:
        await runtime.relay.acknowledge(
            message_ts,
            payload.user.display_name,
            acknowledger_id=payload.user.id,
            original_blocks=payload.message.blocks if payload.message else None,
        )
    except Exception as e:
        logger.error(
            "Button acknowledgment failed",
            extra={"context": {"message_ts": message_ts, "error": str(e)}},
            exc_info=True,
        )


@router.post("/interactions")
async def handle_slack_interaction(
    request: Request,
    background_tasks: BackgroundTasks,
    runtime: Runtime = Depends(get_runtime),
):
    """Slack interactive components. Replies 200 at once and works in the background."""
    body = await request.body()
    _require_valid_signature(
        runtime.settings,
        request.headers.get("X-Slack-Request-Timestamp"),
        body,
        request.headers.get("X-Slack-Signature"),
    )

    raw_payload = parse_qs(body.decode("utf-8", errors="replace")).get("payload", [None])[0]
    if not raw_payload:
        logger.warning("Slack interaction without payload")
        return Response(status_code=status.HTTP_200_OK)

    try:
        payload = SlackInteractionPayload.model_validate_json(raw_payload)
    except ValidationError as e:
        logger.warning("Malformed Slack interaction payload", extra={"context": {"error": str(e)}})
        return Response(status_code=status.HTTP_200_OK)

    for action in payload.actions:
        if action.action_id == ACK_ACTION_ID and payload.message_ts:
            background_tasks.add_task(acknowledge_from_button, runtime, payload)
            break
    else:
        logger.debug("Ignoring Slack interaction", extra={"context": {"type": payload.type}})

    return Response(status_code=status.HTTP_200_OK)
