"""Admin endpoints for inspecting and nudging bot state."""

import hmac
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from teledesk.logging_config import get_logger
from teledesk.runtime import Runtime, get_runtime

logger = get_logger("admin")

router = APIRouter(prefix="/admin", tags=["admin"])


class PendingAckResponse(BaseModel):
    destination_message_id: str
    origin_chat_id: int
    sender_name: str
    created_at: datetime
    has_status_message: bool


class AcknowledgeRequest(BaseModel):
    acknowledged_by: str = "Admin"


class AcknowledgeResponse(BaseModel):
    destination_message_id: str
    resolved: bool


class SweepResponse(BaseModel):
    removed: int
    sessions: int
    pending_acks: int


def _require_admin_token(runtime: Runtime, provided: Optional[str]) -> None:
    expected = runtime.settings.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_TOKEN not configured",
        )
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.get("/acks", response_model=list[PendingAckResponse])
def list_pending_acks(
    runtime: Runtime = Depends(get_runtime),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(runtime, x_admin_token)
    if runtime.settings.is_production:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not available in production")

    return [
        PendingAckResponse(
            destination_message_id=ack.destination_message_id,
            origin_chat_id=ack.origin_chat_id,
            sender_name=ack.sender_name,
            created_at=ack.created_at,
            has_status_message=ack.status_message_id is not None,
        )
        for ack in runtime.store.pending_acks()
    ]


@router.post("/acks/{destination_message_id}/ack", response_model=AcknowledgeResponse)
async def acknowledge_pending(
    destination_message_id: str,
    body: Optional[AcknowledgeRequest] = None,
    runtime: Runtime = Depends(get_runtime),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(runtime, x_admin_token)
    name = body.acknowledged_by if body else "Admin"
    resolved = await runtime.relay.acknowledge(destination_message_id, name)
    logger.info(
        "Manual acknowledgment",
        extra={"context": {"destination_message_id": destination_message_id, "resolved": resolved}},
    )
    return AcknowledgeResponse(destination_message_id=destination_message_id, resolved=resolved)


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(
    runtime: Runtime = Depends(get_runtime),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(runtime, x_admin_token)
    removed = runtime.store.sweep()
    if removed:
        runtime.store.persist()
    return SweepResponse(
        removed=removed,
        sessions=runtime.store.session_count(),
        pending_acks=len(runtime.store.pending_acks()),
    )
