"""Forward relay to Slack and the acknowledgment handshake back to Telegram."""

from datetime import datetime
from typing import Any, Callable, Optional

from teledesk.logging_config import get_logger
from teledesk.models.session import PendingAcknowledgment, PendingForward
from teledesk.services.alert_service import alert_error
from teledesk.services.session_store import SessionStore, utcnow
from teledesk.services.slack_service import SlackService, build_acknowledged_blocks, build_forward_blocks
from teledesk.services.telegram_service import TelegramService, sent_message_id
from teledesk.storage import StorageError

logger = get_logger("relay_service")

STATUS_TEXT = (
    "Forwarded from {source}\n"
    "Message forwarded to Slack - status will update when a team member acknowledges it."
)
ACK_TEXT = "🟢 Your forwarded message has been acknowledged by {name} at {time}."


class RelayError(Exception):
    pass


def format_ack_time(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M UTC")


class RelayService:
    def __init__(
        self,
        store: SessionStore,
        slack: SlackService,
        telegram: TelegramService,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.slack = slack
        self.telegram = telegram
        self.clock = clock

    async def relay(
        self,
        content: str,
        sender_name: str,
        context_info: str,
        origin_chat_id: int,
        origin_message_id: int,
        source: str = "Unknown source",
        origin_url: Optional[str] = None,
    ) -> str:
        """Post to Slack, record the pending acknowledgment, then tell the origin chat.

        Returns the Slack message ts. Raises RelayError if the Slack post fails,
        in which case nothing is recorded.
        """
        blocks = build_forward_blocks(content, source, sender_name, context_info, origin_url)
        result = await self.slack.post_message(f"Forwarded message from {sender_name}", blocks)
        destination_id = result.get("ts") if result.get("ok") else None
        if not destination_id:
            error = result.get("error") or "no message ts returned"
            logger.error("Relay to Slack failed", extra={"context": {"origin_chat_id": origin_chat_id, "error": error}})
            await alert_error("Forward relay to Slack failed", {"origin_chat_id": origin_chat_id, "error": error})
            raise RelayError(error)

        self.store.add_pending_ack(
            PendingAcknowledgment(
                destination_message_id=destination_id,
                origin_chat_id=origin_chat_id,
                origin_message_id=origin_message_id,
                sender_name=sender_name,
                created_at=self.clock(),
            )
        )

        status = await self.telegram.send_message(origin_chat_id, STATUS_TEXT.format(source=source), parse_mode=None)
        status_id = sent_message_id(status)
        if status_id is not None:
            self.store.set_status_message(destination_id, status_id)
        else:
            logger.warning(
                "Status message not sent; acknowledgment will send a fresh message",
                extra={"context": {"destination_message_id": destination_id, "error": status.get("error")}},
            )

        self._persist()
        logger.info(
            "Message relayed",
            extra={"context": {"destination_message_id": destination_id, "origin_chat_id": origin_chat_id}},
        )
        return destination_id

    async def relay_forward(self, pending: PendingForward, context_info: str) -> str:
        return await self.relay(
            content=pending.text,
            sender_name=pending.sender_name,
            context_info=context_info,
            origin_chat_id=pending.source_chat_id,
            origin_message_id=pending.source_message_id,
            source=pending.source_label,
            origin_url=pending.origin_url,
        )

    async def acknowledge(
        self,
        destination_message_id: str,
        acknowledger_name: str,
        acknowledger_id: Optional[str] = None,
        original_blocks: Optional[list[dict[str, Any]]] = None,
    ) -> bool:
        """Resolve a pending acknowledgment. Returns False on the no-record fallback path."""
        # Removed before any await so concurrent signals notify at most once.
        ack = self.store.pop_pending_ack(destination_message_id)
        now = self.clock()
        who = f"<@{acknowledger_id}>" if acknowledger_id else acknowledger_name

        if original_blocks is None:
            original_blocks = await self._current_blocks(destination_message_id)

        blocks = build_acknowledged_blocks(original_blocks, who, format_ack_time(now), notified=ack is not None)
        update = await self.slack.update_message(destination_message_id, f"Acknowledged by {acknowledger_name}", blocks)
        if not update.get("ok"):
            logger.warning(
                "Failed to update acknowledged Slack message",
                extra={"context": {"destination_message_id": destination_message_id, "error": update.get("error")}},
            )

        if ack is None:
            logger.warning(
                "No pending acknowledgment for message; fallback acknowledgment",
                extra={"context": {"destination_message_id": destination_message_id}},
            )
            return False

        await self._notify_origin(ack, acknowledger_name, now)
        self._persist()
        logger.info(
            "Forward acknowledged",
            extra={"context": {"destination_message_id": destination_message_id, "by": acknowledger_name}},
        )
        return True

    async def _current_blocks(self, destination_message_id: str) -> Optional[list[dict[str, Any]]]:
        result = await self.slack.get_reactions(destination_message_id)
        message = result.get("message") or {}
        return message.get("blocks")

    async def _notify_origin(self, ack: PendingAcknowledgment, acknowledger_name: str, now: datetime) -> None:
        text = ACK_TEXT.format(name=acknowledger_name, time=format_ack_time(now))
        if ack.status_message_id is not None:
            edited = await self.telegram.edit_message(ack.origin_chat_id, ack.status_message_id, text)
            if edited.get("ok"):
                return
            logger.debug(
                "Status message edit failed, sending new message",
                extra={"context": {"chat_id": ack.origin_chat_id, "error": edited.get("error") or edited.get("description")}},
            )

        sent = await self.telegram.send_message(ack.origin_chat_id, text, parse_mode=None)
        if not sent.get("ok"):
            logger.warning(
                "Could not notify origin chat of acknowledgment",
                extra={"context": {"chat_id": ack.origin_chat_id, "error": sent.get("error") or sent.get("description")}},
            )

    def _persist(self) -> None:
        try:
            self.store.persist()
        except StorageError as e:
            logger.error("Failed to persist after relay update", extra={"context": {"error": str(e)}})
