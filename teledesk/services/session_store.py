"""In-memory session store with expiry and JSON snapshot persistence."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from teledesk.logging_config import get_logger
from teledesk.models.session import PendingAcknowledgment, Session, TicketRef
from teledesk.storage import CONVERSATION_STATES_DOCUMENT, PENDING_ACKS_DOCUMENT, JsonDocumentStorage

logger = get_logger("session_store")

DEFAULT_INACTIVITY = timedelta(hours=48)
DEFAULT_RETENTION = timedelta(days=14)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore:
    """Owns conversation sessions and pending acknowledgments.

    Sessions expire after ``inactivity`` without activity. Sessions and pending
    acknowledgments older than ``retention`` are removed regardless of
    activity. Menu message ids and ticket references are process-local caches
    and are not persisted.
    """

    def __init__(
        self,
        storage: Optional[JsonDocumentStorage] = None,
        inactivity: timedelta = DEFAULT_INACTIVITY,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.inactivity = inactivity
        self.retention = retention
        self.clock = clock
        self._sessions: dict[int, Session] = {}
        self._pending_acks: dict[str, PendingAcknowledgment] = {}
        self._menu_messages: dict[int, list[int]] = {}
        self._ticket_refs: dict[int, TicketRef] = {}
        # Last write per chat id / user id; sweep drops entries idle past the inactivity window.
        self._menus_touched: dict[int, datetime] = {}
        self._refs_touched: dict[int, datetime] = {}
        self.dirty = False

    # Sessions

    def is_expired(self, session: Session, now: datetime) -> bool:
        if now - session.last_activity > self.inactivity:
            return True
        return now - session.created_at > self.retention

    def get(self, user_id: int, now: Optional[datetime] = None) -> Optional[Session]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        now = now or self.clock()
        if self.is_expired(session, now):
            logger.info("Session expired on access", extra={"context": {"user_id": user_id}})
            self.delete(user_id)
            return None
        return session

    def put(self, user_id: int, session: Session) -> None:
        self._sessions[user_id] = session
        self.dirty = True

    def delete(self, user_id: int) -> None:
        if self._sessions.pop(user_id, None) is not None:
            self.dirty = True

    def session_count(self) -> int:
        return len(self._sessions)

    # Pending acknowledgments

    def add_pending_ack(self, ack: PendingAcknowledgment) -> None:
        self._pending_acks[ack.destination_message_id] = ack
        self.dirty = True

    def get_pending_ack(self, destination_message_id: str) -> Optional[PendingAcknowledgment]:
        return self._pending_acks.get(destination_message_id)

    def pop_pending_ack(self, destination_message_id: str) -> Optional[PendingAcknowledgment]:
        ack = self._pending_acks.pop(destination_message_id, None)
        if ack is not None:
            self.dirty = True
        return ack

    def set_status_message(self, destination_message_id: str, status_message_id: int) -> bool:
        ack = self._pending_acks.get(destination_message_id)
        if ack is None:
            return False
        self._pending_acks[destination_message_id] = ack.model_copy(
            update={"status_message_id": status_message_id}
        )
        self.dirty = True
        return True

    def pending_acks(self) -> list[PendingAcknowledgment]:
        return list(self._pending_acks.values())

    # Menu messages

    def track_menu(self, chat_id: int, message_id: int) -> None:
        self._menu_messages.setdefault(chat_id, []).append(message_id)
        self._menus_touched[chat_id] = self.clock()

    def take_menus(self, chat_id: int) -> list[int]:
        self._menus_touched.pop(chat_id, None)
        return self._menu_messages.pop(chat_id, [])

    # Ticket references

    def get_ticket_ref(self, user_id: int) -> Optional[TicketRef]:
        return self._ticket_refs.get(user_id)

    def put_ticket_ref(self, user_id: int, ref: TicketRef) -> None:
        self._ticket_refs[user_id] = ref
        self._refs_touched[user_id] = self.clock()

    def clear_ticket_ref(self, user_id: int) -> None:
        self._ticket_refs.pop(user_id, None)
        self._refs_touched.pop(user_id, None)

    # Expiry

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Remove expired sessions, aged-out pending acknowledgments and idle caches.

        Returns the number of persisted entries removed.
        """
        now = now or self.clock()
        expired_users = [uid for uid, session in self._sessions.items() if self.is_expired(session, now)]
        for user_id in expired_users:
            del self._sessions[user_id]

        aged_acks = [
            dest_id for dest_id, ack in self._pending_acks.items() if now - ack.created_at > self.retention
        ]
        for dest_id in aged_acks:
            del self._pending_acks[dest_id]

        idle_chats = [cid for cid, at in self._menus_touched.items() if now - at > self.inactivity]
        for chat_id in idle_chats:
            self.take_menus(chat_id)
        idle_refs = [uid for uid, at in self._refs_touched.items() if now - at > self.inactivity]
        for user_id in idle_refs:
            self.clear_ticket_ref(user_id)
        if idle_chats or idle_refs:
            logger.debug(
                "Idle caches pruned",
                extra={"context": {"menu_chats": len(idle_chats), "ticket_refs": len(idle_refs)}},
            )

        removed = len(expired_users) + len(aged_acks)
        if removed:
            self.dirty = True
            logger.info(
                "Expiry sweep removed entries",
                extra={"context": {"sessions": len(expired_users), "pending_acks": len(aged_acks)}},
            )
        return removed

    # Persistence

    def persist(self) -> None:
        if self.storage is None:
            return
        self.storage.write(
            PENDING_ACKS_DOCUMENT,
            {dest_id: ack.model_dump(mode="json") for dest_id, ack in self._pending_acks.items()},
        )
        self.storage.write(
            CONVERSATION_STATES_DOCUMENT,
            {str(uid): session.model_dump(mode="json") for uid, session in self._sessions.items()},
        )
        self.dirty = False

    def restore(self) -> tuple[int, int]:
        """Load both documents, dropping malformed records one by one.

        Returns (sessions_loaded, pending_acks_loaded).
        """
        if self.storage is None:
            return 0, 0

        for key, record in self.storage.read(PENDING_ACKS_DOCUMENT).items():
            try:
                ack = PendingAcknowledgment.model_validate(record)
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed pending acknowledgment",
                    extra={"context": {"key": key, "error": str(e)}},
                )
                continue
            self._pending_acks[ack.destination_message_id] = ack

        for key, record in self.storage.read(CONVERSATION_STATES_DOCUMENT).items():
            try:
                session = Session.model_validate(record)
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed session",
                    extra={"context": {"key": key, "error": str(e)}},
                )
                continue
            self._sessions[session.user_id] = session

        self.sweep()
        logger.info(
            "Session store restored",
            extra={"context": {"sessions": len(self._sessions), "pending_acks": len(self._pending_acks)}},
        )
        return len(self._sessions), len(self._pending_acks)
