"""Open-ticket cache and the ticket operations built on it."""

from typing import Optional

from teledesk.logging_config import get_logger
from teledesk.models.session import Severity, TicketRef
from teledesk.services.alert_service import alert_error
from teledesk.services.result import ErrorCode, Result
from teledesk.services.session_store import SessionStore
from teledesk.services.slack_service import SlackService
from teledesk.services.zendesk_service import TicketBackendError, ZendeskService

logger = get_logger("ticket_service")

CLOSED_STATUSES = {"solved", "closed"}
NOTICE_DESCRIPTION_LIMIT = 500
PRIORITY_EMOJI = {
    Severity.URGENT: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "🟢",
    Severity.NORMAL: "🔵",
}


class TicketSessionCache:
    """Remembers each user's open ticket. Zendesk stays authoritative: hits are re-checked, misses searched."""

    def __init__(self, store: SessionStore, zendesk: ZendeskService, email_domain: str = "example.com"):
        self.store = store
        self.zendesk = zendesk
        self.email_domain = email_domain

    def contact_email(self, user_id: int) -> str:
        return f"telegram.{user_id}@{self.email_domain}"

    async def get_open(self, user_id: int) -> Optional[TicketRef]:
        cached = self.store.get_ticket_ref(user_id)
        if cached is not None:
            ticket = await self._fetch(cached.ticket_id)
            if ticket is not None and ticket.get("status") not in CLOSED_STATUSES:
                ref = TicketRef(
                    ticket_id=cached.ticket_id,
                    subject=ticket.get("subject") or cached.subject,
                    status=ticket.get("status") or cached.status,
                )
                self.store.put_ticket_ref(user_id, ref)
                return ref
            logger.info(
                "Cached ticket no longer open",
                extra={"context": {"user_id": user_id, "ticket_id": cached.ticket_id}},
            )
            self.store.clear_ticket_ref(user_id)

        query = f"requester:{self.contact_email(user_id)} type:ticket status<solved"
        results = await self.zendesk.search_tickets(query)
        if not results:
            return None

        ticket = results[0]
        ref = TicketRef(ticket_id=ticket["id"], subject=ticket.get("subject"), status=ticket.get("status") or "open")
        self.store.put_ticket_ref(user_id, ref)
        logger.debug("Ticket cache backfilled", extra={"context": {"user_id": user_id, "ticket_id": ref.ticket_id}})
        return ref

    async def _fetch(self, ticket_id: int) -> Optional[dict]:
        try:
            return await self.zendesk.get_ticket(ticket_id)
        except TicketBackendError as e:
            if e.status_code == 404:
                return None
            raise

    def put(self, user_id: int, ticket_id: int, subject: Optional[str] = None) -> TicketRef:
        ref = TicketRef(ticket_id=ticket_id, subject=subject)
        self.store.put_ticket_ref(user_id, ref)
        return ref

    def clear(self, user_id: int) -> None:
        self.store.clear_ticket_ref(user_id)


class TicketService:
    def __init__(self, cache: TicketSessionCache, zendesk: ZendeskService, slack: Optional[SlackService] = None):
        self.cache = cache
        self.zendesk = zendesk
        self.slack = slack

    async def get_open(self, user_id: int) -> Optional[TicketRef]:
        return await self.cache.get_open(user_id)

    async def create_ticket(self, user_id: int, sender_name: str, description: str, severity: Severity) -> TicketRef:
        subject = f"[{severity.value}] Support Request from {sender_name}"
        try:
            ticket = await self.zendesk.create_ticket(
                subject=subject,
                body=description,
                requester_name=sender_name,
                requester_email=self.cache.contact_email(user_id),
                priority=severity.ticket_priority,
                tags=["telegram", severity.tag],
            )
        except TicketBackendError as e:
            await alert_error("Ticket creation failed", {"user_id": user_id, "error": str(e)})
            raise

        ref = self.cache.put(user_id, ticket["id"], ticket.get("subject") or subject)
        logger.info(
            "Ticket created",
            extra={"context": {"user_id": user_id, "ticket_id": ref.ticket_id, "severity": severity.value}},
        )
        await self._notify_team(ref.ticket_id, sender_name, description, severity)
        return ref

    async def add_comment(self, ticket_id: int, sender_name: str, text: str) -> None:
        await self.zendesk.add_comment(ticket_id, f"{sender_name}: {text}", public=True)
        logger.info("Comment added to ticket", extra={"context": {"ticket_id": ticket_id}})

    async def get_ticket(self, ticket_id: int) -> dict:
        return await self.zendesk.get_ticket(ticket_id)

    async def close_ticket(self, user_id: int) -> Result[int]:
        ref = await self.cache.get_open(user_id)
        if ref is None:
            return Result.failure(ErrorCode.NO_OPEN_TICKET, "No open ticket")

        await self.zendesk.update_status(ref.ticket_id, "solved", "Ticket closed by user via Telegram bot.")
        self.cache.clear(user_id)
        logger.info("Ticket closed by user", extra={"context": {"user_id": user_id, "ticket_id": ref.ticket_id}})
        return Result.success(ref.ticket_id)

    async def reopen_ticket(self, user_id: int) -> Result[int]:
        query = f"requester:{self.cache.contact_email(user_id)} type:ticket status:solved"
        results = await self.zendesk.search_tickets(query)
        if not results:
            return Result.failure(ErrorCode.NO_SOLVED_TICKET, "No recently solved ticket")

        ticket = results[0]
        await self.zendesk.update_status(ticket["id"], "open", "Ticket reopened by user via Telegram bot.")
        self.cache.put(user_id, ticket["id"], ticket.get("subject"))
        logger.info("Ticket reopened by user", extra={"context": {"user_id": user_id, "ticket_id": ticket["id"]}})
        return Result.success(ticket["id"])

    async def _notify_team(self, ticket_id: int, sender_name: str, description: str, severity: Severity) -> None:
        if self.slack is None:
            return
        if len(description) > NOTICE_DESCRIPTION_LIMIT:
            description = description[:NOTICE_DESCRIPTION_LIMIT] + "..."
        emoji = PRIORITY_EMOJI.get(severity, "🔵")
        blocks = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"{emoji} *New {severity.value} Priority Ticket #{ticket_id}*\n"
                        f"*From:* {sender_name}\n*Description:*\n{description}"
                    ),
                },
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View in Zendesk"},
                        "url": self.zendesk.agent_ticket_url(ticket_id),
                    }
                ],
            },
        ]
        result = await self.slack.post_message(f"New ticket #{ticket_id} from {sender_name}", blocks)
        if not result.get("ok"):
            logger.warning(
                "Failed to post new-ticket notice", extra={"context": {"ticket_id": ticket_id, "error": result.get("error")}}
            )
