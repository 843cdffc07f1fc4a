from typing import Iterable, Optional

from teledesk.logging_config import get_logger
from teledesk.services.relay_service import RelayService
from teledesk.services.session_store import SessionStore
from teledesk.services.slack_service import SlackService

logger = get_logger("reaction_poller")


def _base_reaction(name: str) -> str:
    # "+1::skin-tone-3" -> "+1"
    return name.split("::", 1)[0]


def find_ack_reaction(reactions: Iterable[dict], ack_names: frozenset[str]) -> Optional[dict]:
    """Return the first reaction whose name counts as an acknowledgment."""
    for reaction in reactions:
        if _base_reaction(reaction.get("name", "")) in ack_names:
            return reaction
    return None


class ReactionPoller:
    """Checks tracked Slack messages for acknowledgment reactions."""

    def __init__(self, store: SessionStore, slack: SlackService, relay: RelayService, ack_names: frozenset[str]):
        self.store = store
        self.slack = slack
        self.relay = relay
        self.ack_names = ack_names

    async def poll_once(self) -> int:
        """Run one sweep over pending acknowledgments. Returns how many were resolved."""
        resolved = 0
        for ack in self.store.pending_acks():
            destination_id = ack.destination_message_id
            result = await self.slack.get_reactions(destination_id)
            if not result.get("ok"):
                continue

            message = result.get("message") or {}
            reaction = find_ack_reaction(message.get("reactions") or [], self.ack_names)
            if reaction is None:
                continue

            users = reaction.get("users") or []
            user_id = users[0] if users else None
            name = await self.slack.get_user_name(user_id) if user_id else "Team Member"
            logger.info(
                "Acknowledgment reaction found",
                extra={"context": {"destination_message_id": destination_id, "reaction": reaction.get("name")}},
            )
            if await self.relay.acknowledge(destination_id, name, user_id, message.get("blocks")):
                resolved += 1
        return resolved
