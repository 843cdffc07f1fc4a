import pytest

from teledesk.services.reaction_poller import find_ack_reaction
from tests.conftest import ACK_REACTIONS


async def relay_one(relay):
    return await relay.relay("msg", "bob", "ctx", 2002, 55, source="Group: Partners")


class TestFindAckReaction:
    def test_first_qualifying_reaction_wins(self):
        reactions = [
            {"name": "tada", "users": ["U1"]},
            {"name": "eyes", "users": ["U2"]},
            {"name": "white_check_mark", "users": ["U3"]},
        ]
        assert find_ack_reaction(reactions, ACK_REACTIONS)["name"] == "eyes"

    def test_skin_tone_variants_count(self):
        reactions = [{"name": "+1::skin-tone-4", "users": ["U1"]}]
        assert find_ack_reaction(reactions, ACK_REACTIONS) is not None

    def test_no_qualifying_reaction(self):
        assert find_ack_reaction([{"name": "tada"}], ACK_REACTIONS) is None
        assert find_ack_reaction([], ACK_REACTIONS) is None


class TestReactionPoller:
    @pytest.mark.asyncio
    async def test_reaction_acknowledges_pending_message(self, poller, relay, slack, telegram, store):
        dest_id = await relay_one(relay)
        slack.reactions[dest_id] = [{"name": "white_check_mark", "count": 1, "users": ["U42"]}]
        slack.users["U42"] = "Dana Scully"

        resolved = await poller.poll_once()

        assert resolved == 1
        assert store.get_pending_ack(dest_id) is None
        assert "acknowledged by Dana Scully" in telegram.edited[0]["text"]

    @pytest.mark.asyncio
    async def test_non_ack_reactions_are_ignored(self, poller, relay, slack, store):
        dest_id = await relay_one(relay)
        slack.reactions[dest_id] = [{"name": "tada", "count": 1, "users": ["U42"]}]

        assert await poller.poll_once() == 0
        assert store.get_pending_ack(dest_id) is not None

    @pytest.mark.asyncio
    async def test_poll_after_button_ack_is_noop(self, poller, relay, slack, telegram):
        dest_id = await relay_one(relay)
        await relay.acknowledge(dest_id, "Carol", "U1")
        slack.reactions[dest_id] = [{"name": "+1", "count": 1, "users": ["U42"]}]

        assert await poller.poll_once() == 0
        assert len(telegram.edited) == 1

    @pytest.mark.asyncio
    async def test_reaction_without_users_uses_default_name(self, poller, relay, slack, telegram):
        dest_id = await relay_one(relay)
        slack.reactions[dest_id] = [{"name": "eyes", "count": 1}]

        await poller.poll_once()

        assert "acknowledged by Team Member" in telegram.edited[0]["text"]

    @pytest.mark.asyncio
    async def test_failed_reaction_lookup_is_skipped(self, poller, relay, slack, store):
        dest_id = await relay_one(relay)

        async def failing(ts, channel=None):
            return {"ok": False, "error": "ratelimited"}

        slack.get_reactions = failing

        assert await poller.poll_once() == 0
        assert store.get_pending_ack(dest_id) is not None
