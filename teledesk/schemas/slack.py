from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class SlackUserRef(BaseModel):
    id: str
    username: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username or "Team Member"


class SlackAction(BaseModel):
    action_id: str
    value: Optional[str] = None
    block_id: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class SlackContainer(BaseModel):
    type: Optional[str] = None
    message_ts: Optional[str] = None
    channel_id: Optional[str] = None


class SlackChannelRef(BaseModel):
    id: str
    name: Optional[str] = None


class SlackMessageRef(BaseModel):
    ts: str
    text: Optional[str] = None
    blocks: list[dict[str, Any]] = []

    model_config = ConfigDict(extra="allow")


class SlackInteractionPayload(BaseModel):
    """Interactive component payload posted as form field ``payload``."""

    type: str
    user: SlackUserRef
    actions: list[SlackAction] = []
    container: Optional[SlackContainer] = None
    channel: Optional[SlackChannelRef] = None
    message: Optional[SlackMessageRef] = None

    model_config = ConfigDict(extra="allow")

    @property
    def message_ts(self) -> Optional[str]:
        if self.message:
            return self.message.ts
        if self.container:
            return self.container.message_ts
        return None


class SlackReaction(BaseModel):
    name: str
    count: int = 0
    users: list[str] = []
