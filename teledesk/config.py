from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    telegram_bot_token: str = ""
    telegram_webhook_secret: Optional[str] = None

    slack_api_token: str = ""
    slack_channel_id: str = ""
    slack_signing_secret: Optional[str] = None
    slack_signature_max_age_seconds: int = 300

    zendesk_api_url: str = ""
    zendesk_email: str = ""
    zendesk_api_token: str = ""
    requester_email_domain: str = "example.com"

    team_members: str = ""
    ack_reactions: str = "white_check_mark,heavy_check_mark,check,white_tick,+1,thumbsup,eyes,eye"

    deploy_env: str = "development"
    state_dir: str = "./state"
    persist_interval_seconds: float = 10.0
    reaction_poll_interval_seconds: float = 5.0
    sweep_interval_seconds: float = 3600.0
    session_inactivity_hours: int = 48
    retention_days: int = 14
    request_timeout_seconds: float = 10.0
    background_tasks_enabled: bool = True

    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None
    alert_cooldown_seconds: float = 300.0
    admin_token: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def team_member_ids(self) -> set[int]:
        ids = set()
        for raw in self.team_members.split(","):
            raw = raw.strip()
            if raw.lstrip("-").isdigit():
                ids.add(int(raw))
        return ids

    @property
    def ack_reaction_names(self) -> frozenset[str]:
        return frozenset(name.strip() for name in self.ack_reactions.split(",") if name.strip())

    @property
    def is_production(self) -> bool:
        return self.deploy_env.strip().lower() == "production"


settings = Settings()
