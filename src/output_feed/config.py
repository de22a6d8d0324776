"""Configuration management for the output feed.

All configuration comes from environment variables. Uses pydantic-settings
so a missing API URL or session credential fails at startup instead of
on the first fetch.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Session


class Config(BaseSettings):
    """Client configuration loaded from environment variables."""

    api_base_url: str = Field(alias="OUTPUT_API_BASE_URL")
    access_token: SecretStr = Field(alias="OUTPUT_FEED_ACCESS_TOKEN")
    user_id: str = Field(alias="OUTPUT_FEED_USER_ID")
    supabase_url: str = Field(alias="SUPABASE_URL")
    supabase_anon_key: SecretStr = Field(alias="SUPABASE_ANON_KEY")
    realtime_table: str = Field(default="ai_outputs", alias="OUTPUT_FEED_TABLE")
    realtime_schema: str = Field(default="public", alias="OUTPUT_FEED_SCHEMA")
    realtime_enabled: bool = Field(default=True, alias="OUTPUT_FEED_REALTIME")
    page_size: int | None = Field(default=None, alias="OUTPUT_FEED_PAGE_SIZE", ge=1)
    http_timeout: float = Field(default=30.0, alias="HTTP_TIMEOUT")
    heartbeat_interval: float = Field(default=30.0, alias="REALTIME_HEARTBEAT_INTERVAL")
    reconnect_delay: float = Field(default=5.0, alias="REALTIME_RECONNECT_DELAY")
    server_host: str = Field(default="127.0.0.1", alias="MCP_SERVER_HOST")
    server_port: int = Field(default=8000, alias="MCP_SERVER_PORT")

    model_config = SettingsConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def realtime_url(self) -> str:
        """Websocket endpoint of the Supabase Realtime service."""
        base = self.supabase_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/realtime/v1/websocket"

    def session(self) -> Session:
        return Session(
            access_token=self.access_token.get_secret_value(),
            user_id=self.user_id,
        )


def load_config() -> Config:
    """Load and validate config from environment. Raises on missing required vars."""
    return Config()
