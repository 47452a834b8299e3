"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from raffle_client.api.constants import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_MS
from raffle_client.api.models import Session


class AppSettings(BaseSettings):
    """Client configuration read once from the environment or ``.env``.

    ``RAFFLE_ACCESS_TOKEN`` / ``RAFFLE_REFRESH_TOKEN`` let scripts start
    from an existing session instead of signing in.
    """

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    api_url: str = Field(default=DEFAULT_BASE_URL, validation_alias="RAFFLE_API_URL")
    api_timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS, validation_alias="RAFFLE_API_TIMEOUT_MS"
    )
    log_level: str = Field(default="INFO", validation_alias="RAFFLE_LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="RAFFLE_LOG_JSON")
    access_token: str | None = Field(default=None, validation_alias="RAFFLE_ACCESS_TOKEN")
    refresh_token: str | None = Field(
        default=None, validation_alias="RAFFLE_REFRESH_TOKEN"
    )

    def initial_session(self) -> Session | None:
        """Session built from the configured tokens, None without any."""
        if not self.access_token and not self.refresh_token:
            return None
        return Session(access_token=self.access_token, refresh_token=self.refresh_token)


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
