"""Configuration model for the API client."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from raffle_client.api.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT_MS,
    RENEWAL_PATH,
)
from raffle_client.api.models import RetryPolicy


class ApiConfig(BaseModel):
    """Configuration for the API client.

    Base URL and default deadline are read once from the environment
    (see ``AppSettings``) and shared by every call.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: Annotated[str, Field(min_length=1)] = DEFAULT_BASE_URL
    timeout_ms: Annotated[int, Field(ge=1000, le=120000)] = DEFAULT_TIMEOUT_MS
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    renewal_path: Annotated[str, Field(min_length=1)] = RENEWAL_PATH
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        "raffle-client/1.0"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            msg = f"base_url must be an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("renewal_path")
    @classmethod
    def validate_renewal_path(cls, v: str) -> str:
        """Ensure the renewal path is absolute."""
        if not v.startswith("/"):
            msg = f"renewal_path must start with '/', got {v!r}"
            raise ValueError(msg)
        return v
