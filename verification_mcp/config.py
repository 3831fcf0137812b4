from __future__ import annotations

from functools import lru_cache
from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_REQUIRED_PURPOSE = "insurance_verification"


class Settings(BaseSettings):
    """
    Central configuration for the verification MCP gateway.

    All values are loaded from environment variables with `MCP_` prefix.
    You can also use a `.env` file in the working directory during development.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore",
    )

    # General
    env: str = "dev"
    server_port: int = 4010
    server_host: str = "0.0.0.0"
    transport: str = "http"  # "stdio" or "http"
    log_level: str = "INFO"

    # Auth gate
    api_keys: str = ""  # comma-separated allow-list
    required_purpose: str = DEFAULT_REQUIRED_PURPOSE
    allow_agent_unmasked: bool = False

    # HTTP
    cors_origins: str = ""  # comma-separated; empty means "*"

    # Demographic search
    search_result_limit: int = 20

    # Firebase
    firebase_project_id: Optional[str] = None
    firebase_credentials_file: Optional[str] = None

    def api_key_list(self) -> List[str]:
        return _split_csv(self.api_keys)

    def cors_origin_list(self) -> List[str]:
        return [o.lower() for o in _split_csv(self.cors_origins)]


class AuthConfig(BaseModel):
    """
    Immutable auth-gate configuration, built once at startup.
    """

    model_config = ConfigDict(frozen=True)

    api_keys: FrozenSet[str] = frozenset()
    required_purpose: str = DEFAULT_REQUIRED_PURPOSE
    allow_agent_unmasked: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            api_keys=frozenset(settings.api_key_list()),
            required_purpose=settings.required_purpose,
            allow_agent_unmasked=settings.allow_agent_unmasked,
        )


def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings from environment."""
    return Settings()
