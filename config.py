"""Configuration for the deepseek-gateway chat proxy."""
import os
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
CHAT_ENDPOINT = "/chat/completions"
DEFAULT_MODEL = "deepseek-chat"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.7

HISTORY_BACKENDS = ("", "mongo", "memory")


class UpstreamConfig(BaseModel):
    """Immutable settings handed to the upstream client at construction."""
    model_config = ConfigDict(frozen=True)

    base_url: str = DEEPSEEK_BASE_URL
    chat_path: str = CHAT_ENDPOINT
    api_key: str = ""
    default_model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout: Optional[float] = 300.0

    @property
    def chat_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.chat_path}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Upstream completion API
    DEEPSEEK_API_KEY: str = ""
    DEEPSEEK_BASE_URL: str = DEEPSEEK_BASE_URL
    DEFAULT_MODEL: str = DEFAULT_MODEL
    MAX_TOKENS: int = DEFAULT_MAX_TOKENS
    DEFAULT_TEMPERATURE: float = DEFAULT_TEMPERATURE
    LLM_TIMEOUT: float = 300.0

    # Application settings
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8787
    SERVICE_NAME: str = "DeepSeek Chat API"
    VERSION: str = "1.0.0"
    DOCUMENTATION_URL: str = "https://github.com/ashenghm/cloudflare-deepseek-chat-api"

    # Chat history storage ("" disables history and stats)
    CHAT_HISTORY_BACKEND: str = ""
    MONGO_URI: str = ""
    DB_NAME: str = "deepseek_gateway"
    CHAT_HISTORY_COLLECTION: str = "chat_history"
    HISTORY_TTL_DAYS: int = 30
    DB_CONNECTION_TIMEOUT: int = 5

    def validate_settings(self):
        """Validate critical settings."""
        if self.MAX_TOKENS < 1:
            raise ValueError("MAX_TOKENS must be at least 1")

        if self.HISTORY_TTL_DAYS < 1:
            raise ValueError("HISTORY_TTL_DAYS must be at least 1")

        if self.CHAT_HISTORY_BACKEND not in HISTORY_BACKENDS:
            raise ValueError(
                f"CHAT_HISTORY_BACKEND must be one of {', '.join(repr(b) for b in HISTORY_BACKENDS)}"
            )

        if self.CHAT_HISTORY_BACKEND == "mongo" and not self.MONGO_URI:
            raise ValueError("MONGO_URI is required when CHAT_HISTORY_BACKEND is 'mongo'")

    @property
    def history_ttl_seconds(self) -> int:
        return self.HISTORY_TTL_DAYS * 24 * 60 * 60

    def upstream_config(self) -> UpstreamConfig:
        return UpstreamConfig(
            base_url=self.DEEPSEEK_BASE_URL,
            api_key=self.DEEPSEEK_API_KEY,
            default_model=self.DEFAULT_MODEL or DEFAULT_MODEL,
            max_tokens=self.MAX_TOKENS,
            temperature=self.DEFAULT_TEMPERATURE,
            timeout=self.LLM_TIMEOUT,
        )


settings = Settings()


def get_environment_info(app_settings: Settings = settings) -> Dict[str, object]:
    """Get environment information for debugging."""
    return {
        "kubernetes": bool(os.environ.get("KUBERNETES_SERVICE_HOST")),
        "debug": app_settings.DEBUG,
        "api_key_configured": bool(app_settings.DEEPSEEK_API_KEY),
        "default_model": app_settings.DEFAULT_MODEL,
        "history_backend": app_settings.CHAT_HISTORY_BACKEND or "disabled",
    }
