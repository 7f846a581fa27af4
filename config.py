import logging
import math
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

CHATJIMMY_DEFAULT_URL = "https://chatjimmy.ai/api/chat"
DEFAULT_MODEL = "llama3.1-8B"
DEFAULT_TOP_K = 8
DEFAULT_TIMEOUT = 180.0


class Settings(BaseSettings):
    """Application configuration settings, read fresh for every invocation."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    ALLOWED_ORIGIN: str = "*"  # CORS origin
    OPENAI_API_KEY: str = ""  # Expected bearer token, blank disables auth
    CHATJIMMY_URL: str = CHATJIMMY_DEFAULT_URL
    CHATJIMMY_MODEL: str = DEFAULT_MODEL
    CHATJIMMY_MODELS: str = ""  # Comma-separated list of advertised model ids
    CHATJIMMY_TOP_K: Optional[str] = None  # Kept as text, parsed per request
    CHATJIMMY_TIMEOUT: Optional[str] = None  # Seconds to wait for the upstream reply, parsed per request
    LOG_LEVEL: str = "INFO" # Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL, NONE)

    @property
    def default_model(self) -> str:
        return (self.CHATJIMMY_MODEL or DEFAULT_MODEL).strip() or DEFAULT_MODEL

    @property
    def upstream_url(self) -> str:
        return (self.CHATJIMMY_URL or CHATJIMMY_DEFAULT_URL).strip() or CHATJIMMY_DEFAULT_URL

    @property
    def upstream_timeout(self) -> float:
        try:
            timeout = float((self.CHATJIMMY_TIMEOUT or "").strip())
        except ValueError:
            return DEFAULT_TIMEOUT
        return timeout if math.isfinite(timeout) and timeout > 0 else DEFAULT_TIMEOUT

    @property
    def expected_api_key(self) -> str:
        return (self.OPENAI_API_KEY or "").strip()

    @property
    def advertised_models(self) -> List[str]:
        return [m.strip() for m in (self.CHATJIMMY_MODELS or "").split(",") if m.strip()]


def get_settings() -> Settings:
    """Builds a new immutable Settings object from the current environment."""
    return Settings()


# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "NONE": logging.CRITICAL + 1, # Effectively disable logging
}


def setup_logging(level_name: str) -> int:
    """Configures root logging from a level name and returns the numeric level."""
    log_level = LOG_LEVEL_MAP.get((level_name or "").upper(), logging.INFO) # Default to INFO if invalid
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        # Force=True might be needed if uvicorn also configures logging
        force=True
    )
    return log_level
