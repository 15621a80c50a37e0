import os
import logging
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using {default}")
        return default


class Settings(BaseModel):
    """Runtime configuration, read from the environment (and .env via load_dotenv)."""

    llm_provider: str = "anthropic"
    strategy_model: str = "claude-opus-4-5-20251101"
    free_model: str = "claude-sonnet-4-20250514"
    extraction_model: str = "claude-sonnet-4-20250514"
    anthropic_api_key: Optional[str] = None
    ollama_base_url: str = "http://localhost:11434"

    tavily_api_key: Optional[str] = None
    scrapingdog_api_key: Optional[str] = None
    dataforseo_login: Optional[str] = None
    dataforseo_password: Optional[str] = None
    screenshot_service_url: Optional[str] = None
    screenshot_api_key: Optional[str] = None

    tool_timeout: float = 15.0
    screenshot_timeout: float = 20.0
    model_timeout: float = 300.0
    formatter_timeout: float = 60.0
    enrichment_timeout: float = 45.0
    max_context_length: int = 5000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", "anthropic").lower(),
            strategy_model=os.getenv("STRATEGY_MODEL", cls.model_fields["strategy_model"].default),
            free_model=os.getenv("FREE_MODEL", cls.model_fields["free_model"].default),
            extraction_model=os.getenv("EXTRACTION_MODEL", cls.model_fields["extraction_model"].default),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            tavily_api_key=os.getenv("TAVILY_API"),
            scrapingdog_api_key=os.getenv("SCRAPINGDOG_API_KEY"),
            dataforseo_login=os.getenv("DATAFORSEO_LOGIN"),
            dataforseo_password=os.getenv("DATAFORSEO_PASSWORD"),
            screenshot_service_url=os.getenv("SCREENSHOT_SERVICE_URL"),
            screenshot_api_key=os.getenv("SCREENSHOT_API_KEY"),
            tool_timeout=_env_float("TOOL_TIMEOUT_SECONDS", 15.0),
            screenshot_timeout=_env_float("SCREENSHOT_TIMEOUT_SECONDS", 20.0),
            model_timeout=_env_float("MODEL_TIMEOUT_SECONDS", 300.0),
            formatter_timeout=_env_float("FORMATTER_TIMEOUT_SECONDS", 60.0),
            enrichment_timeout=_env_float("ENRICHMENT_TIMEOUT_SECONDS", 45.0),
            max_context_length=int(_env_float("MAX_CONTEXT_LENGTH", 5000)),
        )

    @property
    def has_dataforseo(self) -> bool:
        return bool(self.dataforseo_login and self.dataforseo_password)

    @property
    def has_screenshot_service(self) -> bool:
        return bool(self.screenshot_service_url and self.screenshot_api_key)
