import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.core.config import Settings
from app.core.llm_factory import get_chat_model
from app.tools.history import HistorySearch
from app.tools.research import ResearchToolkit

logger = logging.getLogger(__name__)

PAID_MAX_TOKENS = 12000
FREE_MAX_TOKENS = 4000
STRATEGY_MAX_TOKENS = 8000
EXTRACTION_MAX_TOKENS = 8000


@dataclass
class GrowthClients:
    """Everything a pipeline talks to, constructed once per process.

    Passed explicitly into pipelines (via the graph config) so tests can swap
    any member for a fake.
    """

    settings: Settings
    generation_llm: Any
    free_llm: Any
    strategy_llm: Any
    extraction_llm: Any
    http: Optional[httpx.AsyncClient] = None
    toolkit: Optional[ResearchToolkit] = None
    history: Optional[HistorySearch] = None

    async def aclose(self) -> None:
        if self.http is not None:
            await self.http.aclose()


def build_clients(settings: Settings, history: Optional[HistorySearch] = None) -> GrowthClients:
    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.tool_timeout, connect=5.0))
    logger.info(
        f"Building clients: provider={settings.llm_provider}, "
        f"tavily={'yes' if settings.tavily_api_key else 'no'}, "
        f"dataforseo={'yes' if settings.has_dataforseo else 'no'}, "
        f"screenshots={'yes' if settings.has_screenshot_service else 'no'}"
    )
    return GrowthClients(
        settings=settings,
        generation_llm=get_chat_model(settings, settings.strategy_model, max_tokens=PAID_MAX_TOKENS),
        free_llm=get_chat_model(settings, settings.free_model, max_tokens=FREE_MAX_TOKENS),
        strategy_llm=get_chat_model(settings, settings.strategy_model, max_tokens=STRATEGY_MAX_TOKENS),
        extraction_llm=get_chat_model(settings, settings.extraction_model, max_tokens=EXTRACTION_MAX_TOKENS),
        http=http,
        toolkit=ResearchToolkit(http, settings),
        history=history,
    )
