import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from app.core.clients import GrowthClients
from app.core.config import Settings
from app.main import app


@pytest.fixture
def client():
    """
    Create a TestClient instance for testing FastAPI endpoints.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_llm():
    """
    Build a mock chat model that answers with the given messages in order.

    bind_tools returns the same mock, so tool-bound and plain calls share
    one script.
    """
    def _make(*responses):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=list(responses))
        llm.bind_tools.return_value = llm
        return llm
    return _make


@pytest.fixture
def settings():
    return Settings(tool_timeout=1.0, formatter_timeout=1.0, enrichment_timeout=1.0, model_timeout=5.0)


@pytest.fixture
def make_clients(settings):
    def _make(generation_llm=None, extraction_llm=None, toolkit=None, history=None):
        generation_llm = generation_llm or MagicMock()
        return GrowthClients(
            settings=settings,
            generation_llm=generation_llm,
            free_llm=generation_llm,
            strategy_llm=generation_llm,
            extraction_llm=extraction_llm or MagicMock(),
            toolkit=toolkit,
            history=history,
        )
    return _make
