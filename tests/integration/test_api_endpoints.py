import json

from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

from strategy_agent.formatter import normalize_extraction, validate_structured_output

RUN_INPUT = {"productDescription": "Scheduling for dog groomers", "focusArea": "acquisition"}


# Helper function to create an async generator for mocking
async def mock_event_generator(*args, **kwargs):
    yield "data: {\"type\": \"status\", \"stage\": \"Analyzing your situation...\"}\n\n"
    yield "data: {\"type\": \"done\", \"output\": \"# Strategy\"}\n\n"


def _data_lines(response):
    # iter_lines() yields text by default; SSE format yields empty lines between data
    return [line for line in response.iter_lines() if line.strip()]


def test_health_check(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_strategy_validation(client: TestClient):
    # Missing 'input' field
    response = client.post("/generate-strategy", json={"runId": "r1"})
    assert response.status_code == 422
    assert "Field required" in response.text


def test_generate_strategy_rejects_unknown_focus_area(client: TestClient):
    payload = {"runId": "r1", "input": {**RUN_INPUT, "focusArea": "virality"}}
    response = client.post("/generate-strategy", json=payload)
    assert response.status_code == 422


@patch("app.main.strategy_event_generator", side_effect=mock_event_generator)
def test_generate_strategy_success(mock_gen, client: TestClient):
    payload = {"runId": "r1", "userId": "u1", "input": RUN_INPUT, "enrich": False}
    response = client.post("/generate-strategy", json=payload)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    lines = _data_lines(response)
    assert 'data: {"type": "status", "stage": "Analyzing your situation..."}' in lines
    request = mock_gen.call_args.args[1]
    assert request.runId == "r1"
    assert request.enrich is False


@patch("app.main.free_brief_event_generator", side_effect=mock_event_generator)
def test_generate_brief_success(mock_gen, client: TestClient):
    response = client.post("/generate-brief", json={"runId": "r2", "email": "a@b.co", "input": RUN_INPUT})
    assert response.status_code == 200
    assert 'data: {"type": "done", "output": "# Strategy"}' in _data_lines(response)


def test_refine_strategy_requires_previous_output(client: TestClient):
    payload = {"runId": "r3", "input": RUN_INPUT, "additionalContext": "Focus on B2B"}
    response = client.post("/refine-strategy", json=payload)
    assert response.status_code == 422


@patch("app.main.refinement_event_generator", side_effect=mock_event_generator)
def test_refine_strategy_success(mock_gen, client: TestClient):
    payload = {
        "runId": "r3",
        "input": RUN_INPUT,
        "previousOutput": "# Old strategy",
        "additionalContext": "Focus on B2B",
    }
    response = client.post("/refine-strategy", json=payload)
    assert response.status_code == 200
    assert len(_data_lines(response)) == 2


def test_generate_strategy_context_validation(client: TestClient):
    payload = {"runId": "r4", "profile": {"description": "Groomers"}, "monthNumber": 0}
    response = client.post("/generate-strategy-context", json=payload)
    assert response.status_code == 422


@patch("app.main.strategy_context_event_generator", side_effect=mock_event_generator)
def test_generate_strategy_context_success(mock_gen, client: TestClient):
    payload = {
        "runId": "r4",
        "userId": "u1",
        "businessId": "b1",
        "profile": {"description": "Groomers", "competitors": ["MoeGo"]},
        "monthNumber": 2,
        "carryForward": {"worked": ["Reddit"], "didntWork": [], "learnings": []},
    }
    response = client.post("/generate-strategy-context", json=payload)
    assert response.status_code == 200
    request = mock_gen.call_args.args[1]
    assert request.carryForward.worked == ["Reddit"]


def test_extract_structured_output_success(client: TestClient):
    structured = validate_structured_output(normalize_extraction({
        "thisWeek": {"days": []}, "topPriorities": [], "metrics": [], "competitors": [], "roadmapWeeks": [],
    }))
    with patch("app.main.extract_structured_output", new=AsyncMock(return_value=structured)) as mock_extract:
        response = client.post("/extract-structured-output", json={"markdown": "# Strategy"})

    assert response.status_code == 200
    body = response.json()
    assert body["structuredOutput"]["formatterVersion"] == "1.0"
    assert mock_extract.call_args.args[1] == "# Strategy"


def test_extract_structured_output_failure_returns_null(client: TestClient):
    with patch("app.main.extract_structured_output", new=AsyncMock(return_value=None)):
        response = client.post("/extract-structured-output", json={"markdown": "# Strategy"})

    assert response.status_code == 200
    assert response.json() == {"structuredOutput": None}
