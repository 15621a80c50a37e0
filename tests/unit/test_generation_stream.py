import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from app.services.dispatcher import EventDispatcher
from app.services.generation import GENERATION_FAILED_MESSAGE, stream_pipeline
from strategy_agent.state import PipelineEvent, PipelineResult


def _collect_events(raw_events):
    """Parse SSE event strings into dicts."""
    events = []
    for e in raw_events:
        if e.startswith("data: "):
            events.append(json.loads(e[6:].strip()))
    return events


async def _drain(generator):
    return _collect_events([chunk async for chunk in generator])


@pytest.mark.asyncio
async def test_stages_stream_before_done_and_events_dispatch_after():
    dispatcher = EventDispatcher()
    handler = AsyncMock()
    dispatcher.register("run_completed", handler)

    async def start(on_stage_update):
        await on_stage_update("Analyzing your situation...")
        await asyncio.sleep(0)
        await on_stage_update("Formatting your strategy...")
        return PipelineResult(
            success=True,
            output="# Strategy",
            structured_output={"partial": False},
            tool_calls=["search: {}"],
            events=[PipelineEvent(name="run_completed", payload={"run_id": "r1"})],
        )

    events = await _drain(stream_pipeline("r1", start, dispatcher))

    assert [e["type"] for e in events] == ["status", "status", "done"]
    assert events[0]["stage"] == "Analyzing your situation..."
    assert events[1]["stage"] == "Formatting your strategy..."
    assert events[2]["output"] == "# Strategy"
    assert events[2]["structuredOutput"] == {"partial": False}
    assert events[2]["toolCalls"] == 1
    assert events[2]["runId"] == "r1"
    handler.assert_awaited_once()


@pytest.mark.asyncio
async def test_failed_result_streams_generic_error():
    async def start(on_stage_update):
        return PipelineResult(success=False, error="Model call failed: overloaded")

    events = await _drain(stream_pipeline("r2", start))

    assert events == [{"type": "error", "error": GENERATION_FAILED_MESSAGE, "detail": "Model call failed: overloaded"}]


@pytest.mark.asyncio
async def test_crashing_pipeline_streams_error():
    async def start(on_stage_update):
        await on_stage_update("Analyzing your situation...")
        raise RuntimeError("graph exploded")

    events = await _drain(stream_pipeline("r3", start))

    assert events[0] == {"type": "status", "stage": "Analyzing your situation..."}
    assert events[-1]["type"] == "error"
    assert events[-1]["detail"] == "graph exploded"
