import pytest
from unittest.mock import AsyncMock

from app.services.dispatcher import EventDispatcher, create_logging_dispatcher
from strategy_agent.state import PipelineEvent


@pytest.mark.asyncio
async def test_events_reach_registered_handlers_in_order():
    dispatcher = EventDispatcher()
    seen = []

    async def handler(event):
        seen.append(event.name)

    dispatcher.register("run_completed", handler)
    dispatcher.register("send_run_ready_email", handler)

    delivered = await dispatcher.dispatch([
        PipelineEvent(name="run_completed", payload={"run_id": "r1"}),
        PipelineEvent(name="send_run_ready_email", payload={"run_id": "r1"}),
        PipelineEvent(name="accumulate_context", payload={"run_id": "r1"}),
    ])

    assert seen == ["run_completed", "send_run_ready_email"]
    assert delivered == 2


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    dispatcher = EventDispatcher()
    failing = AsyncMock(side_effect=RuntimeError("smtp down"))
    working = AsyncMock()
    dispatcher.register("send_run_failed_email", failing)
    dispatcher.register("run_failed", working)

    delivered = await dispatcher.dispatch([
        PipelineEvent(name="send_run_failed_email", payload={}),
        PipelineEvent(name="run_failed", payload={"error": "x"}),
    ])

    assert delivered == 1
    working.assert_awaited_once()


@pytest.mark.asyncio
async def test_logging_dispatcher_handles_every_event(caplog):
    dispatcher = create_logging_dispatcher()
    events = [
        PipelineEvent(name=name, payload={"run_id": "r1", "output": "x" * 500})
        for name in (
            "run_completed", "run_failed", "send_run_ready_email", "send_run_failed_email",
            "accumulate_context", "send_free_brief_email", "strategy_context_ready",
        )
    ]

    with caplog.at_level("INFO"):
        delivered = await dispatcher.dispatch(events)

    assert delivered == len(events)
    assert "<500 chars>" in caplog.text
