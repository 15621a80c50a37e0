import asyncio
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

from app.models.schemas import FreeBriefRequest, RefinementRequest, StrategyContextRequest, StrategyRequest
from app.services.dispatcher import EventDispatcher
from app.utils.sse import sse_event
from strategy_agent.pipelines import generate_free_brief, generate_strategy, generate_strategy_context, refine_strategy
from strategy_agent.state import PipelineResult, StageCallback

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

GENERATION_FAILED_MESSAGE = "Generation failed. Please try again or contact support."

PipelineStarter = Callable[[StageCallback], Awaitable[PipelineResult]]


def _done_payload(result: PipelineResult) -> Dict[str, Any]:
    return {
        "output": result.output,
        "structuredOutput": result.structured_output,
        "strategyContext": result.strategy_context.model_dump(exclude_none=True) if result.strategy_context else None,
        "toolCalls": len(result.tool_calls),
    }


async def stream_pipeline(
    run_id: str,
    start: PipelineStarter,
    dispatcher: Optional[EventDispatcher] = None,
) -> AsyncGenerator[str, None]:
    """
    Run a pipeline in the background and stream its progress as SSE.

    Stage updates become `status` events while the pipeline runs, followed by
    a single `done` or `error` event. Post-completion events are dispatched
    once the final event has been sent.
    """
    stages: asyncio.Queue = asyncio.Queue()

    async def on_stage_update(stage: str) -> None:
        await stages.put(stage)

    task = asyncio.create_task(start(on_stage_update))
    try:
        while True:
            next_stage = asyncio.ensure_future(stages.get())
            done, _ = await asyncio.wait({next_stage, task}, return_when=asyncio.FIRST_COMPLETED)
            if next_stage in done:
                yield sse_event("status", stage=next_stage.result())
                continue
            next_stage.cancel()
            break

        while not stages.empty():
            yield sse_event("status", stage=stages.get_nowait())

        try:
            result = task.result()
        except Exception as e:
            logger.exception(f"[{run_id}] Pipeline crashed")
            yield sse_event("error", error=GENERATION_FAILED_MESSAGE, detail=str(e))
            return

        if result.success:
            yield sse_event("done", runId=run_id, **_done_payload(result))
        else:
            yield sse_event("error", error=GENERATION_FAILED_MESSAGE, detail=result.error)

        if dispatcher is not None and result.events:
            await dispatcher.dispatch(result.events)
    finally:
        if not task.done():
            logger.warning(f"[{run_id}] Stream closed before the pipeline finished; cancelling")
            task.cancel()


def strategy_event_generator(clients, request: StrategyRequest, dispatcher: Optional[EventDispatcher] = None):
    def start(on_stage_update: StageCallback):
        return generate_strategy(
            clients,
            request.input,
            request.runId,
            user_id=request.userId,
            user_history=request.userHistory,
            prior_context=request.priorContext,
            on_stage_update=on_stage_update,
            enrich=request.enrich,
        )

    return stream_pipeline(request.runId, start, dispatcher)


def free_brief_event_generator(clients, request: FreeBriefRequest, dispatcher: Optional[EventDispatcher] = None):
    def start(on_stage_update: StageCallback):
        return generate_free_brief(
            clients, request.input, request.runId, email=request.email, on_stage_update=on_stage_update
        )

    return stream_pipeline(request.runId, start, dispatcher)


def refinement_event_generator(clients, request: RefinementRequest, dispatcher: Optional[EventDispatcher] = None):
    def start(on_stage_update: StageCallback):
        return refine_strategy(
            clients,
            request.input,
            request.previousOutput,
            request.additionalContext,
            request.runId,
            user_id=request.userId,
            on_stage_update=on_stage_update,
        )

    return stream_pipeline(request.runId, start, dispatcher)


def strategy_context_event_generator(
    clients, request: StrategyContextRequest, dispatcher: Optional[EventDispatcher] = None
):
    def start(on_stage_update: StageCallback):
        return generate_strategy_context(
            clients,
            request.profile,
            request.monthNumber,
            request.runId,
            user_id=request.userId,
            business_id=request.businessId,
            carry_forward=request.carryForward,
            historical_context=request.historicalContext,
            on_stage_update=on_stage_update,
        )

    return stream_pipeline(request.runId, start, dispatcher)
