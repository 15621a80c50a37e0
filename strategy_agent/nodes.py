import logging
from typing import Any, Dict, List

from langchain_core.runnables import RunnableConfig

from app.tools.history import SEARCH_HISTORY_TOOL
from app.tools.research import RESEARCH_TOOLS, bind_executor
from .engine import run_agentic_loop
from .enrichment import enrich_weekly_tasks
from .formatter import extract_free_brief_output, extract_structured_output
from .schemas import StructuredOutput
from .state import PipelineEvent, PipelineState, ToolResult
from .strategy_context import extract_strategy_context

logger = logging.getLogger(__name__)


def _configurable(config: RunnableConfig) -> Dict[str, Any]:
    return (config or {}).get("configurable", {})


async def _stage(config: RunnableConfig, stage: str) -> None:
    callback = _configurable(config).get("on_stage_update")
    if callback is None:
        return
    try:
        await callback(stage)
    except Exception as e:
        logger.warning(f"Stage callback failed for {stage!r}: {e}")


def _tool_definitions(names: List[str]) -> List[Dict[str, Any]]:
    definitions = []
    for name in names:
        if name == SEARCH_HISTORY_TOOL["name"]:
            definitions.append(SEARCH_HISTORY_TOOL)
        else:
            definitions.append(RESEARCH_TOOLS[name])
    return definitions


async def _tools_unavailable(name: str, args: Dict[str, Any]) -> ToolResult:
    return ToolResult(text=f"{name} not available (research tools not configured).")


def _generation_llm(clients, variant: str):
    if variant == "free":
        return clients.free_llm
    if variant == "strategy_context":
        return clients.strategy_llm
    return clients.generation_llm


# --- Nodes ---


async def generate_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Run the agentic research + writing loop for this pipeline variant."""
    configurable = _configurable(config)
    clients = configurable["clients"]
    settings = clients.settings
    budget = state["budget"]
    variant = state["variant"]

    if state.get("initial_stage"):
        await _stage(config, state["initial_stage"])

    if clients.toolkit is not None:
        execute_tool = bind_executor(clients.toolkit, configurable.get("user_domain"))
    else:
        execute_tool = _tools_unavailable

    result = await run_agentic_loop(
        _generation_llm(clients, variant),
        state["system_prompt"],
        state["messages"],
        _tool_definitions(budget.tool_names),
        execute_tool,
        max_iterations=budget.max_iterations,
        max_tool_calls=budget.max_tool_calls,
        max_parallel_tools=budget.max_parallel_tools,
        tool_timeout=settings.tool_timeout,
        model_timeout=settings.model_timeout,
        custom_tool_executors=configurable.get("custom_tool_executors"),
        on_stage_update=configurable.get("on_stage_update"),
        run_id=state.get("run_id"),
    )

    logger.info(
        f"[{state.get('run_id')}] {variant} generation finished: success={result.success}, "
        f"iterations={result.iterations}, tool_calls={result.tool_call_count}, "
        f"stopped={result.stopped_reason}, {result.timing.total}ms"
    )
    if not result.success:
        return {"agentic_result": result, "error": result.error or "Generation failed"}
    if not result.output:
        return {"agentic_result": result, "error": "Model returned no output"}
    return {"agentic_result": result}


async def format_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    """Second model pass: project the markdown into the variant's structured shape."""
    clients = _configurable(config)["clients"]
    settings = clients.settings
    result = state["agentic_result"]
    variant = state["variant"]

    if variant == "free":
        await _stage(config, "Scoring your positioning...")
        brief = await extract_free_brief_output(
            clients.extraction_llm, result.output, result.research_data, timeout=settings.formatter_timeout
        )
        return {"structured_output": brief}

    if variant == "strategy_context":
        await _stage(config, "Locking in your quarterly focus...")
        try:
            context = await extract_strategy_context(
                clients.extraction_llm,
                result.output,
                state.get("month_number", 1),
                carry_forward=state.get("carry_forward"),
                timeout=settings.formatter_timeout,
            )
        except Exception as e:
            logger.error(f"[{state.get('run_id')}] Strategy context extraction failed: {e}")
            return {"error": f"Strategy context extraction failed: {e}"}
        # Insights are best-effort; a missing StructuredOutput doesn't fail the run.
        insights = await extract_structured_output(
            clients.extraction_llm, result.output, result.research_data, timeout=settings.formatter_timeout
        )
        return {"strategy_context": context, "structured_output": insights}

    await _stage(config, "Formatting your strategy...")
    structured = await extract_structured_output(
        clients.extraction_llm, result.output, result.research_data, timeout=settings.formatter_timeout
    )
    if structured is None:
        logger.warning(f"[{state.get('run_id')}] No structured output; the raw document will be shown instead")
    return {"structured_output": structured}


async def enrich_node(state: PipelineState, config: RunnableConfig) -> Dict[str, Any]:
    clients = _configurable(config)["clients"]
    await _stage(config, "Adding task details...")
    structured = state["structured_output"]
    summary = state["agentic_result"].output[:2000]
    enriched = await enrich_weekly_tasks(
        clients.extraction_llm, structured, strategy_summary=summary, timeout=clients.settings.enrichment_timeout
    )
    return {"structured_output": enriched}


def _events_for(state: PipelineState) -> List[PipelineEvent]:
    variant = state["variant"]
    run_id = state.get("run_id")
    user_id = state.get("user_id")
    payload = state.get("event_payload") or {}
    result = state.get("agentic_result")
    structured = state.get("structured_output")

    if state.get("error"):
        events = [PipelineEvent(name="run_failed", payload={"run_id": run_id, "variant": variant, "error": state["error"]})]
        if variant != "free":
            events.append(PipelineEvent(name="send_run_failed_email", payload={"run_id": run_id, "user_id": user_id, **payload}))
        return events

    completed = PipelineEvent(
        name="run_completed",
        payload={
            "run_id": run_id,
            "variant": variant,
            "tool_calls": result.tool_call_count if result else 0,
            "has_structured_output": structured is not None,
        },
    )
    if variant == "free":
        return [completed, PipelineEvent(name="send_free_brief_email", payload={"run_id": run_id, **payload})]
    if variant == "strategy_context":
        return [
            completed,
            PipelineEvent(
                name="strategy_context_ready",
                payload={"run_id": run_id, "user_id": user_id, "month_number": state.get("month_number", 1), **payload},
            ),
        ]
    return [
        completed,
        PipelineEvent(name="send_run_ready_email", payload={"run_id": run_id, "user_id": user_id, **payload}),
        PipelineEvent(
            name="accumulate_context",
            payload={
                "run_id": run_id,
                "user_id": user_id,
                "output": result.output,
                "structured_output": structured.model_dump(exclude_none=True) if structured is not None else None,
            },
        ),
    ]


async def finalize_node(state: PipelineState) -> Dict[str, Any]:
    """Turn the outcome into the list of side effects the caller should run."""
    events = _events_for(state)
    logger.info(f"[{state.get('run_id')}] Pipeline finalized with events: {[e.name for e in events]}")
    return {"events": events}


# --- Routing ---


def route_after_generate(state: PipelineState) -> str:
    return "Finalize" if state.get("error") else "Format"


def route_after_format(state: PipelineState) -> str:
    if state.get("error"):
        return "Finalize"
    if state.get("enrich") and isinstance(state.get("structured_output"), StructuredOutput):
        return "Enrich"
    return "Finalize"
