"""Agentic loop: the model plans research, calls tools, and writes the final document.

The loop is bounded twice: by model calls (``max_iterations``) and by executed
tool calls (``max_tool_calls``). Running out of either is not a failure: the
next model call is made without tools and asked for the complete output.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, ToolMessage

from app.tools.research import describe_tool_call
from app.utils.llm import message_text
from .state import AgenticResult, ResearchData, StageCallback, StopReason, Timing, ToolResult

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[ToolResult]]
CustomToolExecutor = Callable[[Dict[str, Any]], Awaitable[str]]

SKIPPED_OVER_BUDGET = "Tool call skipped - budget exceeded."
FINAL_OUTPUT_NUDGE = "You've gathered enough research data. Write the complete output now. No more tool calls."
PROCESSING_MESSAGES = [
    "Processing findings...",
    "Analyzing results...",
    "Synthesizing research...",
    "Connecting the dots...",
]


def _call_key(name: str, args: Dict[str, Any]) -> str:
    return f"{name}:{json.dumps(args, sort_keys=True, default=str)}"


def _repeat(result: ToolResult) -> ToolResult:
    # Same answer for a repeated call, without recording its research data twice.
    return ToolResult(text=result.text, image=result.image)


def _describe_call(name: str, args: Dict[str, Any]) -> str:
    return f"{name}: {json.dumps(args, default=str)}"


def _ms_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def _notify(on_stage_update: Optional[StageCallback], stage: str) -> None:
    if on_stage_update is None:
        return
    try:
        await on_stage_update(stage)
    except Exception as e:
        logger.warning(f"Stage callback failed for {stage!r}: {e}")


async def _invoke_tool(
    name: str,
    args: Dict[str, Any],
    execute_tool: ToolExecutor,
    custom_tool_executors: Dict[str, CustomToolExecutor],
    timeout: float,
) -> ToolResult:
    """Run one tool. Never raises: failures come back as an error string for the model."""
    try:
        if name in custom_tool_executors:
            text = await asyncio.wait_for(custom_tool_executors[name](args), timeout=timeout)
            return ToolResult(text=text)
        return await asyncio.wait_for(execute_tool(name, args), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Tool {name} timed out after {timeout}s")
        return ToolResult(text=f"Error: {name} timed out after {int(timeout * 1000)}ms")
    except Exception as e:
        logger.error(f"Tool {name} raised: {e}")
        return ToolResult(text=f"Error: {e}")


def _tool_message(call_id: str, result: ToolResult) -> ToolMessage:
    if result.image:
        return ToolMessage(content=[result.image, {"type": "text", "text": result.text}], tool_call_id=call_id)
    return ToolMessage(content=result.text, tool_call_id=call_id)


async def run_agentic_loop(
    llm,
    system_prompt: str,
    messages: Sequence[BaseMessage],
    tools: Sequence[Dict[str, Any]],
    execute_tool: ToolExecutor,
    max_iterations: int = 10,
    max_tool_calls: int = 25,
    max_parallel_tools: int = 5,
    tool_timeout: float = 15.0,
    model_timeout: Optional[float] = None,
    custom_tool_executors: Optional[Dict[str, CustomToolExecutor]] = None,
    on_stage_update: Optional[StageCallback] = None,
    run_id: Optional[str] = None,
) -> AgenticResult:
    """Drive model -> tools -> model until a final answer or a budget runs out.

    Identical tool calls (same name and arguments) within one run are answered
    from the first call's result without spending budget or re-recording data.
    Model failures end the run with ``success=False``; tool failures never do.
    """
    custom_tool_executors = custom_tool_executors or {}
    start = time.monotonic()
    label = f"[{run_id}] " if run_id else ""

    conversation: List[BaseMessage] = [SystemMessage(content=system_prompt), *messages]
    research_data = ResearchData()
    tool_calls: List[str] = []
    seen_results: Dict[str, ToolResult] = {}
    tool_time_ms = 0
    iterations = 0
    batches = 0
    stopped_reason: StopReason = "completed"
    llm_with_tools = llm.bind_tools(list(tools)) if tools else llm

    def finish(success: bool, output: Optional[str] = None, error: Optional[str] = None) -> AgenticResult:
        total = _ms_since(start)
        return AgenticResult(
            success=success,
            output=output,
            research_data=research_data,
            tool_calls=tool_calls,
            iterations=iterations,
            timing=Timing(total=total, tools=tool_time_ms, generation=total - tool_time_ms),
            stopped_reason=stopped_reason if success else "error",
            error=error,
        )

    while iterations < max_iterations:
        iterations += 1
        remaining = max_tool_calls - len(tool_calls)
        tools_allowed = bool(tools) and remaining > 0 and iterations < max_iterations

        if not tools_allowed and tools:
            stopped_reason = "tool_budget" if remaining <= 0 else "iteration_budget"
            if tool_calls:
                logger.info(f"{label}Budget reached ({stopped_reason}), forcing final output")
                conversation.append(HumanMessage(content=FINAL_OUTPUT_NUDGE))

        model = llm_with_tools if tools_allowed else llm
        try:
            if model_timeout:
                response = await asyncio.wait_for(model.ainvoke(conversation), timeout=model_timeout)
            else:
                response = await model.ainvoke(conversation)
        except asyncio.TimeoutError:
            logger.error(f"{label}Model call timed out after {model_timeout}s (iteration {iterations})")
            return finish(False, error=f"Model call timed out after {model_timeout}s")
        except Exception as e:
            logger.error(f"{label}Model call failed (iteration {iterations}): {e}")
            return finish(False, error=f"Model call failed: {e}")

        requested = getattr(response, "tool_calls", None) or []
        if not requested or not tools_allowed:
            if requested:
                logger.info(f"{label}Ignoring {len(requested)} tool request(s) with no tool budget left")
            return finish(True, output=message_text(response))

        conversation.append(response)

        if batches == 0:
            await _notify(on_stage_update, "Planning research approach...")
        first = requested[0]
        await _notify(on_stage_update, describe_tool_call(first["name"], first.get("args") or {}))

        # Decide every call's fate up front so the budget is never overshot by a batch.
        outcomes: Dict[str, ToolResult] = {}
        to_run = []
        pending_keys: Dict[str, str] = {}
        duplicates = []
        for call in requested:
            name, args, call_id = call["name"], call.get("args") or {}, call["id"]
            key = _call_key(name, args)
            if key in seen_results:
                outcomes[call_id] = _repeat(seen_results[key])
            elif key in pending_keys:
                duplicates.append((call_id, key))
            elif len(tool_calls) < max_tool_calls:
                description = _describe_call(name, args)
                logger.info(f"{label}Tool call: {description}")
                tool_calls.append(description)
                pending_keys[key] = call_id
                to_run.append((call_id, name, args, key))
            else:
                logger.info(f"{label}Skipping tool (over budget): {name}")
                outcomes[call_id] = ToolResult(text=SKIPPED_OVER_BUDGET)

        tool_start = time.monotonic()
        for i in range(0, len(to_run), max(1, max_parallel_tools)):
            batch = to_run[i:i + max_parallel_tools]
            results = await asyncio.gather(
                *(_invoke_tool(name, args, execute_tool, custom_tool_executors, tool_timeout) for _, name, args, _ in batch)
            )
            for (call_id, _, _, key), result in zip(batch, results):
                outcomes[call_id] = result
                seen_results[key] = result
                if result.data is not None:
                    research_data.record(result.data)
        tool_time_ms += _ms_since(tool_start)

        for call_id, key in duplicates:
            outcomes[call_id] = _repeat(seen_results[key])

        for call in requested:
            conversation.append(_tool_message(call["id"], outcomes[call["id"]]))

        batches += 1
        await _notify(on_stage_update, PROCESSING_MESSAGES[batches % len(PROCESSING_MESSAGES)])

    # Only reachable when max_iterations < 1.
    stopped_reason = "iteration_budget"
    return finish(True, output="")
