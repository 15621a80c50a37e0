"""Entry points for the four generation pipelines.

Each pipeline picks a prompt, a budget and a tool set, then runs the shared
Generate -> Format -> Enrich -> Finalize graph. None of them raise for a failed
generation: the outcome, and the side effects to perform, come back in a
PipelineResult.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage

from app.tools.history import SEARCH_HISTORY_TOOL, create_search_history_executor
from app.tools.research import image_block
from .graph import pipeline_graph
from .prompts import (
    FREE_BRIEF_SYSTEM_PROMPT,
    REFINEMENT_SYSTEM_PROMPT,
    build_free_brief_user_message,
    build_refinement_user_message,
    build_strategy_context_system_prompt,
    build_strategy_context_user_message,
    build_strategy_system_prompt,
    build_strategy_user_message,
)
from .state import (
    BusinessProfile,
    CarryForward,
    LoopBudget,
    PipelineResult,
    PipelineState,
    RunInput,
    StageCallback,
    UserHistoryContext,
)

logger = logging.getLogger(__name__)

RESEARCH_TOOL_NAMES = ["search", "scrape", "seo", "keyword_gaps"]

PAID_BUDGET = LoopBudget(max_iterations=10, max_tool_calls=25, tool_names=RESEARCH_TOOL_NAMES)
FREE_BUDGET = LoopBudget(max_iterations=5, max_tool_calls=8, tool_names=["search", "seo"])
REFINE_BUDGET = LoopBudget(max_iterations=6, max_tool_calls=10, tool_names=RESEARCH_TOOL_NAMES)
STRATEGY_BUDGET = LoopBudget(
    max_iterations=8, max_tool_calls=20, tool_names=RESEARCH_TOOL_NAMES + ["screenshot"]
)


async def _run(state: PipelineState, clients, user_domain: Optional[str], on_stage_update: Optional[StageCallback], custom_tool_executors=None) -> PipelineResult:
    config = {
        "configurable": {
            "clients": clients,
            "user_domain": user_domain,
            "on_stage_update": on_stage_update,
            "custom_tool_executors": custom_tool_executors or {},
        }
    }
    final = await pipeline_graph.ainvoke(state, config=config)

    agentic = final.get("agentic_result")
    structured = final.get("structured_output")
    error = final.get("error")
    return PipelineResult(
        success=error is None,
        output=agentic.output if agentic else None,
        structured_output=structured.model_dump(exclude_none=True) if structured is not None else None,
        research_data=agentic.research_data if agentic else None,
        strategy_context=final.get("strategy_context"),
        tool_calls=agentic.tool_calls if agentic else [],
        error=error,
        events=final.get("events", []),
    )


async def generate_strategy(
    clients,
    input: RunInput,
    run_id: str,
    user_id: Optional[str] = None,
    user_history: Optional[UserHistoryContext] = None,
    prior_context: Optional[str] = None,
    on_stage_update: Optional[StageCallback] = None,
    enrich: bool = True,
) -> PipelineResult:
    """Full paid strategy: research, write, extract, enrich."""
    state: PipelineState = {
        "run_id": run_id,
        "user_id": user_id,
        "variant": "paid",
        "system_prompt": build_strategy_system_prompt(user_history, prior_context),
        "messages": [HumanMessage(content=build_strategy_user_message(input))],
        "budget": PAID_BUDGET,
        "initial_stage": "Analyzing your situation...",
        "enrich": enrich,
    }
    return await _run(state, clients, input.user_domain, on_stage_update)


async def refine_strategy(
    clients,
    input: RunInput,
    previous_output: str,
    additional_context: str,
    run_id: str,
    user_id: Optional[str] = None,
    on_stage_update: Optional[StageCallback] = None,
) -> PipelineResult:
    """Revise a previous strategy with the user's new context instead of starting over."""
    max_length = clients.settings.max_context_length
    if len(additional_context) > max_length:
        logger.info(f"[{run_id}] Truncating refinement context from {len(additional_context)} to {max_length} chars")
        additional_context = additional_context[:max_length]

    state: PipelineState = {
        "run_id": run_id,
        "user_id": user_id,
        "variant": "refine",
        "system_prompt": REFINEMENT_SYSTEM_PROMPT,
        "messages": [HumanMessage(content=build_refinement_user_message(input, previous_output, additional_context))],
        "budget": REFINE_BUDGET,
        "initial_stage": "Analyzing your feedback...",
        "enrich": False,
    }
    return await _run(state, clients, input.user_domain, on_stage_update)


async def _capture_homepage(clients, website_url: str):
    """Screenshot + page text for the free brief. Either may come back None."""
    url = website_url if website_url.startswith("http") else f"https://{website_url}"
    toolkit = clients.toolkit
    screenshot, page = await asyncio.gather(
        toolkit.capture_screenshot(url),
        toolkit.extract_page(url),
        return_exceptions=True,
    )
    if isinstance(screenshot, Exception):
        logger.warning(f"Screenshot capture failed (non-fatal): {screenshot}")
        screenshot = None
    if isinstance(page, Exception):
        logger.warning(f"Page extract failed (non-fatal): {page}")
        page = None
    return screenshot, page or None


async def generate_free_brief(
    clients,
    input: RunInput,
    run_id: str,
    email: Optional[str] = None,
    on_stage_update: Optional[StageCallback] = None,
) -> PipelineResult:
    """Free positioning preview: small budget, search + seo only, brief schema."""
    screenshot, page_content = None, None
    if input.websiteUrl and clients.toolkit is not None:
        screenshot, page_content = await _capture_homepage(clients, input.websiteUrl)

    text = build_free_brief_user_message(input, page_content)
    content: Any = text
    if screenshot:
        content = [image_block(screenshot), {"type": "text", "text": "Homepage screenshot above.\n\n" + text}]

    tool_names = list(FREE_BUDGET.tool_names)
    if clients.settings.has_screenshot_service and not screenshot:
        tool_names.append("screenshot")

    state: PipelineState = {
        "run_id": run_id,
        "variant": "free",
        "system_prompt": FREE_BRIEF_SYSTEM_PROMPT,
        "messages": [HumanMessage(content=content)],
        "budget": LoopBudget(
            max_iterations=FREE_BUDGET.max_iterations,
            max_tool_calls=FREE_BUDGET.max_tool_calls,
            tool_names=tool_names,
        ),
        "initial_stage": "Reading your homepage..." if input.websiteUrl else "Analyzing your positioning...",
        "enrich": False,
        "event_payload": {"email": email} if email else {},
    }
    return await _run(state, clients, input.user_domain, on_stage_update)


async def generate_strategy_context(
    clients,
    profile: BusinessProfile,
    month_number: int,
    run_id: str,
    user_id: Optional[str] = None,
    business_id: Optional[str] = None,
    carry_forward: Optional[CarryForward] = None,
    historical_context: Optional[str] = None,
    on_stage_update: Optional[StageCallback] = None,
) -> PipelineResult:
    """Subscription strategy: quarter focus + monthly theme, regenerated monthly."""
    tool_names: List[str] = list(STRATEGY_BUDGET.tool_names)
    custom_tool_executors: Dict[str, Any] = {}
    if clients.history is not None and user_id and business_id:
        tool_names.append(SEARCH_HISTORY_TOOL["name"])
        custom_tool_executors[SEARCH_HISTORY_TOOL["name"]] = create_search_history_executor(
            clients.history, user_id, business_id
        )

    state: PipelineState = {
        "run_id": run_id,
        "user_id": user_id,
        "variant": "strategy_context",
        "system_prompt": build_strategy_context_system_prompt(
            month_number,
            carry_forward=carry_forward,
            historical_context=historical_context,
            has_history_tool=bool(custom_tool_executors),
        ),
        "messages": [HumanMessage(content=build_strategy_context_user_message(profile))],
        "budget": LoopBudget(
            max_iterations=STRATEGY_BUDGET.max_iterations,
            max_tool_calls=STRATEGY_BUDGET.max_tool_calls,
            tool_names=tool_names,
        ),
        "initial_stage": "Researching your market...",
        "enrich": False,
        "month_number": month_number,
        "carry_forward": carry_forward,
        "event_payload": {"business_id": business_id} if business_id else {},
    }
    user_domain = None
    if profile.websiteUrl:
        user_domain = profile.websiteUrl.replace("https://", "").replace("http://", "").rstrip("/")
    return await _run(state, clients, user_domain, on_stage_update, custom_tool_executors)
