import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from langchain_core.messages import HumanMessage
from pydantic import ValidationError

from app.utils.llm import message_text, parse_json_response
from .prompts import STRATEGY_CONTEXT_EXTRACTION_PROMPT
from .state import CarryForward, MonthlyTheme, QuarterFocus, StrategyContext

logger = logging.getLogger(__name__)


async def extract_strategy_context(
    llm,
    raw_strategy: str,
    month_number: int,
    carry_forward: Optional[CarryForward] = None,
    timeout: float = 60.0,
) -> StrategyContext:
    """Pull the quarter focus and monthly theme out of a strategy document.

    Raises ValueError when the model's reply has no usable JSON or the JSON
    doesn't match the StrategyContext shape.
    """
    prompt = STRATEGY_CONTEXT_EXTRACTION_PROMPT.format(raw_strategy=raw_strategy)
    response = await asyncio.wait_for(llm.ainvoke([HumanMessage(content=prompt)]), timeout=timeout)
    parsed = parse_json_response(message_text(response))
    if not isinstance(parsed, dict):
        raise ValueError("Strategy context extraction did not return a JSON object")

    try:
        quarter_focus = QuarterFocus.model_validate(parsed.get("quarterFocus") or {})
        monthly_theme = MonthlyTheme.model_validate({
            **(parsed.get("monthlyTheme") or {}),
            "carryForward": carry_forward.model_dump() if carry_forward else None,
        })
    except ValidationError as e:
        raise ValueError(f"Strategy context has an invalid shape: {e.errors()[:3]}") from e

    logger.info(f"Extracted strategy context: lever={quarter_focus.growthLever}, theme={monthly_theme.theme!r}")
    return StrategyContext(
        quarterFocus=quarter_focus,
        monthlyTheme=monthly_theme,
        rawStrategy=raw_strategy,
        researchSummary=parsed.get("researchSummary"),
        generatedAt=datetime.now(timezone.utc).isoformat(),
        monthNumber=month_number,
    )
