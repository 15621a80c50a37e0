import asyncio
import json
import logging
from typing import Dict, List, Optional, Tuple

from langchain_core.messages import HumanMessage, SystemMessage

from app.utils.llm import message_text, parse_json_response
from .schemas import DayAction, DetailedWeek, StructuredOutput

logger = logging.getLogger(__name__)

ENRICHMENT_TIMEOUT = 45.0

ENRICHMENT_SYSTEM_PROMPT = """You annotate marketing tasks that were already planned for a specific business.

For EVERY task you are given, write:
- why: 1 sentence strategic rationale connecting the task to the strategy
- how: 2-3 sentences of concrete execution steps

Keep the week and day numbers exactly as given. Do not add, drop, or rewrite tasks.

Return ONLY valid JSON matching this exact shape:
{
  "tasks": [
    { "week": 1, "day": 1, "why": "string", "how": "string" }
  ]
}"""


def _collect_tasks(output: StructuredOutput) -> List[Tuple[int, DayAction]]:
    tasks = [(1, day) for day in output.thisWeek.days]
    for week in output.weeks or []:
        if week.week == 1 and output.thisWeek.days:
            continue
        tasks.extend((week.week, day) for day in week.days)
    return tasks


def _build_user_message(tasks: List[Tuple[int, DayAction]], strategy_summary: Optional[str]) -> str:
    lines = [f"- week {week}, day {day.day}: {day.action} ({day.timeEstimate}; success: {day.successMetric})" for week, day in tasks]
    message = "## Tasks\n" + "\n".join(lines)
    if strategy_summary:
        message = f"## Strategy Summary\n{strategy_summary}\n\n" + message
    return message


def _apply(day: DayAction, annotation: Optional[Dict[str, str]]) -> DayAction:
    if not annotation:
        return day
    return day.model_copy(update={
        "why": annotation.get("why") or day.why,
        "how": annotation.get("how") or day.how,
    })


async def enrich_weekly_tasks(
    llm,
    output: StructuredOutput,
    strategy_summary: Optional[str] = None,
    timeout: float = ENRICHMENT_TIMEOUT,
) -> StructuredOutput:
    """Add a why/how to each planned task. Any failure returns ``output`` unchanged."""
    tasks = _collect_tasks(output)
    if not tasks:
        return output

    messages = [
        SystemMessage(content=ENRICHMENT_SYSTEM_PROMPT),
        HumanMessage(content=_build_user_message(tasks, strategy_summary)),
    ]
    try:
        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
        parsed = parse_json_response(message_text(response))
        annotations: Dict[Tuple[int, int], Dict[str, str]] = {}
        for item in parsed.get("tasks", []):
            annotations[(int(item["week"]), int(item["day"]))] = {
                "why": str(item.get("why") or ""),
                "how": str(item.get("how") or ""),
            }
    except asyncio.TimeoutError:
        logger.warning(f"[Enrichment] Timed out after {timeout}s, keeping original tasks")
        return output
    except (ValueError, KeyError, TypeError, AttributeError, json.JSONDecodeError) as e:
        logger.warning(f"[Enrichment] Could not parse annotations: {e}")
        return output
    except Exception as e:
        logger.error(f"[Enrichment] Failed: {e}")
        return output

    this_week_days = [_apply(day, annotations.get((1, day.day))) for day in output.thisWeek.days]
    weeks = None
    if output.weeks is not None:
        weeks = [
            DetailedWeek(
                week=week.week,
                theme=week.theme,
                days=[_apply(day, annotations.get((week.week, day.day))) for day in week.days],
            )
            for week in output.weeks
        ]

    matched = sum(1 for week, day in tasks if (week, day.day) in annotations)
    logger.info(f"[Enrichment] Annotated {matched}/{len(tasks)} tasks")
    return output.model_copy(update={
        "thisWeek": output.thisWeek.model_copy(update={"days": this_week_days}),
        "weeks": weeks,
    })
