import asyncio
import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from langchain_core.messages import AIMessage

from strategy_agent.enrichment import enrich_weekly_tasks
from strategy_agent.formatter import normalize_extraction, validate_structured_output


def _day(day, action):
    return {"day": day, "action": action, "timeEstimate": "1h", "successMetric": "done"}


def _output(with_weeks=True):
    data = {
        "thisWeek": {"days": [_day(1, "Post on Reddit"), _day(2, "Email 10 users")]},
        "topPriorities": [],
        "metrics": [],
        "competitors": [],
        "roadmapWeeks": [],
    }
    if with_weeks:
        data["weeks"] = [
            {"week": 1, "theme": "Validate", "days": [_day(1, "Post on Reddit"), _day(2, "Email 10 users")]},
            {"week": 2, "theme": "Expand", "days": [_day(1, "Write a guide")]},
        ]
    return validate_structured_output(normalize_extraction(data))


def _llm(payload):
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content=payload if isinstance(payload, str) else json.dumps(payload)))
    return llm


@pytest.mark.asyncio
async def test_annotations_are_matched_by_week_and_day():
    llm = _llm({"tasks": [
        {"week": 1, "day": 1, "why": "Users gather there", "how": "Share the founder story"},
        {"week": 1, "day": 2, "why": "Direct feedback", "how": "Use the signup list"},
        {"week": 2, "day": 1, "why": "Search traffic", "how": "Target one keyword"},
    ]})

    enriched = await enrich_weekly_tasks(llm, _output(), strategy_summary="Reddit-first launch")

    assert enriched.thisWeek.days[0].why == "Users gather there"
    assert enriched.thisWeek.days[1].how == "Use the signup list"
    assert enriched.weeks[1].days[0].why == "Search traffic"
    assert enriched.weeks[0].days[0].why == "Users gather there"
    assert enriched.topPriorities == []

    prompt = llm.ainvoke.call_args.args[0][1].content
    assert "Reddit-first launch" in prompt
    # Week 1 is taken from thisWeek only, so its tasks are not listed twice.
    assert prompt.count("Post on Reddit") == 1


@pytest.mark.asyncio
async def test_unmatched_tasks_keep_original_fields():
    llm = _llm({"tasks": [{"week": 1, "day": 1, "why": "Because", "how": "Like this"}]})

    enriched = await enrich_weekly_tasks(llm, _output(with_weeks=False))

    assert enriched.thisWeek.days[0].why == "Because"
    assert enriched.thisWeek.days[1].why is None
    assert enriched.weeks is None


@pytest.mark.asyncio
async def test_garbage_response_returns_original():
    original = _output()
    enriched = await enrich_weekly_tasks(_llm("I could not do that."), original)
    assert enriched is original


@pytest.mark.asyncio
async def test_model_error_returns_original():
    original = _output()
    llm = MagicMock()
    llm.ainvoke = AsyncMock(side_effect=RuntimeError("boom"))
    assert await enrich_weekly_tasks(llm, original) is original


@pytest.mark.asyncio
async def test_timeout_returns_original():
    original = _output()

    async def slow(messages):
        await asyncio.sleep(5)

    llm = MagicMock()
    llm.ainvoke = slow
    assert await enrich_weekly_tasks(llm, original, timeout=0.05) is original


@pytest.mark.asyncio
async def test_no_tasks_skips_model_call():
    empty = validate_structured_output(normalize_extraction({
        "thisWeek": {"days": []}, "topPriorities": [], "metrics": [], "competitors": [], "roadmapWeeks": [],
    }))
    llm = _llm({"tasks": []})

    assert await enrich_weekly_tasks(llm, empty) is empty
    llm.ainvoke.assert_not_called()
