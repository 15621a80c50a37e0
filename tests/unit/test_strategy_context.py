import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from langchain_core.messages import AIMessage

from strategy_agent.prompts import build_strategy_context_system_prompt, build_strategy_context_user_message
from strategy_agent.state import BusinessGoals, BusinessProfile, CarryForward, IdealCustomer
from strategy_agent.strategy_context import extract_strategy_context

EXTRACTED = {
    "quarterFocus": {
        "primaryObjective": "Reach 200 paying customers",
        "growthLever": "content",
        "channelStrategy": {"primary": "SEO", "secondary": "Reddit"},
        "successMetric": {"metric": "paying customers", "current": 80, "target": 200},
        "strategicRationale": "Competitors ignore long-tail search.",
    },
    "monthlyTheme": {"theme": "Foundation content", "focusArea": "acquisition", "milestone": "10 guides live"},
    "researchSummary": "Three competitors, none rank for setup guides.",
}


def _llm(text):
    llm = MagicMock()
    llm.ainvoke = AsyncMock(return_value=AIMessage(content=text))
    return llm


@pytest.mark.asyncio
async def test_extracts_context_and_attaches_carry_forward():
    carry = CarryForward(worked=["Reddit AMA"], didntWork=["Cold email"], learnings=["Founders reply to DMs"])
    llm = _llm("Here you go:\n```json\n" + json.dumps(EXTRACTED) + "\n```")

    context = await extract_strategy_context(llm, "# Strategy doc", 3, carry_forward=carry)

    assert context.quarterFocus.growthLever == "content"
    assert context.quarterFocus.channelStrategy.secondary == "Reddit"
    assert context.monthlyTheme.carryForward == carry
    assert context.monthNumber == 3
    assert context.rawStrategy == "# Strategy doc"
    assert context.researchSummary.startswith("Three competitors")
    assert "# Strategy doc" in llm.ainvoke.call_args.args[0][0].content


@pytest.mark.asyncio
async def test_unparseable_reply_raises_value_error():
    with pytest.raises(ValueError):
        await extract_strategy_context(_llm("no json here"), "# Strategy", 1)


@pytest.mark.asyncio
async def test_wrong_shape_raises_value_error():
    bad = {"quarterFocus": {"primaryObjective": "Grow"}, "monthlyTheme": {"theme": "x"}}
    with pytest.raises(ValueError, match="invalid shape"):
        await extract_strategy_context(_llm(json.dumps(bad)), "# Strategy", 1)


def test_system_prompt_includes_carry_forward_and_history_hint():
    carry = CarryForward(worked=["Reddit AMA"], didntWork=["Cold email"])

    prompt = build_strategy_context_system_prompt(2, carry_forward=carry, has_history_tool=True)

    assert "Reddit AMA" in prompt
    assert "Cold email" in prompt
    assert "search_history" in prompt


def test_system_prompt_without_extras():
    prompt = build_strategy_context_system_prompt(1)
    assert "search_history" not in prompt
    assert "{month_number}" not in prompt


def test_user_message_renders_profile():
    profile = BusinessProfile(
        description="Scheduling tool for dog groomers",
        industry="Pet services",
        websiteUrl="https://groomly.app",
        icp=IdealCustomer(who="Independent groomers", problem="No-shows"),
        competitors=["MoeGo"],
        goals=BusinessGoals(primary="100 paying salons", timeline="6 months"),
    )

    message = build_strategy_context_user_message(profile)

    assert "Scheduling tool for dog groomers" in message
    assert "Independent groomers" in message
    assert "MoeGo" in message
    assert "100 paying salons" in message
