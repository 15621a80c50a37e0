from strategy_agent.prompts import (
    build_free_brief_user_message,
    build_refinement_user_message,
    build_strategy_system_prompt,
    build_strategy_user_message,
)
from strategy_agent.state import Attachment, RunInput, TractionNote, UserHistoryContext


def _input(**overrides):
    fields = {
        "productDescription": "Habit tracker for adults with ADHD",
        "currentTraction": "120 signups, 8 paying",
        "focusArea": "acquisition",
    }
    fields.update(overrides)
    return RunInput(**fields)


def test_first_time_user_gets_no_history_section():
    prompt = build_strategy_system_prompt(UserHistoryContext(totalRuns=0))
    assert "Returning User" not in prompt
    assert "{history_section}" not in prompt


def test_returning_user_history_is_rendered():
    history = UserHistoryContext(
        totalRuns=2,
        previousTraction=[TractionNote(date="2025-02-01", summary="80 signups")],
        tacticsTried=["Reddit posts", "Cold email"],
        pastRecommendations=["Launch on ProductHunt"],
    )

    prompt = build_strategy_system_prompt(history, prior_context="Verdict: needs work")

    assert "strategy number 3" in prompt
    assert "- 2025-02-01: 80 signups" in prompt
    assert "Reddit posts; Cold email" in prompt
    assert "Launch on ProductHunt" in prompt
    assert "Verdict: needs work" in prompt


def test_user_message_includes_optional_sections_and_attachments():
    message = build_strategy_user_message(_input(
        focusArea="custom",
        customFocusArea="Win back churned users",
        websiteUrl="https://focusly.app",
        competitorUrls=["https://habitica.com"],
        attachments=[Attachment(name="survey.csv", content="q1,q2")],
    ))

    assert "**Custom: Win back churned users**" in message
    assert "## My Website\nhttps://focusly.app" in message
    assert "https://habitica.com" in message
    assert "### survey.csv\nq1,q2" in message
    assert "Not specified" in message


def test_refinement_message_puts_feedback_before_previous_strategy():
    message = build_refinement_user_message(_input(), "# Old strategy", "Focus on B2B instead")
    assert message.index("Focus on B2B instead") < message.index("# Old strategy")
    assert "### Focus Area" in message


def test_free_brief_message_truncates_page_content():
    message = build_free_brief_user_message(_input(websiteUrl="focusly.app"), page_content="x" * 5000)
    assert message.endswith("[Content truncated]")
    assert "Website: focusly.app" in message


def test_run_input_derives_user_domain():
    assert _input(websiteUrl="https://focusly.app/").user_domain == "focusly.app"
    assert _input().user_domain is None
    assert _input().focus_label == "Acquisition"
