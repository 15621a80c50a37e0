from dataclasses import dataclass, field
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Optional, TypedDict, Union

from pydantic import BaseModel, ConfigDict, Field

StageCallback = Callable[[str], Awaitable[None]]

FocusArea = Literal["acquisition", "activation", "retention", "referral", "monetization", "custom"]

FOCUS_AREA_LABELS: Dict[str, str] = {
    "acquisition": 'Acquisition - "How do I get more users?"',
    "activation": 'Activation - "Users sign up but don\'t stick"',
    "retention": 'Retention - "Users leave after a few weeks"',
    "referral": 'Referral - "How do I get users to spread the word?"',
    "monetization": 'Monetization - "I have users but no revenue"',
    "custom": "Custom focus area",
}


# --- Inputs ---


class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    content: str = ""


class RunInput(BaseModel):
    """Business context collected by the form. Frozen once a generation starts."""

    model_config = ConfigDict(frozen=True)

    productDescription: str = Field(..., min_length=1)
    currentTraction: str = ""
    focusArea: FocusArea = "acquisition"
    customFocusArea: Optional[str] = None
    alternatives: List[str] = []
    competitorUrls: List[str] = []
    websiteUrl: Optional[str] = None
    analyticsSummary: Optional[str] = None
    constraints: Optional[str] = None
    tacticsAndResults: Optional[str] = None
    attachments: List[Attachment] = []

    @property
    def focus_label(self) -> str:
        if self.focusArea == "custom" and self.customFocusArea:
            return f"Custom: {self.customFocusArea}"
        return self.focusArea.capitalize()

    @property
    def user_domain(self) -> Optional[str]:
        if not self.websiteUrl:
            return None
        domain = self.websiteUrl.strip()
        for prefix in ("https://", "http://"):
            if domain.startswith(prefix):
                domain = domain[len(prefix):]
        return domain.rstrip("/") or None


class TractionNote(BaseModel):
    date: str
    summary: str


class UserHistoryContext(BaseModel):
    """What we know about a returning user from previous runs."""

    totalRuns: int = 0
    previousTraction: List[TractionNote] = []
    tacticsTried: List[str] = []
    pastRecommendations: List[str] = []
    pastInsights: List[str] = []


class IdealCustomer(BaseModel):
    who: str = ""
    problem: str = ""
    alternatives: str = ""


class BusinessGoals(BaseModel):
    primary: str = ""
    timeline: str = ""
    budget: str = ""


class BrandVoice(BaseModel):
    tone: str = ""
    dos: List[str] = []
    donts: List[str] = []


class BusinessProfile(BaseModel):
    description: str = ""
    industry: Optional[str] = None
    websiteUrl: Optional[str] = None
    icp: Optional[IdealCustomer] = None
    competitors: List[str] = []
    triedBefore: Optional[str] = None
    goals: Optional[BusinessGoals] = None
    voice: Optional[BrandVoice] = None


# --- Research data ---


class SearchHit(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    score: Optional[float] = None


class SearchRecord(BaseModel):
    type: Literal["search"] = "search"
    query: str
    results: List[SearchHit] = []


class ScrapeRecord(BaseModel):
    type: Literal["scrape"] = "scrape"
    url: str
    contentSummary: str


class TopPositions(BaseModel):
    pos1: int = 0
    pos2_3: int = 0
    pos4_10: int = 0


class SeoRecord(BaseModel):
    type: Literal["seo"] = "seo"
    domain: str
    traffic: Optional[float] = None
    keywords: Optional[int] = None
    topPositions: Optional[TopPositions] = None
    error: Optional[str] = None


class GapKeyword(BaseModel):
    keyword: str
    volume: int = 0
    competitorRank: int = 0


class KeywordGapRecord(BaseModel):
    type: Literal["keyword_gaps"] = "keyword_gaps"
    competitor: str
    keywords: List[GapKeyword] = []


class ScreenshotRecord(BaseModel):
    type: Literal["screenshot"] = "screenshot"
    url: str


ResearchItem = Annotated[
    Union[SearchRecord, ScrapeRecord, SeoRecord, KeywordGapRecord, ScreenshotRecord],
    Field(discriminator="type"),
]


class ResearchData(BaseModel):
    """Append-only record of what the research tools returned during one run."""

    searches: List[SearchRecord] = []
    scrapes: List[ScrapeRecord] = []
    seoMetrics: List[SeoRecord] = []
    keywordGaps: List[KeywordGapRecord] = []
    screenshots: List[ScreenshotRecord] = []

    def record(self, item: ResearchItem) -> None:
        if isinstance(item, SearchRecord):
            self.searches.append(item)
        elif isinstance(item, ScrapeRecord):
            self.scrapes.append(item)
        elif isinstance(item, SeoRecord):
            self.seoMetrics.append(item)
        elif isinstance(item, KeywordGapRecord):
            self.keywordGaps.append(item)
        elif isinstance(item, ScreenshotRecord):
            self.screenshots.append(item)
        else:
            raise TypeError(f"Unknown research item: {type(item).__name__}")

    def is_empty(self) -> bool:
        # Screenshots carry no text the formatter can use.
        return not (self.searches or self.scrapes or self.seoMetrics or self.keywordGaps)

    def counts(self) -> Dict[str, int]:
        return {
            "searches": len(self.searches),
            "scrapes": len(self.scrapes),
            "seoMetrics": len(self.seoMetrics),
            "keywordGaps": len(self.keywordGaps),
            "screenshots": len(self.screenshots),
        }


@dataclass
class ToolResult:
    """What a tool executor hands back to the loop.

    ``text`` goes to the model; ``data`` is accumulated into ResearchData;
    ``image`` is an optional base64 image content block for vision models.
    """

    text: str
    data: Optional[BaseModel] = None
    image: Optional[Dict[str, Any]] = None


# --- Loop outcome ---


StopReason = Literal["completed", "tool_budget", "iteration_budget", "error"]


class Timing(BaseModel):
    total: int = 0
    tools: int = 0
    generation: int = 0


class AgenticResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    output: Optional[str] = None
    research_data: ResearchData = Field(default_factory=ResearchData)
    tool_calls: List[str] = []
    iterations: int = 0
    timing: Timing = Field(default_factory=Timing)
    stopped_reason: StopReason = "completed"
    error: Optional[str] = None

    @property
    def tool_call_count(self) -> int:
        return len(self.tool_calls)


# --- Subscription strategy context ---


class CarryForward(BaseModel):
    worked: List[str] = []
    didntWork: List[str] = []
    learnings: List[str] = []


class ChannelStrategy(BaseModel):
    primary: str
    secondary: Optional[str] = None


class SuccessMetric(BaseModel):
    metric: str
    current: Optional[float] = None
    target: Optional[float] = None


class QuarterFocus(BaseModel):
    model_config = ConfigDict(frozen=True)

    primaryObjective: str
    growthLever: str
    channelStrategy: ChannelStrategy
    successMetric: SuccessMetric
    strategicRationale: str = ""


class MonthlyTheme(BaseModel):
    model_config = ConfigDict(frozen=True)

    theme: str
    focusArea: str = ""
    milestone: str = ""
    carryForward: Optional[CarryForward] = None


class StrategyContext(BaseModel):
    """Quarter objective + monthly theme. Regenerated monthly, never edited in place."""

    model_config = ConfigDict(frozen=True)

    quarterFocus: QuarterFocus
    monthlyTheme: MonthlyTheme
    rawStrategy: str
    researchSummary: Optional[str] = None
    generatedAt: str
    monthNumber: int = 1


# --- Pipeline plumbing ---


EventName = Literal[
    "run_completed",
    "run_failed",
    "send_run_ready_email",
    "send_run_failed_email",
    "accumulate_context",
    "send_free_brief_email",
    "strategy_context_ready",
]


class PipelineEvent(BaseModel):
    """A side effect the caller should perform once a pipeline finishes."""

    name: EventName
    payload: Dict[str, Any] = {}


class PipelineResult(BaseModel):
    success: bool
    output: Optional[str] = None
    structured_output: Optional[Dict[str, Any]] = None
    research_data: Optional[ResearchData] = None
    strategy_context: Optional[StrategyContext] = None
    tool_calls: List[str] = []
    error: Optional[str] = None
    events: List[PipelineEvent] = []


@dataclass
class LoopBudget:
    """Per-pipeline limits for one agentic run, and which tools it may call."""

    max_iterations: int = 10
    max_tool_calls: int = 25
    max_parallel_tools: int = 5
    tool_names: List[str] = field(default_factory=list)


PipelineVariant = Literal["paid", "free", "refine", "strategy_context"]


class PipelineState(TypedDict, total=False):
    run_id: str
    user_id: Optional[str]
    variant: PipelineVariant
    system_prompt: str
    messages: List[Any]
    budget: LoopBudget
    initial_stage: Optional[str]
    enrich: bool
    month_number: int
    carry_forward: Optional[CarryForward]
    event_payload: Dict[str, Any]

    agentic_result: Optional[AgenticResult]
    # StructuredOutput or FreeBriefOutput model
    structured_output: Optional[BaseModel]
    strategy_context: Optional[StrategyContext]
    events: List[PipelineEvent]
    error: Optional[str]
