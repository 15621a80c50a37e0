"""Schemas the formatter extracts into, plus the extraction prompts.

Each document type has a strict model and a relaxed "partial" model, both driven
by one ``*_FALLBACKS`` table. Collections in the table are made optional on the
partial model and filled with their default after a partial match. Sections whose
fallback is ``DROP_SECTION`` are already optional and are removed when they fail
to validate on their own.
"""

from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field, create_model

FORMATTER_VERSION = "1.0"

# Fallback for optional sections: removed from a partial extraction if invalid.
DROP_SECTION = None


# --- Strategy document ---


class DayAction(BaseModel):
    day: int = Field(..., ge=1, le=7)
    action: str
    timeEstimate: str
    successMetric: str
    why: Optional[str] = None
    how: Optional[str] = None


class ThisWeek(BaseModel):
    days: List[DayAction] = []
    totalHours: Optional[float] = None


class IceComponent(BaseModel):
    score: float = Field(..., ge=0, le=10)
    reason: str


class PriorityItem(BaseModel):
    rank: int = Field(..., ge=1)
    title: str
    iceScore: float = Field(..., ge=0, le=30)
    impact: IceComponent
    confidence: IceComponent
    ease: IceComponent
    description: str


class MetricItem(BaseModel):
    name: str
    target: str
    # AARRR stage: acquisition, activation, retention, referral, revenue, or custom
    category: str


class CompetitorItem(BaseModel):
    name: str
    traffic: str = ""
    trafficNumber: Optional[float] = None
    positioning: str


class RoadmapWeek(BaseModel):
    week: int = Field(..., ge=1, le=4)
    theme: str
    tasks: List[str] = []


class DetailedWeek(BaseModel):
    week: int = Field(..., ge=1)
    theme: str
    days: List[DayAction] = []


class Positioning(BaseModel):
    summary: str
    uniqueValue: Optional[str] = None
    targetSegment: Optional[str] = None
    differentiators: List[str] = []


class ResearchSnapshot(BaseModel):
    searchesRun: int = 0
    pagesAnalyzed: int = 0
    domainsAnalyzed: int = 0
    keywordGapsFound: int = 0


class ComparisonDomain(BaseModel):
    domain: str
    traffic: Optional[float] = None
    keywords: Optional[int] = None
    isUser: bool = False


class CompetitiveComparison(BaseModel):
    domains: List[ComparisonDomain] = []
    insight: Optional[str] = None


class KeywordOpportunity(BaseModel):
    keyword: str
    volume: int = 0
    competitor: str
    competitorRank: Optional[int] = None


class MarketQuote(BaseModel):
    quote: str
    source: str
    url: Optional[str] = None
    sentiment: Optional[Literal["positive", "negative", "neutral"]] = None


class StructuredOutput(BaseModel):
    thisWeek: ThisWeek
    topPriorities: List[PriorityItem]
    metrics: List[MetricItem]
    competitors: List[CompetitorItem]
    currentWeek: int = Field(1, ge=1, le=4)
    roadmapWeeks: List[RoadmapWeek]
    weeks: Optional[List[DetailedWeek]] = None
    positioning: Optional[Positioning] = None
    researchSnapshot: Optional[ResearchSnapshot] = None
    competitiveComparison: Optional[CompetitiveComparison] = None
    keywordOpportunities: Optional[List[KeywordOpportunity]] = None
    marketQuotes: Optional[List[MarketQuote]] = None
    extractedAt: str
    formatterVersion: Literal["1.0"]
    partial: bool = False


# How a partial extraction recovers each section: a fill-in value, or DROP_SECTION.
STRUCTURED_OUTPUT_FALLBACKS: Dict[str, Any] = {
    "thisWeek": {"days": []},
    "topPriorities": [],
    "metrics": [],
    "competitors": [],
    "roadmapWeeks": [],
    "weeks": DROP_SECTION,
    "positioning": DROP_SECTION,
    "researchSnapshot": DROP_SECTION,
    "competitiveComparison": DROP_SECTION,
    "keywordOpportunities": DROP_SECTION,
    "marketQuotes": DROP_SECTION,
}


# --- Free positioning brief ---


class BriefPositioning(BaseModel):
    summary: str
    verdict: Literal["clear", "needs-work", "unclear"]
    uniqueValue: Optional[str] = None
    targetSegment: Optional[str] = None


class BriefScores(BaseModel):
    overall: int = Field(..., ge=0, le=100)
    clarity: int = Field(..., ge=0, le=100)
    differentiation: int = Field(..., ge=0, le=100)
    customerFocus: int = Field(..., ge=0, le=100)
    proof: int = Field(..., ge=0, le=100)


class ThreeSecondTest(BaseModel):
    whatItIs: str
    whoItsFor: Optional[str] = None
    whyItsBetter: Optional[str] = None
    passes: bool = False


class Discovery(BaseModel):
    title: str
    content: str
    source: str = ""
    significance: str = ""


class FreeBriefOutput(BaseModel):
    positioning: BriefPositioning
    briefScores: Optional[BriefScores] = None
    threeSecondTest: Optional[ThreeSecondTest] = None
    positioningGap: Optional[str] = None
    discoveries: List[Discovery]
    quickWins: List[str]
    competitors: List[CompetitorItem]
    extractedAt: str
    formatterVersion: Literal["1.0"]
    partial: bool = False


FREE_BRIEF_FALLBACKS: Dict[str, Any] = {
    "discoveries": [],
    "quickWins": [],
    "competitors": [],
    "briefScores": DROP_SECTION,
    "threeSecondTest": DROP_SECTION,
    "positioningGap": DROP_SECTION,
}


def relaxed_model(model: Type[BaseModel], fallbacks: Dict[str, Any]) -> Type[BaseModel]:
    """Subclass ``model`` with the defaulted collections made optional (default None)."""
    overrides = {
        name: (Optional[model.model_fields[name].annotation], None)
        for name, fallback in fallbacks.items()
        if fallback is not DROP_SECTION
    }
    return create_model(f"Partial{model.__name__}", __base__=model, **overrides)


PartialStructuredOutput = relaxed_model(StructuredOutput, STRUCTURED_OUTPUT_FALLBACKS)
PartialFreeBriefOutput = relaxed_model(FreeBriefOutput, FREE_BRIEF_FALLBACKS)


# --- Extraction prompts ---

FORMATTER_SYSTEM_PROMPT = """You are a precise data extractor. Your job is to parse markdown strategy documents and extract structured JSON data.

IMPORTANT RULES:
1. Extract ONLY data that is explicitly present in the markdown
2. Do not invent or hallucinate any information
3. If a section is missing or empty, use an empty array []
4. For traffic numbers, parse things like "50K" as 50000, "1.2M" as 1200000
5. Return ONLY valid JSON - no markdown, no explanation, no code blocks
6. Extract ALL weeks from the 30-Day Roadmap (typically 4 weeks) - do not stop at week 1
7. Extract ALL days from the This Week table (typically 7 days)
8. Extract ALL priorities from Start Doing section (typically 5-8 items)
9. "thisWeek" is an OBJECT with a "days" array, never a bare array

COMPETITOR EXTRACTION RULES:
- "traffic" field is ONLY for numeric monthly visitor counts (e.g., "50K/mo", "1.2M/mo")
- "trafficNumber" is the parsed numeric value (50000, 1200000)
- If NO numeric traffic data exists, set traffic to "" (empty string) and omit trafficNumber
- NEVER put positioning/strategy text in the traffic field
- "positioning" field is for qualitative info: market position, pricing, differentiators, strategy

OUTPUT FORMAT:
{
  "thisWeek": {
    "days": [
      { "day": 1, "action": "...", "timeEstimate": "2 hrs", "successMetric": "..." },
      { "day": 2, "action": "...", "timeEstimate": "1 hr", "successMetric": "..." }
    ],
    "totalHours": 10
  },
  "topPriorities": [
    {
      "rank": 1,
      "title": "...",
      "iceScore": 26,
      "impact": { "score": 9, "reason": "..." },
      "confidence": { "score": 8, "reason": "..." },
      "ease": { "score": 9, "reason": "..." },
      "description": "..."
    }
  ],
  "metrics": [
    { "name": "...", "target": "...", "category": "acquisition" }
  ],
  "competitors": [
    { "name": "Acme Corp", "traffic": "50K/mo", "trafficNumber": 50000, "positioning": "Premium pricing, enterprise focus" },
    { "name": "Budget Co", "traffic": "", "positioning": "Low-cost leader, mass market appeal" }
  ],
  "currentWeek": 1,
  "roadmapWeeks": [
    { "week": 1, "theme": "Foundation", "tasks": ["Task 1", "Task 2", "Task 3"] },
    { "week": 2, "theme": "Scale", "tasks": ["Task 1", "Task 2"] }
  ],
  "positioning": { "summary": "...", "uniqueValue": "...", "targetSegment": "...", "differentiators": ["..."] },
  "extractedAt": "2024-01-22T12:00:00Z",
  "formatterVersion": "1.0"
}"""

FORMATTER_USER_PROMPT = """Extract structured data from this strategy document. Return ONLY the JSON object, no other text.

---
STRATEGY DOCUMENT:

"""

FORMATTER_USER_PROMPT_WITH_RESEARCH = """Extract structured data from this strategy document. Return ONLY the JSON object, no other text.

Research data gathered while writing the strategy is included after the document. Use it to ALSO fill these fields:
- "researchSnapshot": { "searchesRun", "pagesAnalyzed", "domainsAnalyzed", "keywordGapsFound" } counted from the research data
- "competitiveComparison": { "domains": [{ "domain", "traffic", "keywords", "isUser" }], "insight": "one sentence" } from the SEO metrics
- "keywordOpportunities": [{ "keyword", "volume", "competitor", "competitorRank" }] from the keyword gaps (max 10, highest volume first)
- "marketQuotes": [{ "quote", "source", "url", "sentiment" }] real quotes from search results or the document (max 5; sentiment is positive, negative or neutral)
Omit any of these fields if the research data has nothing for it.

---
STRATEGY DOCUMENT:

"""

FREE_BRIEF_SYSTEM_PROMPT = """You are a precise data extractor. Parse a markdown positioning preview and return structured JSON.

IMPORTANT RULES:
1. Extract ONLY what the preview states; do not invent facts
2. Return ONLY valid JSON - no markdown, no explanation, no code blocks
3. "verdict" must be one of: "clear", "needs-work", "unclear"
4. Scores are integers 0-100; judge them from the assessment text
5. Missing lists are empty arrays []

OUTPUT FORMAT:
{
  "positioning": { "summary": "...", "verdict": "needs-work", "uniqueValue": "...", "targetSegment": "..." },
  "briefScores": { "overall": 62, "clarity": 70, "differentiation": 55, "customerFocus": 65, "proof": 40 },
  "threeSecondTest": { "whatItIs": "...", "whoItsFor": "...", "whyItsBetter": "...", "passes": false },
  "positioningGap": "one sentence on the biggest gap",
  "discoveries": [ { "title": "...", "content": "...", "source": "...", "significance": "..." } ],
  "quickWins": ["..."],
  "competitors": [ { "name": "...", "traffic": "", "positioning": "..." } ],
  "extractedAt": "2024-01-22T12:00:00Z",
  "formatterVersion": "1.0"
}"""

FREE_BRIEF_USER_PROMPT = """Extract structured data from this positioning preview. Return ONLY the JSON object, no other text.

---
POSITIONING PREVIEW:

"""
