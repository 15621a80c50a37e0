import asyncio
import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, TypeAdapter, ValidationError

from app.utils.llm import message_text, strip_code_fences
from .schemas import (
    DROP_SECTION,
    FORMATTER_SYSTEM_PROMPT,
    FORMATTER_USER_PROMPT,
    FORMATTER_USER_PROMPT_WITH_RESEARCH,
    FORMATTER_VERSION,
    FREE_BRIEF_FALLBACKS,
    FREE_BRIEF_SYSTEM_PROMPT,
    FREE_BRIEF_USER_PROMPT,
    STRUCTURED_OUTPUT_FALLBACKS,
    FreeBriefOutput,
    PartialFreeBriefOutput,
    PartialStructuredOutput,
    StructuredOutput,
)
from .state import ResearchData

logger = logging.getLogger(__name__)

FORMATTER_TIMEOUT = 60.0

# Fields the model sometimes returns as a bare array instead of {"<key>": [...]}.
ARRAY_WRAPPED_FIELDS = {
    "thisWeek": "days",
    "competitiveComparison": "domains",
}

ModelT = TypeVar("ModelT", bound=BaseModel)


def format_research_for_prompt(research_data: ResearchData) -> str:
    sections = []

    if research_data.searches:
        sections.append(f"## Search Results ({len(research_data.searches)} searches performed)")
        for search in research_data.searches[:5]:
            sections.append(f'Query: "{search.query}"')
            for result in search.results[:3]:
                sections.append(f"  - {result.title}: {result.snippet[:150]}...")

    if research_data.seoMetrics:
        sections.append(f"\n## SEO Metrics ({len(research_data.seoMetrics)} domains analyzed)")
        for seo in research_data.seoMetrics:
            traffic = f"{int(seo.traffic):,}" if seo.traffic is not None else "N/A"
            keywords = f"{seo.keywords:,}" if seo.keywords is not None else "N/A"
            sections.append(f"- {seo.domain}: Traffic={traffic}, Keywords={keywords}")

    if research_data.keywordGaps:
        sections.append("\n## Keyword Gaps")
        for gap in research_data.keywordGaps:
            sections.append(f"Competitor: {gap.competitor}")
            for kw in gap.keywords[:10]:
                sections.append(f'  - "{kw.keyword}" ({kw.volume:,}/mo) - ranks #{kw.competitorRank}')

    if research_data.scrapes:
        sections.append(f"\n## Pages Analyzed ({len(research_data.scrapes)} pages)")
        for scrape in research_data.scrapes[:3]:
            sections.append(f"- {scrape.url}: {scrape.contentSummary[:100]}...")

    return "\n".join(sections)


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value if v is not None]
    return value


def normalize_extraction(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fix the known ways a model's JSON differs from the schema before validating.

    Nulls are removed (so optional fields fall back to their defaults), bare arrays
    are wrapped into their expected object, and the bookkeeping fields are set.
    """
    cleaned = _drop_nulls(data)
    for field, key in ARRAY_WRAPPED_FIELDS.items():
        if isinstance(cleaned.get(field), list):
            cleaned[field] = {key: cleaned[field]}
    cleaned.setdefault("extractedAt", datetime.now(timezone.utc).isoformat())
    cleaned["formatterVersion"] = FORMATTER_VERSION
    return cleaned


def _section_is_valid(model: Type[BaseModel], field: str, value: Any) -> bool:
    try:
        TypeAdapter(model.model_fields[field].annotation).validate_python(value)
    except ValidationError:
        return False
    return True


def validate_with_fallback(
    data: Dict[str, Any],
    model: Type[ModelT],
    partial_model: Type[BaseModel],
    fallbacks: Dict[str, Any],
) -> Optional[ModelT]:
    """Strict validation first, then a partial match.

    For the partial match, optional sections that don't validate on their own are
    dropped, and missing collections are filled from ``fallbacks``.
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[Formatter] {model.__name__} validation failed with {e.error_count()} issue(s): {e.errors()[:3]}")

    candidate = dict(data)
    dropped = [
        field
        for field, fallback in fallbacks.items()
        if fallback is DROP_SECTION and field in candidate and not _section_is_valid(model, field, candidate[field])
    ]
    for field in dropped:
        del candidate[field]

    try:
        relaxed = partial_model.model_validate(candidate)
    except ValidationError as e:
        logger.warning(f"[Formatter] {partial_model.__name__} validation failed: {e.errors()[:3]}")
        return None

    filled = relaxed.model_dump(exclude_none=True)
    missing = [field for field, fallback in fallbacks.items() if fallback is not DROP_SECTION and field not in filled]
    for field in missing:
        filled[field] = copy.deepcopy(fallbacks[field])
    filled["partial"] = True
    logger.info(
        f"[Formatter] Partial extraction successful "
        f"(defaulted: {', '.join(missing) or 'none'}; dropped: {', '.join(dropped) or 'none'})"
    )
    return model.model_validate(filled)


def validate_structured_output(data: Dict[str, Any]) -> Optional[StructuredOutput]:
    return validate_with_fallback(data, StructuredOutput, PartialStructuredOutput, STRUCTURED_OUTPUT_FALLBACKS)


def validate_free_brief_output(data: Dict[str, Any]) -> Optional[FreeBriefOutput]:
    return validate_with_fallback(data, FreeBriefOutput, PartialFreeBriefOutput, FREE_BRIEF_FALLBACKS)


def parse_extraction(text: str) -> Optional[Dict[str, Any]]:
    """Strip code fences and parse. Returns None rather than guessing at broken JSON."""
    try:
        parsed = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        logger.warning(f"[Formatter] JSON parse error: {e}")
        return None
    if not isinstance(parsed, dict):
        logger.warning(f"[Formatter] Expected a JSON object, got {type(parsed).__name__}")
        return None
    return normalize_extraction(parsed)


async def _run_extraction(llm, system_prompt: str, user_content: str, validate) -> Optional[BaseModel]:
    response = await llm.ainvoke([SystemMessage(content=system_prompt), HumanMessage(content=user_content)])
    text = message_text(response)
    if not text:
        logger.warning("[Formatter] No text content in extraction response")
        return None
    parsed = parse_extraction(text)
    if parsed is None:
        return None
    return validate(parsed)


async def _extract(llm, system_prompt: str, user_content: str, validate, timeout: float) -> Optional[BaseModel]:
    start = datetime.now(timezone.utc)
    try:
        result = await asyncio.wait_for(_run_extraction(llm, system_prompt, user_content, validate), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[Formatter] Extraction timed out after {timeout}s")
        return None
    except Exception as e:
        logger.error(f"[Formatter] Extraction failed: {e}")
        return None
    elapsed = (datetime.now(timezone.utc) - start).total_seconds()
    logger.info(f"[Formatter] Extraction finished in {elapsed:.1f}s (success={result is not None})")
    return result


def _with_research(prompt_with: str, prompt_without: str, markdown: str, research_data: Optional[ResearchData]) -> str:
    has_research = research_data is not None and not research_data.is_empty()
    logger.info(f"[Formatter] Research data received: has_research={has_research}, counts={research_data.counts() if research_data else {}}")
    if has_research:
        return prompt_with + markdown + "\n\n---\nRESEARCH DATA:\n\n" + format_research_for_prompt(research_data)
    return prompt_without + markdown


async def extract_structured_output(
    llm,
    markdown: str,
    research_data: Optional[ResearchData] = None,
    timeout: float = FORMATTER_TIMEOUT,
) -> Optional[StructuredOutput]:
    """Convert a strategy document into a StructuredOutput.

    Returns None when the model call fails, times out, returns unparseable JSON,
    or fails even the partial schema. Never raises; callers fall back to markdown.
    """
    user_content = _with_research(FORMATTER_USER_PROMPT_WITH_RESEARCH, FORMATTER_USER_PROMPT, markdown, research_data)
    return await _extract(llm, FORMATTER_SYSTEM_PROMPT, user_content, validate_structured_output, timeout)


async def extract_free_brief_output(
    llm,
    markdown: str,
    research_data: Optional[ResearchData] = None,
    timeout: float = FORMATTER_TIMEOUT,
) -> Optional[FreeBriefOutput]:
    user_content = _with_research(FREE_BRIEF_USER_PROMPT, FREE_BRIEF_USER_PROMPT, markdown, research_data)
    return await _extract(llm, FREE_BRIEF_SYSTEM_PROMPT, user_content, validate_free_brief_output, timeout)
