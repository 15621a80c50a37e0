"""Research tool executors: web search, scraping, SEO metrics, keyword gaps, screenshots.

Every executor returns a ToolResult; failures come back as descriptive text so the
agentic loop can hand them to the model instead of aborting the run.
"""

import asyncio
import base64
import ipaddress
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from app.core.config import Settings
from strategy_agent.state import (
    GapKeyword,
    KeywordGapRecord,
    ScrapeRecord,
    ScreenshotRecord,
    SearchHit,
    SearchRecord,
    SeoRecord,
    ToolResult,
    TopPositions,
)

logger = logging.getLogger(__name__)

TAVILY_BASE_URL = "https://api.tavily.com"
SCRAPINGDOG_URL = "https://api.scrapingdog.com/scrape"
DATAFORSEO_BASE_URL = "https://api.dataforseo.com/v3/dataforseo_labs/google"

MAX_QUERY_LENGTH = 500
MAX_SCRAPE_CHARS = 5000
MAX_SCREENSHOT_BYTES = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

URL_NOT_ALLOWED = "Error: URL not allowed (must be public http/https URL)"

# --- Tool definitions (Anthropic tool format; bind_tools converts for other providers) ---

SEARCH_TOOL = {
    "name": "search",
    "description": """Web search. Search ANYWHERE on the web for market intelligence, discussions, reviews, trends, news.

Use site: prefix to target specific sources:
- Communities: reddit.com, news.ycombinator.com, quora.com, indiehackers.com
- Reviews: g2.com, capterra.com, trustpilot.com, producthunt.com
- Marketplaces: etsy.com, amazon.com, gumroad.com, appsumo.com
- News/Blogs: techcrunch.com, medium.com, substack.com

Or search without site: for broad results, e.g. "[product] alternatives", "[competitor] pricing".""",
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Search query. Use site: prefix to target specific sources, or search broadly.",
            },
        },
        "required": ["query"],
    },
}

SCRAPE_TOOL = {
    "name": "scrape",
    "description": "Scrape full content from any URL. Use when search results show a promising page and you need more detail.",
    "input_schema": {
        "type": "object",
        "properties": {"url": {"type": "string", "description": "Full URL to scrape"}},
        "required": ["url"],
    },
}

SEO_TOOL = {
    "name": "seo",
    "description": "Get SEO metrics for any domain: estimated organic traffic, keyword count, ranking positions.",
    "input_schema": {
        "type": "object",
        "properties": {"domain": {"type": "string", "description": 'Domain to analyze (e.g., "competitor.com")'}},
        "required": ["domain"],
    },
}

KEYWORD_GAPS_TOOL = {
    "name": "keyword_gaps",
    "description": "Find keywords a competitor ranks for that the user doesn't. Only works if the user provided their website URL.",
    "input_schema": {
        "type": "object",
        "properties": {
            "competitor_domain": {"type": "string", "description": "Competitor domain to compare against"},
        },
        "required": ["competitor_domain"],
    },
}

SCREENSHOT_TOOL = {
    "name": "screenshot",
    "description": "Screenshot a homepage to see what visitors actually see: layout, above-the-fold copy, trust signals, CTAs.",
    "input_schema": {
        "type": "object",
        "properties": {"url": {"type": "string", "description": 'Full URL to screenshot (e.g., "https://example.com")'}},
        "required": ["url"],
    },
}

RESEARCH_TOOLS: Dict[str, Dict[str, Any]] = {
    tool["name"]: tool
    for tool in (SEARCH_TOOL, SCRAPE_TOOL, SEO_TOOL, KEYWORD_GAPS_TOOL, SCREENSHOT_TOOL)
}


def get_tool_definitions(names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    if names is None:
        return list(RESEARCH_TOOLS.values())
    return [RESEARCH_TOOLS[name] for name in names]


# --- Input sanitising ---

_BLOCKED_HOST_SUFFIXES = (".local", ".internal", ".localhost")


def is_allowed_url(url: str) -> bool:
    """Only public http(s) URLs may be fetched on the model's behalf."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    hostname = (parsed.hostname or "").lower()
    if not hostname or hostname == "localhost" or hostname.endswith(_BLOCKED_HOST_SUFFIXES):
        return False
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return True
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )


def sanitize_domain(domain: str) -> str:
    cleaned = domain.strip().lower()
    cleaned = re.sub(r"^https?://", "", cleaned)
    cleaned = re.sub(r"^www\.", "", cleaned)
    return cleaned.split("/")[0]


def html_to_text(html: str) -> str:
    text = re.sub(r"<script[^>]*>[\s\S]*?</script>", "", html, flags=re.IGNORECASE)
    text = re.sub(r"<style[^>]*>[\s\S]*?</style>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def describe_tool_call(name: str, args: Dict[str, Any]) -> str:
    """Human-readable stage text for a tool call."""
    query = str(args.get("query", ""))
    url = str(args.get("url", ""))
    if name == "search":
        if "site:reddit.com" in query:
            return "Searching Reddit discussions..."
        if "site:g2.com" in query:
            return "Searching G2 reviews..."
        if "site:producthunt.com" in query:
            return "Searching ProductHunt..."
        if "site:etsy.com" in query:
            return "Searching Etsy listings..."
        return "Researching market data..."
    if name == "scrape":
        if "reddit.com" in url:
            return "Reading Reddit thread..."
        if "etsy.com" in url:
            return "Analyzing Etsy listing..."
        return "Reading page content..."
    if name == "seo":
        return f"Checking SEO for {args.get('domain', 'domain')}..."
    if name == "keyword_gaps":
        return f"Analyzing keyword gaps vs {args.get('competitor_domain', 'competitor')}..."
    if name == "screenshot":
        return f"Capturing screenshot of {url}..."
    if name == "search_history":
        return "Searching past results..."
    return "Processing..."


# --- Executors ---


class ResearchToolkit:
    """Executes research tools against their upstream APIs over a shared httpx client."""

    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self.http = http
        self.settings = settings

    async def execute(self, name: str, args: Dict[str, Any], user_domain: Optional[str] = None) -> ToolResult:
        """Validate input, dispatch, and convert any failure into a ToolResult."""
        try:
            if name == "search":
                query = args.get("query")
                if not query or not isinstance(query, str):
                    return ToolResult(text="Error: query is required for search")
                if len(query) > MAX_QUERY_LENGTH:
                    return ToolResult(text=f"Error: query too long (max {MAX_QUERY_LENGTH} characters)")
                return await self._timed(self.search(query), "Search")
            if name == "scrape":
                url = args.get("url")
                if not url or not isinstance(url, str):
                    return ToolResult(text="Error: url is required for scrape")
                if not is_allowed_url(url):
                    return ToolResult(text=URL_NOT_ALLOWED)
                return await self._timed(self.scrape(url), "Scrape")
            if name == "seo":
                domain = args.get("domain")
                if not domain or not isinstance(domain, str):
                    return ToolResult(text="Error: domain is required for seo")
                return await self._timed(self.seo(domain), "SEO lookup")
            if name == "keyword_gaps":
                competitor = args.get("competitor_domain")
                if not competitor or not isinstance(competitor, str):
                    return ToolResult(text="Error: competitor_domain is required for keyword_gaps")
                return await self._timed(self.keyword_gaps(competitor, user_domain), "Keyword gap analysis")
            if name == "screenshot":
                url = args.get("url")
                if not url or not isinstance(url, str):
                    return ToolResult(text="Error: url is required for screenshot")
                if not is_allowed_url(url):
                    return ToolResult(text=URL_NOT_ALLOWED)
                return await self._timed(
                    self.screenshot(url), "Screenshot", timeout=self.settings.screenshot_timeout
                )
            return ToolResult(text=f"Unknown tool: {name}")
        except asyncio.TimeoutError as e:
            logger.warning(f"Tool {name} timed out: {e}")
            return ToolResult(text=f"Error: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Tool {name} HTTP failure: {e}")
            return ToolResult(text=f"Error: {name} request failed ({e.__class__.__name__})")
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return ToolResult(text=f"Error: {e}")

    async def _timed(self, coro: Awaitable[ToolResult], operation: str, timeout: Optional[float] = None) -> ToolResult:
        seconds = timeout if timeout is not None else self.settings.tool_timeout
        try:
            return await asyncio.wait_for(coro, timeout=seconds)
        except asyncio.TimeoutError:
            raise asyncio.TimeoutError(f"{operation} timed out after {int(seconds * 1000)}ms")

    # -- search --

    async def search(self, query: str) -> ToolResult:
        if not self.settings.tavily_api_key:
            return ToolResult(text="Web search not available (Tavily not configured).")
        payload = {
            "api_key": self.settings.tavily_api_key,
            "query": query,
            "max_results": 8,
            "search_depth": "advanced",
            "include_raw_content": False,
        }
        response = await self.http.post(f"{TAVILY_BASE_URL}/search", json=payload)
        response.raise_for_status()
        results = response.json().get("results") or []
        if not results:
            return ToolResult(text="No results found.")

        hits = [
            SearchHit(
                title=r.get("title") or "",
                url=r.get("url") or "",
                snippet=(r.get("content") or "")[:300],
                score=r.get("score"),
            )
            for r in results
        ]
        text = "\n\n".join(
            f"[{i + 1}] {hit.title}\n    URL: {hit.url}\n    {hit.snippet}..." for i, hit in enumerate(hits)
        )
        return ToolResult(text=text, data=SearchRecord(query=query, results=hits))

    # -- scrape --

    async def scrape(self, url: str) -> ToolResult:
        if self.settings.scrapingdog_api_key:
            response = await self.http.get(
                SCRAPINGDOG_URL,
                params={"api_key": self.settings.scrapingdog_api_key, "url": url, "dynamic": "false"},
            )
            if response.status_code >= 400:
                return ToolResult(text=f"Scrape failed: HTTP {response.status_code}")
            content = html_to_text(response.text)[:MAX_SCRAPE_CHARS]
        else:
            content = await self.extract_page(url)

        if not content:
            return ToolResult(text="Could not extract content from URL.")
        return ToolResult(text=content, data=ScrapeRecord(url=url, contentSummary=content[:500]))

    async def extract_page(self, url: str) -> str:
        """Fetch raw page text through Tavily extract. Returns "" when unavailable."""
        if not self.settings.tavily_api_key:
            return ""
        payload = {"api_key": self.settings.tavily_api_key, "urls": [url], "extract_depth": "advanced"}
        response = await self.http.post(f"{TAVILY_BASE_URL}/extract", json=payload)
        response.raise_for_status()
        results = response.json().get("results") or []
        if not results:
            return ""
        return (results[0].get("raw_content") or "")[:MAX_SCRAPE_CHARS]

    # -- DataForSEO --

    async def _dataforseo(self, endpoint: str, task: Dict[str, Any]) -> httpx.Response:
        return await self.http.post(
            f"{DATAFORSEO_BASE_URL}/{endpoint}/live",
            json=[task],
            auth=(self.settings.dataforseo_login or "", self.settings.dataforseo_password or ""),
        )

    async def seo(self, domain: str) -> ToolResult:
        if not self.settings.has_dataforseo:
            return ToolResult(text="SEO data not available (DataForSEO not configured).")
        clean = sanitize_domain(domain)
        response = await self._dataforseo(
            "domain_rank_overview", {"target": clean, "location_code": 2840, "language_code": "en"}
        )
        if response.status_code >= 400:
            return ToolResult(
                text=f"SEO lookup failed: HTTP {response.status_code}",
                data=SeoRecord(domain=clean, error=f"HTTP {response.status_code}"),
            )

        organic = _dig(response.json(), "tasks", 0, "result", 0, "items", 0, "metrics", "organic")
        if not organic:
            return ToolResult(
                text=f"No SEO data found for {clean}. This could mean the domain is new or has minimal organic presence.",
                data=SeoRecord(domain=clean),
            )

        positions = TopPositions(
            pos1=organic.get("pos_1") or 0,
            pos2_3=organic.get("pos_2_3") or 0,
            pos4_10=organic.get("pos_4_10") or 0,
        )
        traffic = organic.get("etv") or None
        keywords = organic.get("count") or None
        text = (
            f"SEO Metrics for {clean}:\n"
            f"- Estimated Organic Traffic: ~{_fmt_number(traffic)} monthly visits\n"
            f"- Organic Keywords: {_fmt_number(keywords)} ranking keywords\n"
            f"- Keyword Positions: {positions.pos1} in #1, {positions.pos2_3} in #2-3, {positions.pos4_10} in #4-10"
        )
        return ToolResult(
            text=text,
            data=SeoRecord(domain=clean, traffic=traffic, keywords=keywords, topPositions=positions),
        )

    async def keyword_gaps(self, competitor_domain: str, user_domain: Optional[str]) -> ToolResult:
        if not user_domain:
            return ToolResult(text="Cannot analyze keyword gaps - user did not provide their website URL.")
        if not self.settings.has_dataforseo:
            return ToolResult(text="Keyword gap analysis not available (DataForSEO not configured).")
        competitor = sanitize_domain(competitor_domain)
        user = sanitize_domain(user_domain)
        response = await self._dataforseo(
            "domain_intersection",
            {
                "target1": competitor,
                "target2": user,
                "intersections": False,
                "location_code": 2840,
                "language_code": "en",
                "limit": 20,
                "order_by": ["keyword_data.keyword_info.search_volume,desc"],
            },
        )
        if response.status_code >= 400:
            return ToolResult(text=f"Keyword gap analysis failed: HTTP {response.status_code}")

        items = _dig(response.json(), "tasks", 0, "result", 0, "items") or []
        if not items:
            return ToolResult(text=f"No keyword gaps found between {competitor} and {user}.")

        keywords = [
            GapKeyword(
                keyword=_dig(item, "keyword_data", "keyword") or "",
                volume=_dig(item, "keyword_data", "keyword_info", "search_volume") or 0,
                competitorRank=_dig(item, "first_domain_serp_element", "serp_item", "rank_absolute") or 0,
            )
            for item in items[:15]
        ]
        lines = [
            f'- "{kw.keyword or "?"}" ({kw.volume:,} searches/mo) - {competitor} ranks #{kw.competitorRank or "?"}'
            for kw in keywords
        ]
        return ToolResult(
            text=f"Keyword Gaps ({competitor} ranks, you don't):\n" + "\n".join(lines),
            data=KeywordGapRecord(competitor=competitor, keywords=keywords),
        )

    # -- screenshot --

    async def capture_screenshot(self, url: str) -> Optional[Dict[str, str]]:
        """Return {"mime_type", "data"} for a homepage screenshot, or None if it can't be used."""
        if not self.settings.has_screenshot_service:
            return None
        response = await self.http.get(
            f"{self.settings.screenshot_service_url.rstrip('/')}/screenshot",
            params={"url": url, "width": 1280, "height": 800},
            headers={"x-api-key": self.settings.screenshot_api_key},
            timeout=self.settings.screenshot_timeout,
        )
        if response.status_code >= 400:
            logger.warning(f"Screenshot of {url} failed: HTTP {response.status_code}")
            return None
        media_type = response.headers.get("content-type", "").split(";")[0].strip()
        if media_type not in ALLOWED_IMAGE_TYPES:
            logger.warning(f"Screenshot of {url} returned unsupported type {media_type!r}")
            return None
        if len(response.content) > MAX_SCREENSHOT_BYTES:
            logger.warning(f"Screenshot of {url} too large ({len(response.content)} bytes)")
            return None
        return {"mime_type": media_type, "data": base64.b64encode(response.content).decode("ascii")}

    async def screenshot(self, url: str) -> ToolResult:
        if not self.settings.has_screenshot_service:
            return ToolResult(text="Screenshot service not configured.")
        captured = await self.capture_screenshot(url)
        if not captured:
            return ToolResult(text=f"Could not capture screenshot of {url}.")
        return ToolResult(
            text=f"Homepage screenshot of {url}",
            data=ScreenshotRecord(url=url),
            image=image_block(captured),
        )


def image_block(captured: Dict[str, str]) -> Dict[str, Any]:
    return {
        "type": "image",
        "source_type": "base64",
        "mime_type": captured["mime_type"],
        "data": captured["data"],
    }


def _dig(data: Any, *path: Any) -> Any:
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current


def _fmt_number(value: Any) -> str:
    if value is None:
        return "N/A"
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return str(value)


def bind_executor(toolkit: ResearchToolkit, user_domain: Optional[str]) -> Callable[[str, Dict[str, Any]], Awaitable[ToolResult]]:
    """Bind a toolkit to one run's user domain, as the agentic loop expects."""

    async def _execute(name: str, args: Dict[str, Any]) -> ToolResult:
        return await toolkit.execute(name, args, user_domain=user_domain)

    return _execute
