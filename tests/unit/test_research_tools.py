import json

import httpx
import pytest

from app.core.config import Settings
from app.tools.research import (
    URL_NOT_ALLOWED,
    ResearchToolkit,
    describe_tool_call,
    get_tool_definitions,
    html_to_text,
    is_allowed_url,
    sanitize_domain,
)
from strategy_agent.state import KeywordGapRecord, SearchRecord, SeoRecord


def _toolkit(handler, **settings):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResearchToolkit(http, Settings(**settings))


def _unreachable(request):
    raise AssertionError(f"Unexpected request to {request.url}")


# --- URL and domain sanitising ---


@pytest.mark.parametrize("url", [
    "https://example.com",
    "http://example.com/pricing?ref=1",
    "https://8.8.8.8/",
])
def test_public_urls_allowed(url):
    assert is_allowed_url(url)


@pytest.mark.parametrize("url", [
    "javascript:alert(1)",
    "file:///etc/passwd",
    "ftp://example.com",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://10.0.0.5/admin",
    "http://192.168.1.1",
    "http://169.254.169.254/latest/meta-data",
    "http://[::1]/",
    "http://[::ffff:127.0.0.1]/",
    "http://printer.local",
    "http://metadata.google.internal",
    "not a url",
])
def test_private_and_non_http_urls_rejected(url):
    assert not is_allowed_url(url)


def test_sanitize_domain():
    assert sanitize_domain("https://www.Example.com/pricing/") == "example.com"
    assert sanitize_domain("  competitor.io  ") == "competitor.io"


def test_html_to_text_strips_scripts_and_tags():
    html = "<html><style>p{}</style><script>var x=1;</script><h1>Title</h1>\n<p>Body   text</p></html>"
    assert html_to_text(html) == "Title Body text"


def test_describe_tool_call():
    assert describe_tool_call("search", {"query": "site:g2.com crm"}) == "Searching G2 reviews..."
    assert describe_tool_call("scrape", {"url": "https://www.reddit.com/r/x"}) == "Reading Reddit thread..."
    assert describe_tool_call("seo", {"domain": "notion.so"}) == "Checking SEO for notion.so..."
    assert describe_tool_call("keyword_gaps", {"competitor_domain": "a.com"}) == "Analyzing keyword gaps vs a.com..."
    assert describe_tool_call("mystery", {}) == "Processing..."


def test_tool_definitions_use_anthropic_shape():
    definitions = get_tool_definitions(["search", "seo"])
    assert [d["name"] for d in definitions] == ["search", "seo"]
    assert all("input_schema" in d for d in definitions)


# --- Input validation ---


@pytest.mark.asyncio
async def test_scrape_rejects_private_url():
    toolkit = _toolkit(_unreachable)
    result = await toolkit.execute("scrape", {"url": "http://169.254.169.254/"})
    assert result.text == URL_NOT_ALLOWED
    assert result.data is None


@pytest.mark.asyncio
async def test_search_requires_query():
    toolkit = _toolkit(_unreachable, tavily_api_key="key")
    result = await toolkit.execute("search", {})
    assert result.text == "Error: query is required for search"


@pytest.mark.asyncio
async def test_search_rejects_long_query():
    toolkit = _toolkit(_unreachable, tavily_api_key="key")
    result = await toolkit.execute("search", {"query": "x" * 501})
    assert result.text.startswith("Error: query too long")


@pytest.mark.asyncio
async def test_unknown_tool():
    toolkit = _toolkit(_unreachable)
    result = await toolkit.execute("teleport", {})
    assert result.text == "Unknown tool: teleport"


# --- Unconfigured providers ---


@pytest.mark.asyncio
async def test_unconfigured_providers_degrade_to_text():
    toolkit = _toolkit(_unreachable)

    search = await toolkit.execute("search", {"query": "crm tools"})
    seo = await toolkit.execute("seo", {"domain": "example.com"})
    screenshot = await toolkit.execute("screenshot", {"url": "https://example.com"})

    assert search.text == "Web search not available (Tavily not configured)."
    assert seo.text == "SEO data not available (DataForSEO not configured)."
    assert screenshot.text == "Screenshot service not configured."
    assert search.data is None and seo.data is None and screenshot.data is None


@pytest.mark.asyncio
async def test_keyword_gaps_needs_user_website():
    toolkit = _toolkit(_unreachable, dataforseo_login="u", dataforseo_password="p")
    result = await toolkit.execute("keyword_gaps", {"competitor_domain": "rival.com"}, user_domain=None)
    assert result.text == "Cannot analyze keyword gaps - user did not provide their website URL."


# --- Provider responses ---


@pytest.mark.asyncio
async def test_search_parses_tavily_results():
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/search"
        assert body["query"] == "habit tracker alternatives"
        assert body["max_results"] == 8
        return httpx.Response(200, json={"results": [
            {"title": "Best habit apps", "url": "https://blog.example.com/habits", "content": "a" * 400, "score": 0.9},
        ]})

    toolkit = _toolkit(handler, tavily_api_key="key")
    result = await toolkit.execute("search", {"query": "habit tracker alternatives"})

    assert isinstance(result.data, SearchRecord)
    assert result.data.results[0].title == "Best habit apps"
    assert len(result.data.results[0].snippet) == 300
    assert "[1] Best habit apps" in result.text


@pytest.mark.asyncio
async def test_search_http_error_is_reported():
    toolkit = _toolkit(lambda request: httpx.Response(500), tavily_api_key="key")
    result = await toolkit.execute("search", {"query": "anything"})
    assert result.text == "Error: search request failed (HTTPStatusError)"
    assert result.data is None


@pytest.mark.asyncio
async def test_seo_parses_dataforseo_metrics():
    def handler(request):
        assert request.url.path.endswith("/domain_rank_overview/live")
        task = json.loads(request.content)[0]
        assert task["target"] == "example.com"
        return httpx.Response(200, json={"tasks": [{"result": [{"items": [{"metrics": {"organic": {
            "etv": 15234.7, "count": 812, "pos_1": 12, "pos_2_3": 30, "pos_4_10": 95,
        }}}]}]}]})

    toolkit = _toolkit(handler, dataforseo_login="u", dataforseo_password="p")
    result = await toolkit.execute("seo", {"domain": "https://www.example.com/"})

    assert isinstance(result.data, SeoRecord)
    assert result.data.domain == "example.com"
    assert result.data.keywords == 812
    assert result.data.topPositions.pos1 == 12
    assert "SEO Metrics for example.com" in result.text


@pytest.mark.asyncio
async def test_seo_without_data_records_null_metrics():
    toolkit = _toolkit(
        lambda request: httpx.Response(200, json={"tasks": [{"result": [{"items": []}]}]}),
        dataforseo_login="u",
        dataforseo_password="p",
    )
    result = await toolkit.execute("seo", {"domain": "brand-new.app"})

    assert result.data == SeoRecord(domain="brand-new.app")
    assert result.text.startswith("No SEO data found for brand-new.app")


@pytest.mark.asyncio
async def test_keyword_gaps_keeps_top_fifteen():
    items = [
        {
            "keyword_data": {"keyword": f"kw {i}", "keyword_info": {"search_volume": 1000 - i}},
            "first_domain_serp_element": {"serp_item": {"rank_absolute": i + 1}},
        }
        for i in range(20)
    ]

    def handler(request):
        task = json.loads(request.content)[0]
        assert task["target1"] == "rival.com"
        assert task["target2"] == "mine.com"
        assert task["intersections"] is False
        return httpx.Response(200, json={"tasks": [{"result": [{"items": items}]}]})

    toolkit = _toolkit(handler, dataforseo_login="u", dataforseo_password="p")
    result = await toolkit.execute("keyword_gaps", {"competitor_domain": "www.rival.com"}, user_domain="mine.com")

    assert isinstance(result.data, KeywordGapRecord)
    assert len(result.data.keywords) == 15
    assert result.data.keywords[0].keyword == "kw 0"
    assert '"kw 0" (1,000 searches/mo) - rival.com ranks #1' in result.text


@pytest.mark.asyncio
async def test_screenshot_rejects_unsupported_content_type():
    toolkit = _toolkit(
        lambda request: httpx.Response(200, content=b"<svg/>", headers={"content-type": "image/svg+xml"}),
        screenshot_service_url="https://shots.example.com",
        screenshot_api_key="k",
    )
    result = await toolkit.execute("screenshot", {"url": "https://example.com"})
    assert result.text == "Could not capture screenshot of https://example.com."
    assert result.image is None


@pytest.mark.asyncio
async def test_screenshot_returns_image_block():
    def handler(request):
        assert request.headers["x-api-key"] == "k"
        assert request.url.params["width"] == "1280"
        return httpx.Response(200, content=b"\x89PNG fake", headers={"content-type": "image/png"})

    toolkit = _toolkit(handler, screenshot_service_url="https://shots.example.com/", screenshot_api_key="k")
    result = await toolkit.execute("screenshot", {"url": "https://example.com"})

    assert result.image["type"] == "image"
    assert result.image["mime_type"] == "image/png"
    assert result.data.url == "https://example.com"
