"""search_history: semantic lookup over a business's stored marketing history."""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)

HISTORY_RESULT_LIMIT = 5

SEARCH_HISTORY_TOOL = {
    "name": "search_history",
    "description": (
        "Search this business's marketing history: past task outcomes, weekly check-in notes, "
        "strategy summaries, and insights. Use this when you need to know what was tried before, "
        "what worked, what didn't, or how the business responded to specific tactics."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": 'What to search for (e.g., "Reddit content results", "what channels worked")',
            },
        },
        "required": ["query"],
    },
}


class ContextMatch(BaseModel):
    content: str
    chunkType: str = "insight"
    sourceType: Optional[str] = None
    similarity: float = 0.0
    createdAt: Optional[str] = None


class HistorySearch(Protocol):
    """Storage-side similarity search; deployments plug in their vector store."""

    async def search(
        self, user_id: str, query: str, business_id: Optional[str] = None, limit: int = HISTORY_RESULT_LIMIT
    ) -> List[ContextMatch]: ...


def format_search_results(results: List[ContextMatch]) -> str:
    lines = []
    for i, match in enumerate(results, start=1):
        header = f"[{i}] {match.chunkType} ({round(match.similarity * 100)}% match"
        if match.createdAt:
            header += f", {match.createdAt[:10]}"
        lines.append(f"{header})\n{match.content}")
    return "\n\n".join(lines)


def create_search_history_executor(
    backend: HistorySearch, user_id: str, business_id: str
) -> Callable[[Dict[str, Any]], Awaitable[str]]:
    """Bind the history backend to one user + business for a single run."""

    async def search_history(args: Dict[str, Any]) -> str:
        query = args.get("query")
        if not query or not isinstance(query, str):
            return "Error: query is required for search_history"
        results = await backend.search(user_id, query, business_id=business_id, limit=HISTORY_RESULT_LIMIT)
        if not results:
            return "No relevant history found for this query."
        logger.info(f"search_history returned {len(results)} matches for business {business_id}")
        return format_search_results(results)

    return search_history
