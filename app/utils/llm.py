"""Shared utilities for parsing LLM responses."""

import json
from typing import Any, Iterator, Union

from langchain_core.messages import BaseMessage


def message_text(message: Union[BaseMessage, str, None]) -> str:
    """Return the plain text of a chat message, joining text blocks when content is a list."""
    if message is None:
        return ""
    content = message if isinstance(message, str) else message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json / ``` fence and a trailing ``` fence, if present."""
    stripped = text.strip()
    if stripped.startswith("```json"):
        stripped = stripped[7:]
    elif stripped.startswith("```"):
        stripped = stripped[3:]
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def _json_candidates(text: str) -> Iterator[str]:
    yield text
    if "```" in text:
        for block in text.split("```"):
            block = block.strip()
            yield block[4:].strip() if block.startswith("json") else block
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        yield text[start : end + 1]


def parse_json_response(text: str) -> Any:
    """Parse JSON out of a model reply that may wrap it in prose or code fences.

    Candidates are tried with ``json.loads`` in order: the whole reply, each fenced
    block, then the outermost ``{ ... }`` span. Raises ValueError when none parses.
    """
    stripped = text.strip()
    for candidate in _json_candidates(stripped):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError(f"Could not parse JSON from LLM response: {stripped[:200]}")
