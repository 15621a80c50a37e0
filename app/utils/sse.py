import json


def sse_event(event_type: str, **kwargs) -> str:
    """Format a Server-Sent Event data line.

    Usage:
        yield sse_event("status", stage="Researching market data...")
        yield sse_event("done", output="# Growth Strategy ...")
        yield sse_event("error", error="Something went wrong")
    """
    payload = {"type": event_type, **kwargs}
    return f"data: {json.dumps(payload, default=str)}\n\n"
