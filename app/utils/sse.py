from __future__ import annotations

import json
from typing import Any

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: str, data: Any) -> str:
    """Frame one Server-Sent-Events message."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"
