"""
Test helpers: fixed clock and a recording upstream transport
"""
import json
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

import httpx

from agentcost.utils.timezone import Clock

# 2026-02-14 12:00 in New York
FIXED_NOW = datetime(2026, 2, 14, 17, 0, tzinfo=timezone.utc)
TEST_TIMEZONE = "America/New_York"

def fixed_clock(now: datetime = FIXED_NOW, tz_name: str = TEST_TIMEZONE) -> Clock:
    return Clock(tz_name, now_fn=lambda: now)

def wire_response(
    status_code: int = 200,
    content: bytes = b"",
    json_body: Any = None,
    headers: Optional[dict] = None
) -> httpx.Response:
    """
    Upstream response backed by an unread byte stream, the way a network
    transport hands it to the client. httpx.Response(content=...) is read
    eagerly and its raw bytes can no longer be streamed.
    """
    extra = dict(headers or {})
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
        extra.setdefault("content-type", "application/json")
    extra.setdefault("content-length", str(len(content)))
    return httpx.Response(status_code, headers=extra, stream=httpx.ByteStream(content))

class UpstreamRecorder:
    """MockTransport handler that records every upstream request"""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: wire_response(
            200, json_body={"id": "msg_1", "content": []}
        )

    def reply_json(self, payload: Any, status_code: int = 200, headers: Optional[dict] = None) -> None:
        self.responder = lambda request: wire_response(status_code, json_body=payload, headers=headers)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

def read_state(path) -> dict:
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)
