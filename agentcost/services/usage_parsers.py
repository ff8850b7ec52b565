"""
Usage Data Parsers - extract token counts from upstream response bodies
Handles the Anthropic (input_tokens/output_tokens) and OpenAI
(prompt_tokens/completion_tokens) naming conventions
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..utils.logger import get_logger

logger = get_logger(__name__)

@dataclass(frozen=True)
class UsageData:
    """Usage metadata only; never carries prompt or completion text"""
    model: str
    input_tokens: int
    output_tokens: int

def _token_count(usage: Dict[str, Any], *keys: str) -> int:
    """First positive count among keys; zero, missing or non-numeric values fall through"""
    for key in keys:
        value = usage.get(key)
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if isinstance(value, float) and not math.isfinite(value):
            continue
        if value > 0:
            return int(value)
    return 0

def parse_usage(payload: Any) -> Optional[UsageData]:
    """
    Parse a decoded JSON response body

    Args:
        payload: Result of json.loads on the response body

    Returns:
        UsageData, or None if the body carries no usage object
    """
    if not isinstance(payload, dict):
        return None

    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return None

    model = payload.get("model")
    if not isinstance(model, str) or not model:
        model = "unknown"

    return UsageData(
        model=model,
        input_tokens=_token_count(usage, "input_tokens", "prompt_tokens"),
        output_tokens=_token_count(usage, "output_tokens", "completion_tokens"),
    )

def extract_usage(response: httpx.Response, raw_body: bytes) -> Optional[UsageData]:
    """
    Extract usage from a buffered upstream response

    The raw bytes are decoded according to the upstream content-encoding
    before parsing. Undecodable or non-JSON bodies yield None.
    """
    try:
        decoded = httpx.Response(
            response.status_code,
            headers=response.headers,
            content=raw_body,
        )
        payload = json.loads(decoded.read())
    except (httpx.DecodingError, ValueError) as e:
        logger.debug(f"Skipping usage extraction, body not decodable as JSON ({type(e).__name__})")
        return None
    return parse_usage(payload)
