"""
Edge proxy in front of the upstream model

Validates and sanitizes the prompt, applies the per-client rate window and
relays the upstream answer unchanged.
"""

from typing import Any, Dict, Optional
import json
import logging
import re

from models.edge_models import EdgeRequest, EdgeResponse
from providers.upstream_provider import UpstreamClient, get_upstream_client
from utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 6000
PASSTHROUGH_FIELDS = ("model", "maxTokens", "temperature")
ANONYMOUS_CLIENT = "anon"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_prompt(prompt: str) -> str:
    """Control characters become spaces, whitespace runs collapse, ends are trimmed"""
    return _WHITESPACE.sub(" ", _CONTROL_CHARS.sub(" ", prompt)).strip()


def client_identifier(request: EdgeRequest) -> str:
    forwarded = request.header("x-forwarded-for") or ""
    return forwarded.split(",")[0].strip() or ANONYMOUS_CLIENT


def _text(status: int, body: str, headers: Optional[Dict[str, str]] = None) -> EdgeResponse:
    merged = {"Content-Type": "text/plain"}
    merged.update(headers or {})
    return EdgeResponse(status=status, body=body, headers=merged)


class EdgeGateway:
    def __init__(self, upstream: Optional[UpstreamClient] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 max_prompt_length: int = MAX_PROMPT_LENGTH):
        self.upstream = upstream or get_upstream_client()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_prompt_length = max_prompt_length

    async def handle_request(self, request: EdgeRequest) -> EdgeResponse:
        if request.method.upper() != "POST":
            return _text(405, "Method Not Allowed")

        try:
            incoming: Any = json.loads(request.body or b"")
        except (ValueError, UnicodeDecodeError):
            return _text(400, "Bad Request")
        if not isinstance(incoming, dict):
            incoming = {}

        raw_prompt = incoming.get("prompt")
        if not isinstance(raw_prompt, str) or not raw_prompt.strip():
            return _text(400, "Bad Request: prompt empty")

        prompt = sanitize_prompt(raw_prompt)
        if len(prompt) > self.max_prompt_length:
            logger.info(f"prompt rejected: {len(prompt)} chars")
            return _text(400, "Bad Request: prompt too long")

        client_id = client_identifier(request)
        decision = self.rate_limiter.check_rate_limit(client_id)
        if not decision.allowed:
            logger.warning(f"rate limit exceeded for {client_id}, retry after {decision.retry_after}s")
            return _text(429, "Too Many Requests", {"Retry-After": str(decision.retry_after)})

        body = {"prompt": prompt}
        for name in PASSTHROUGH_FIELDS:
            if name in incoming:
                body[name] = incoming[name]

        try:
            upstream = await self.upstream.forward(body)
        except Exception as e:
            logger.error(f"upstream unreachable: {type(e).__name__}: {e}")
            return _text(502, "Bad Gateway: upstream unreachable")

        return _text(upstream.status, upstream.text)

    def get_status(self) -> Dict[str, Any]:
        return {
            "upstream": self.upstream.get_client_name(),
            "max_prompt_length": self.max_prompt_length,
            "rate_limit": self.rate_limiter.get_status()
        }
