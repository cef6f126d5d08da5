"""
Upstream model clients used by the edge proxy
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict
import asyncio
import logging
import time

import aiohttp

from templates.mock_templates import MockStoryGenerator

logger = logging.getLogger(__name__)


@dataclass
class UpstreamResponse:
    status: int
    text: str


class UpstreamClient(ABC):
    @abstractmethod
    async def forward(self, body: Dict[str, Any]) -> UpstreamResponse:
        """Send `body` to the model; network failures raise"""
        pass

    @abstractmethod
    def get_client_name(self) -> str:
        pass


class HttpUpstreamClient(UpstreamClient):
    """Posts the sanitized prompt to the hosted model endpoint"""

    def __init__(self, url: str, api_key: str = "", timeout: int = 30):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    async def forward(self, body: Dict[str, Any]) -> UpstreamResponse:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        start_time = time.time()
        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.post(self.url, headers=headers, json=body) as response:
                text = await response.text()
                logger.debug(f"upstream answered {response.status} in {time.time() - start_time:.2f}s")
                if response.status >= 400:
                    logger.error(f"upstream model error {response.status}: {text[:200]}")
                return UpstreamResponse(status=response.status, text=text)

    def get_client_name(self) -> str:
        return f"http:{self.url}"


class MockUpstreamClient(UpstreamClient):
    """Template stories instead of a model"""

    def __init__(self, delay: float = 0.0):
        self.generator = MockStoryGenerator()
        self.delay = delay

    async def forward(self, body: Dict[str, Any]) -> UpstreamResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        return UpstreamResponse(status=200, text=self.generator.fenced_response(body.get("prompt", "")))

    def get_client_name(self) -> str:
        return "mock"


def get_upstream_client(settings=None) -> UpstreamClient:
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()

    if settings.UPSTREAM_MODEL_URL:
        return HttpUpstreamClient(
            url=settings.UPSTREAM_MODEL_URL,
            api_key=settings.UPSTREAM_API_KEY,
            timeout=settings.UPSTREAM_TIMEOUT
        )
    return MockUpstreamClient()
