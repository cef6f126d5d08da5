"""
Transports that deliver a composed prompt to the generation proxy
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import asyncio
import json
import logging

import aiohttp

from templates.mock_templates import MockStoryGenerator
from utils.errors import TransportError

logger = logging.getLogger(__name__)

FUNCTION_NAME = "gemini-proxy"
GENERATION_PATH = f"/functions/v1/{FUNCTION_NAME}"


@dataclass
class TransportResponse:
    """Raw answer of a transport call; `data` is text or decoded JSON"""
    status: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def text(self) -> str:
        if isinstance(self.data, str):
            return self.data
        if self.data is None:
            return ""
        return json.dumps(self.data, ensure_ascii=False)


class GenerationTransport(ABC):
    @abstractmethod
    async def invoke(self, body: Dict[str, Any]) -> TransportResponse:
        """Send `body` and return the proxy's answer; network failures raise"""
        pass

    @abstractmethod
    def get_transport_name(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        pass


class FunctionInvokeTransport(GenerationTransport):
    """Managed function invocation against the backend's functions endpoint"""

    def __init__(self, base_url: str, anon_key: str, function_name: str = FUNCTION_NAME,
                 timeout: int = 30):
        self.base_url = base_url.rstrip("/") if base_url else ""
        self.anon_key = anon_key
        self.function_name = function_name
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/functions/v1/{self.function_name}"

    def is_available(self) -> bool:
        return bool(self.base_url and self.anon_key)

    async def invoke(self, body: Dict[str, Any]) -> TransportResponse:
        if not self.is_available():
            raise ValueError("Function invocation is not configured (SUPABASE_URL/SUPABASE_ANON_KEY).")

        headers = {
            "Authorization": f"Bearer {self.anon_key}",
            "apikey": self.anon_key,
            "Content-Type": "application/json"
        }

        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(self.url, headers=headers, json=body) as response:
                    text = await response.text()
                    data: Any = text
                    if response.content_type == "application/json":
                        try:
                            data = json.loads(text)
                        except json.JSONDecodeError:
                            logger.debug("function response declared JSON but did not decode")

                    if response.status >= 400:
                        logger.error(f"function {self.function_name} returned {response.status}")

                    return TransportResponse(status=response.status, data=data, headers=dict(response.headers))
        except asyncio.TimeoutError:
            logger.error(f"function {self.function_name} timed out after {self.timeout}s")
            raise TransportError("Generation request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"function {self.function_name} unreachable: {type(e).__name__}: {e}")
            raise TransportError(f"HTTP client error: {e}")

    def get_transport_name(self) -> str:
        return f"function:{self.function_name}"


class HttpTransport(GenerationTransport):
    """Plain HTTP POST to the proxy path"""

    def __init__(self, base_url: str, timeout: int = 30, path: str = GENERATION_PATH):
        self.base_url = base_url.rstrip("/") if base_url else ""
        self.path = path
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"

    def is_available(self) -> bool:
        return bool(self.base_url)

    async def invoke(self, body: Dict[str, Any]) -> TransportResponse:
        if not self.is_available():
            raise ValueError("HTTP transport is not configured (GENERATION_BASE_URL).")

        client_timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(self.url, json=body) as response:
                    text = await response.text()
                    return TransportResponse(status=response.status, data=text, headers=dict(response.headers))
        except asyncio.TimeoutError:
            logger.error(f"generation proxy timed out after {self.timeout}s")
            raise TransportError("Generation request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"generation proxy unreachable: {type(e).__name__}: {e}")
            raise TransportError(f"HTTP client error: {e}")

    def get_transport_name(self) -> str:
        return "http"


class MockTransport(GenerationTransport):
    """Answers with a fenced template story"""

    def __init__(self, delay: float = 0.0):
        self.generator = MockStoryGenerator()
        self.delay = delay

    def is_available(self) -> bool:
        return True

    async def invoke(self, body: Dict[str, Any]) -> TransportResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        text = self.generator.fenced_response(body.get("prompt", ""))
        return TransportResponse(status=200, data=text, headers={"Content-Type": "text/plain"})

    def get_transport_name(self) -> str:
        return "mock"


class TransportFactory:
    """Picks one transport by availability"""

    @staticmethod
    def get_transport(settings=None) -> GenerationTransport:
        if settings is None:
            from config.settings import get_settings
            settings = get_settings()

        mode = settings.TRANSPORT_MODE.lower()

        if mode in ("auto", "function"):
            transport = FunctionInvokeTransport(
                base_url=settings.SUPABASE_URL,
                anon_key=settings.SUPABASE_ANON_KEY,
                timeout=settings.GENERATION_TIMEOUT
            )
            if transport.is_available():
                return transport
            if mode == "function":
                logger.error("function transport selected but not configured, falling back")

        if mode in ("auto", "http"):
            transport = HttpTransport(
                base_url=settings.GENERATION_BASE_URL,
                timeout=settings.GENERATION_TIMEOUT
            )
            if transport.is_available():
                return transport
            if mode == "http":
                logger.error("http transport selected but GENERATION_BASE_URL is empty, falling back")

        return MockTransport()
