"""
Story table access (insert/select) behind a small repository interface
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import asyncio
import json
import logging
import threading
import uuid

import aiohttp

logger = logging.getLogger(__name__)

STORY_TABLE = "story_starter_stories"


@dataclass
class RepositoryError:
    message: str
    code: Optional[Any] = None


@dataclass
class RepositoryResult:
    data: Any = None
    error: Optional[RepositoryError] = None
    count: Optional[int] = None


class StoryRepository(ABC):
    @abstractmethod
    async def insert(self, row: Dict[str, Any], access_token: Optional[str] = None) -> RepositoryResult:
        """Insert one story row as the caller behind `access_token`; `data` is {"id": ...} on success"""
        pass

    @abstractmethod
    async def select(self, filters: Optional[Dict[str, Any]] = None,
                     start: int = 0, end: int = 19, access_token: Optional[str] = None) -> RepositoryResult:
        """Rows matching equality `filters`, inclusive range [start, end], newest first"""
        pass

    @abstractmethod
    def get_repository_name(self) -> str:
        pass


class InMemoryStoryRepository(StoryRepository):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: List[Dict[str, Any]] = []
        self.insert_calls = 0

    async def insert(self, row: Dict[str, Any], access_token: Optional[str] = None) -> RepositoryResult:
        with self._lock:
            self.insert_calls += 1
            stored = dict(row)
            stored["id"] = str(uuid.uuid4())
            stored["created_at"] = datetime.now(timezone.utc).isoformat()
            self._rows.append(stored)
        return RepositoryResult(data={"id": stored["id"]})

    async def select(self, filters: Optional[Dict[str, Any]] = None,
                     start: int = 0, end: int = 19, access_token: Optional[str] = None) -> RepositoryResult:
        filters = filters or {}
        with self._lock:
            rows = [
                dict(row) for row in self._rows
                if all(row.get(key) == value for key, value in filters.items())
            ]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return RepositoryResult(data=rows[start:end + 1], count=len(rows))

    def get_repository_name(self) -> str:
        return "memory"


class PostgrestStoryRepository(StoryRepository):
    """Story table over a PostgREST endpoint; row-level policy decides ownership"""

    def __init__(self, base_url: str, anon_key: str, table: str = STORY_TABLE, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.table = table
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        # The caller's token lets the row-level policy see the user
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json"
        }

    @staticmethod
    async def _read(response: aiohttp.ClientResponse):
        text = await response.text()
        if not text:
            return text, None
        try:
            return text, json.loads(text)
        except ValueError:
            logger.debug(f"story backend answered {response.status} with a non-JSON body")
            return text, None

    @staticmethod
    def _error_from(status: int, payload: Any, text: str) -> RepositoryError:
        if isinstance(payload, dict):
            return RepositoryError(message=payload.get("message") or text, code=payload.get("code", status))
        return RepositoryError(message=text or f"HTTP {status}", code=status)

    async def insert(self, row: Dict[str, Any], access_token: Optional[str] = None) -> RepositoryResult:
        headers = self._headers(access_token)
        headers["Prefer"] = "return=representation"

        try:
            client_timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.post(self.url, headers=headers, json=[row],
                                        params={"select": "id"}) as response:
                    text, payload = await self._read(response)

                    if response.status >= 400:
                        logger.error(f"story insert failed {response.status}: {text[:200]}")
                        return RepositoryResult(error=self._error_from(response.status, payload, text))

                    record = payload[0] if isinstance(payload, list) and payload else payload
                    story_id = record.get("id") if isinstance(record, dict) else None
                    return RepositoryResult(data={"id": story_id})

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"story insert unreachable: {type(e).__name__}: {e}")
            return RepositoryResult(error=RepositoryError(message=str(e) or "Story backend unreachable"))

    async def select(self, filters: Optional[Dict[str, Any]] = None,
                     start: int = 0, end: int = 19, access_token: Optional[str] = None) -> RepositoryResult:
        headers = self._headers(access_token)
        headers["Prefer"] = "count=exact"
        headers["Range"] = f"{start}-{end}"

        params = {"select": "*", "order": "created_at.desc"}
        for key, value in (filters or {}).items():
            rendered = str(value).lower() if isinstance(value, bool) else str(value)
            params[key] = f"eq.{rendered}"

        try:
            client_timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=client_timeout) as session:
                async with session.get(self.url, headers=headers, params=params) as response:
                    text, payload = await self._read(response)

                    if response.status >= 400:
                        logger.error(f"story select failed {response.status}: {text[:200]}")
                        return RepositoryResult(error=self._error_from(response.status, payload, text))

                    count = None
                    content_range = response.headers.get("Content-Range", "")
                    total = content_range.rpartition("/")[2]
                    if total.isdigit():
                        count = int(total)
                    return RepositoryResult(data=payload if isinstance(payload, list) else [], count=count)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"story select unreachable: {type(e).__name__}: {e}")
            return RepositoryResult(error=RepositoryError(message=str(e) or "Story backend unreachable"))

    def get_repository_name(self) -> str:
        return f"postgrest:{self.table}"


def get_story_repository(settings=None) -> StoryRepository:
    if settings is None:
        from config.settings import get_settings
        settings = get_settings()

    if settings.STORY_REPOSITORY.lower() == "postgrest" and settings.function_invocation_configured():
        return PostgrestStoryRepository(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    return InMemoryStoryRepository()
