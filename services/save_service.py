"""
At-most-once story saves keyed by idempotency key
"""

from typing import Any, Dict, Optional
import asyncio
import logging
import threading

from models.story_models import SaveError, SaveResult, StoryDraft
from providers.story_repository import StoryRepository, get_story_repository
from utils.errors import PersistenceError

logger = logging.getLogger(__name__)

MISSING_KEY_MESSAGE = "Missing idempotencyKey"
MISSING_KEY_CODE = "MISSING_IDEMPOTENCY_KEY"


class SaveCoordinator:
    """
    Inserts a draft once per idempotency key for the lifetime of the instance.

    Only successful inserts are remembered, so a key whose insert failed may
    be retried. Callers arriving while an insert for the same key is pending
    wait for it and share its result.
    """

    def __init__(self, repository: Optional[StoryRepository] = None):
        self.repository = repository or get_story_repository()
        self._lock = threading.Lock()
        self._saved: Dict[str, str] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self.in_flight = 0
        self.last_error: Optional[SaveError] = None

    @property
    def saving(self) -> bool:
        return self.in_flight > 0

    async def save(self, draft: StoryDraft, idempotency_key: Optional[str] = None,
                   access_token: Optional[str] = None) -> SaveResult:
        if not idempotency_key:
            return SaveResult.failed(MISSING_KEY_MESSAGE, MISSING_KEY_CODE)

        cached = self.cached_id(idempotency_key)
        if cached:
            logger.info(f"duplicate save suppressed for key {idempotency_key[:12]}")
            return SaveResult.saved(cached)

        pending = self._pending.get(idempotency_key)
        if pending is not None:
            logger.info(f"save for key {idempotency_key[:12]} already in flight, waiting")
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._pending[idempotency_key] = future
        try:
            result = await self._attempt(draft, idempotency_key, access_token)
            future.set_result(result)
            return result
        finally:
            if not future.done():
                future.cancel()
            del self._pending[idempotency_key]

    async def _attempt(self, draft: StoryDraft, idempotency_key: str,
                       access_token: Optional[str]) -> SaveResult:
        self.in_flight += 1
        self.last_error = None
        try:
            story_id = await self._insert(draft, access_token)
            with self._lock:
                self._saved[idempotency_key] = story_id
            return SaveResult.saved(story_id)

        except PersistenceError as e:
            logger.error(f"story save failed: {e} (code={e.code})")
            result = SaveResult.failed(str(e), e.code)
        except Exception as e:
            logger.error(f"story save failed: {type(e).__name__}: {e}", exc_info=True)
            result = SaveResult.failed(str(e) or "Save failed")
        finally:
            self.in_flight -= 1

        self.last_error = result.error
        return result

    async def _insert(self, draft: StoryDraft, access_token: Optional[str]) -> str:
        result = await self.repository.insert(self._row(draft), access_token=access_token)
        if result.error is not None:
            raise PersistenceError(result.error.message or "Save failed", result.error.code)

        story_id = (result.data or {}).get("id")
        if not story_id:
            raise PersistenceError("Save returned no id")
        return str(story_id)

    @staticmethod
    def _row(draft: StoryDraft) -> Dict[str, Any]:
        return {
            "title": draft.title,
            "content": draft.content,
            "story_type": draft.story_type,
            "genre": draft.genre,
            "description": draft.description,
            "image_url": draft.image_url,
            "is_private": True if draft.is_private is None else draft.is_private,
        }

    def cached_id(self, idempotency_key: str) -> Optional[str]:
        with self._lock:
            return self._saved.get(idempotency_key)

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            saved = len(self._saved)
        return {
            "repository": self.repository.get_repository_name(),
            "saved_keys": saved,
            "in_flight": self.in_flight,
            "saving": self.saving
        }
