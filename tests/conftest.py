"""
Pytest configuration and shared fixtures
"""
import json
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock
import sys
import os

# Make the top-level packages importable without installation
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config.settings import Settings
from main import create_app
from providers.generation_transport import MockTransport, TransportResponse
from providers.story_repository import InMemoryStoryRepository
from providers.upstream_provider import UpstreamResponse
from services.edge_gateway import EdgeGateway
from services.generation_service import GenerationService
from services.save_service import SaveCoordinator
from utils.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced clock for rate-limit windows"""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StubTransport:
    """Transport returning a fixed response and recording request bodies"""

    def __init__(self, response=None, error: Exception = None):
        self.response = response
        self.error = error
        self.calls = []

    async def invoke(self, body):
        self.calls.append(body)
        if self.error is not None:
            raise self.error
        return self.response

    def get_transport_name(self) -> str:
        return "stub"

    def is_available(self) -> bool:
        return True


@pytest.fixture
def app_settings():
    """Settings that never reach the network"""
    return Settings(
        TRANSPORT_MODE="mock",
        SUPABASE_URL="",
        SUPABASE_ANON_KEY="",
        GENERATION_BASE_URL="",
        UPSTREAM_MODEL_URL="",
        STORY_REPOSITORY="memory",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    """Upstream client mock answering 200 'ok'"""
    client = AsyncMock()
    client.forward.return_value = UpstreamResponse(status=200, text="ok")
    client.get_client_name = MagicMock(return_value="stub-upstream")
    return client


@pytest.fixture
def edge_gateway(upstream, clock):
    return EdgeGateway(upstream=upstream, rate_limiter=RateLimiter(limit=8, window_seconds=60, clock=clock))


@pytest.fixture
def repository():
    return InMemoryStoryRepository()


@pytest.fixture
def client(app_settings, edge_gateway, repository):
    """FastAPI test client wired with in-process collaborators"""
    app = create_app(
        settings=app_settings,
        generation_service=GenerationService(MockTransport()),
        save_coordinator=SaveCoordinator(repository),
        edge_gateway=edge_gateway,
    )
    return TestClient(app)


@pytest.fixture
def stub_transport():
    """Factory for a StubTransport answering with `text` and `status`"""
    def _make(data="", status=200, headers=None, error=None):
        response = TransportResponse(status=status, data=data, headers=headers or {})
        return StubTransport(response=response, error=error)
    return _make


@pytest.fixture
def sample_payload():
    """Generation form payload"""
    return {
        "story_type": "movie-summary",
        "title": "The Lost City",
        "genre": "adventure",
        "tone": "light-hearted",
        "creativity": 0.6,
        "additional_instructions": "Please keep it under 1500 words and avoid excessive violence. " * 30,
        "themes": ["friendship", "discovery", "resilience"],
        "plot_points": [
            "Protagonist meets antagonist early and misses chance to avoid conflict",
            "A mid-journey betrayal that turns into a reveal",
        ],
        "characters": [
            {"name": "Ava", "role": "protagonist", "description": "Curious explorer and linguist"},
            {"name": "Rook", "role": "antagonist", "description": "Treasure hunter with secret motives"},
            {"name": "Maya", "role": "ally", "description": "Local guide with deep knowledge of the ruins"},
        ],
        "image": {"mode": "url", "url": "https://example.com/image.jpg"},
        "is_private": True,
    }


@pytest.fixture
def minimal_payload():
    """Smallest payload the form can submit"""
    return {
        "story_type": "short-story",
        "title": "T",
        "creativity": 0.5,
        "themes": [],
        "plot_points": [],
        "characters": [],
        "is_private": True,
    }


@pytest.fixture
def sample_result():
    """Model reply that already matches the result schema"""
    return {
        "title": "Test Title",
        "story_type": "short-story",
        "genre": "fantasy",
        "description": "A brief tale",
        "content": "Once upon a time...",
    }


@pytest.fixture
def fenced(sample_result):
    return "```json\n" + json.dumps(sample_result) + "\n```"


@pytest.fixture
def sample_draft():
    return {
        "title": "Draft",
        "content": "Body of the story",
        "story_type": "short-story",
        "genre": "drama",
    }
