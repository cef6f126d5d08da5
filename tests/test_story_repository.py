"""
PostgREST story repository tests against a local aiohttp server
"""
import asyncio
import pytest
from aiohttp import test_utils, web

from providers.story_repository import PostgrestStoryRepository


def run_against(handler, call):
    """Serve `handler` for the story table and run `call(repository)`; returns (result, seen requests)"""
    seen = []

    async def recorded(request):
        seen.append(request)
        return await handler(request)

    async def scenario():
        app = web.Application()
        app.router.add_route("*", "/rest/v1/story_starter_stories", recorded)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            repository = PostgrestStoryRepository(str(server.make_url("/")), "anon-key", timeout=5)
            return await call(repository)
        finally:
            await server.close()

    return asyncio.run(scenario()), seen


async def unavailable(request):
    return web.Response(status=503, text="upstream connect error", content_type="text/plain")


@pytest.mark.unit
class TestErrorBodies:
    """Failures keep their status even without a JSON body"""

    def test_insert_plain_text_error(self):
        result, _ = run_against(unavailable, lambda repo: repo.insert({"title": "t"}))
        assert result.error.code == 503
        assert result.error.message == "upstream connect error"

    def test_select_plain_text_error(self):
        result, _ = run_against(unavailable, lambda repo: repo.select())
        assert result.error.code == 503
        assert result.error.message == "upstream connect error"

    def test_empty_error_body(self):
        async def handler(request):
            return web.Response(status=500)

        result, _ = run_against(handler, lambda repo: repo.insert({"title": "t"}))
        assert result.error.code == 500
        assert result.error.message == "HTTP 500"

    def test_postgrest_error_payload(self):
        async def handler(request):
            return web.json_response({"message": "permission denied", "code": "42501"}, status=401)

        result, _ = run_against(handler, lambda repo: repo.insert({"title": "t"}))
        assert result.error.code == "42501"
        assert result.error.message == "permission denied"


@pytest.mark.unit
class TestRequests:
    """Request shape and parsing"""

    def test_insert_returns_id(self):
        async def handler(request):
            return web.json_response([{"id": "story-1"}], status=201)

        result, seen = run_against(handler, lambda repo: repo.insert({"title": "t"}))
        assert result.error is None
        assert result.data == {"id": "story-1"}
        assert seen[0].method == "POST"
        assert seen[0].headers["Prefer"] == "return=representation"

    def test_caller_token_sent(self):
        async def handler(request):
            return web.json_response([{"id": "story-1"}], status=201)

        _, seen = run_against(handler, lambda repo: repo.insert({"title": "t"}, access_token="user-jwt"))
        assert seen[0].headers["Authorization"] == "Bearer user-jwt"
        assert seen[0].headers["apikey"] == "anon-key"

    def test_anon_key_without_caller_token(self):
        async def handler(request):
            return web.json_response([], headers={"Content-Range": "*/0"})

        _, seen = run_against(handler, lambda repo: repo.select())
        assert seen[0].headers["Authorization"] == "Bearer anon-key"

    def test_select_filters_and_count(self):
        async def handler(request):
            return web.json_response([{"id": "a"}, {"id": "b"}], status=206,
                                     headers={"Content-Range": "0-1/7"})

        result, seen = run_against(
            handler, lambda repo: repo.select({"is_private": False, "story_type": "short-story"}, 0, 1,
                                              access_token="user-jwt"))
        assert [row["id"] for row in result.data] == ["a", "b"]
        assert result.count == 7
        assert seen[0].query["is_private"] == "eq.false"
        assert seen[0].query["story_type"] == "eq.short-story"
        assert seen[0].headers["Range"] == "0-1"
        assert seen[0].headers["Authorization"] == "Bearer user-jwt"
