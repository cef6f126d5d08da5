"""
Edge proxy tests
"""
import asyncio
import json
import pytest

from models.edge_models import EdgeRequest
from providers.upstream_provider import UpstreamResponse
from services.edge_gateway import EdgeGateway, client_identifier, sanitize_prompt
from utils.rate_limiter import RateLimiter


def post(gateway, body, headers=None):
    raw = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    request = EdgeRequest(method="POST", headers=headers or {}, body=raw)
    return asyncio.run(gateway.handle_request(request))


@pytest.mark.unit
class TestRequestValidation:
    """Rejected before reaching upstream"""

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_method_not_allowed(self, edge_gateway, upstream, method):
        response = asyncio.run(edge_gateway.handle_request(EdgeRequest(method=method)))
        assert response.status == 405
        upstream.forward.assert_not_called()

    def test_unparseable_body(self, edge_gateway, upstream):
        response = post(edge_gateway, b"{not json")
        assert response.status == 400
        assert response.body == "Bad Request"
        upstream.forward.assert_not_called()

    @pytest.mark.parametrize("body", [{}, {"prompt": ""}, {"prompt": "   \n\t"}, {"prompt": 42}, ["prompt"]])
    def test_empty_prompt(self, edge_gateway, body):
        response = post(edge_gateway, body)
        assert response.status == 400
        assert "prompt empty" in response.body

    def test_prompt_too_long(self, edge_gateway, upstream):
        response = post(edge_gateway, {"prompt": "a" * 6001})
        assert response.status == 400
        assert "too long" in response.body
        upstream.forward.assert_not_called()

    def test_prompt_at_limit(self, edge_gateway):
        assert post(edge_gateway, {"prompt": "a" * 6000}).status == 200

    def test_length_checked_after_sanitizing(self, edge_gateway):
        """Whitespace runs collapse before the length check"""
        prompt = "a" + " " * 7000 + "b"
        assert post(edge_gateway, {"prompt": prompt}).status == 200


@pytest.mark.unit
class TestForwarding:
    """Upstream body and relayed answer"""

    def test_sanitized_body_sent_upstream(self, edge_gateway, upstream):
        post(edge_gateway, {"prompt": "  Hello\x00\x07  world\n\n\tagain \x7f end  "})
        upstream.forward.assert_awaited_once_with({"prompt": "Hello world again end"})

    def test_passthrough_fields(self, edge_gateway, upstream):
        post(edge_gateway, {"prompt": "hi", "model": "m-1", "maxTokens": 512, "temperature": 0.4, "apiKey": "x"})
        upstream.forward.assert_awaited_once_with(
            {"prompt": "hi", "model": "m-1", "maxTokens": 512, "temperature": 0.4}
        )

    def test_upstream_answer_relayed(self, edge_gateway):
        response = post(edge_gateway, {"prompt": "hi"})
        assert response.status == 200
        assert response.body == "ok"
        assert response.header("content-type") == "text/plain"

    def test_upstream_error_relayed(self, edge_gateway, upstream):
        upstream.forward.return_value = UpstreamResponse(status=503, text='{"error":"overloaded"}')
        response = post(edge_gateway, {"prompt": "hi"})
        assert response.status == 503
        assert response.body == '{"error":"overloaded"}'

    def test_upstream_unreachable(self, edge_gateway, upstream):
        upstream.forward.side_effect = ConnectionError("refused")
        response = post(edge_gateway, {"prompt": "hi"})
        assert response.status == 502
        assert "upstream unreachable" in response.body


@pytest.mark.unit
class TestRateLimiting:
    """Fixed window per forwarded-for client"""

    def test_ninth_request_rejected(self, edge_gateway):
        headers = {"X-Forwarded-For": "203.0.113.9"}
        statuses = [post(edge_gateway, {"prompt": "hi"}, headers).status for _ in range(8)]
        assert statuses == [200] * 8

        response = post(edge_gateway, {"prompt": "hi"}, headers)
        assert response.status == 429
        assert int(response.header("Retry-After")) >= 1

    def test_recovers_after_window(self, edge_gateway, clock):
        for _ in range(9):
            post(edge_gateway, {"prompt": "hi"})
        clock.advance(60)
        assert post(edge_gateway, {"prompt": "hi"}).status == 200

    def test_rejected_requests_not_forwarded(self, upstream, clock):
        gateway = EdgeGateway(upstream=upstream, rate_limiter=RateLimiter(limit=1, window_seconds=60, clock=clock))
        post(gateway, {"prompt": "hi"})
        post(gateway, {"prompt": "hi"})
        assert upstream.forward.await_count == 1

    def test_separate_clients(self, edge_gateway):
        for _ in range(8):
            post(edge_gateway, {"prompt": "hi"}, {"x-forwarded-for": "10.0.0.1"})
        assert post(edge_gateway, {"prompt": "hi"}, {"x-forwarded-for": "10.0.0.2"}).status == 200

    def test_invalid_requests_not_counted(self, edge_gateway):
        for _ in range(10):
            post(edge_gateway, {"prompt": ""})
        assert post(edge_gateway, {"prompt": "hi"}).status == 200


@pytest.mark.unit
class TestHelpers:
    """Sanitizer and client identifier"""

    def test_sanitize_prompt(self):
        assert sanitize_prompt("\ta\r\nb\x1b  c ") == "a b c"

    def test_client_identifier(self):
        assert client_identifier(EdgeRequest(method="POST", headers={"X-Forwarded-For": "1.1.1.1, 10.0.0.1"})) == "1.1.1.1"
        assert client_identifier(EdgeRequest(method="POST")) == "anon"
