"""
Story generation pipeline: compose, invoke, extract, validate/coerce
"""

from typing import Any, Dict, Optional
from datetime import datetime
import logging
import math
import time

from models.generation_models import GenerateResponse, GenerationResult
from prompt.prompt_composer import compose_prompt
from providers.generation_transport import GenerationTransport, TransportFactory, TransportResponse
from utils.envelope import derive_text, unwrap_envelope
from utils.errors import ParseError, PromptCompositionError, RateLimitError, TransportError, ValidationError
from utils.json_extractor import ExtractionResult, extract_with_strategy
from utils.result_validator import coerce_result, to_result, validate_schema

logger = logging.getLogger(__name__)

PARSE_ERROR_MESSAGE = "Could not parse JSON from model response"
VALIDATION_ERROR_MESSAGE = "Response JSON did not match expected schema"


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Retry-After rounded up to whole seconds; HTTP-date values are ignored"""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return math.ceil(seconds)


def rate_limit_message(retry_after: Optional[int], body: str) -> str:
    wait = f" ~{retry_after}s" if retry_after else ""
    return f"Rate limited. Please wait{wait} and try again using exponential backoff. ({body or 'Too Many Requests'})"


class GenerationService:
    """One generation per call; retries are the caller's decision"""

    def __init__(self, transport: Optional[GenerationTransport] = None):
        self.transport = transport or TransportFactory.get_transport()
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            "total_requests": 0,
            "successful_generations": 0,
            "coerced_results": 0,
            "failures": {},
            "average_generation_time": 0.0
        }

    async def generate_story(self, payload: Any) -> GenerateResponse:
        start_time = time.time()
        self.stats["total_requests"] += 1

        response = await self._generate(payload)

        if response.ok:
            self._record_success(time.time() - start_time)
        else:
            code = str(response.error.code)
            self.stats["failures"][code] = self.stats["failures"].get(code, 0) + 1
            logger.warning(f"generation failed: {code} {response.error.message[:200]}")

        return response

    async def _generate(self, payload: Any) -> GenerateResponse:
        try:
            prompt = compose_prompt(payload)
        except PromptCompositionError as e:
            logger.error(f"prompt composition failed: {e}")
            return GenerateResponse.failure("PROMPT_ERROR", str(e) or "Failed to compose prompt")

        logger.debug(f"prompt composed ({len(prompt)} chars), invoking {self.transport.get_transport_name()}")

        try:
            transport_response = await self.transport.invoke({"prompt": prompt})
            self._check_response(transport_response)
            result = self._build_result(transport_response.data, payload)
            return GenerateResponse.success(result)

        except RateLimitError as e:
            return GenerateResponse.failure(429, str(e), retry_after=e.retry_after)
        except TransportError as e:
            if e.status is None and not e.body:
                return GenerateResponse.failure("NETWORK_ERROR", str(e) or "Network error")
            return GenerateResponse.failure(e.code, e.body or str(e))
        except ParseError as e:
            return GenerateResponse.failure("PARSE_ERROR", str(e))
        except ValidationError as e:
            return GenerateResponse.failure("VALIDATION_ERROR", str(e))
        except Exception as e:
            logger.error(f"generation failed: {type(e).__name__}: {e}", exc_info=True)
            return GenerateResponse.failure("NETWORK_ERROR", str(e) or "Network error")

    def _check_response(self, response: TransportResponse) -> None:
        if response.ok:
            return

        body = response.text
        if response.status == 429:
            retry_after = parse_retry_after(response.header("Retry-After"))
            if retry_after is None and isinstance(response.data, dict):
                retry_after = parse_retry_after(response.data.get("retryAfter"))
            raise RateLimitError(rate_limit_message(retry_after, body), body=body, retry_after=retry_after)

        raise TransportError(body or "Request failed", status=response.status or None,
                             body=body or "Request failed")

    def _build_result(self, data: Any, payload: Any) -> GenerationResult:
        text = derive_text(data)

        extraction = extract_with_strategy(text)
        if not extraction.found and not isinstance(data, str):
            extraction = extract_with_strategy(data)
        if not extraction.found and isinstance(data, dict):
            # A structured response may already be the object itself
            extraction = ExtractionResult(data, "structured")
        if not extraction.found:
            raise ParseError(PARSE_ERROR_MESSAGE)

        candidate = extraction.value
        logger.debug(f"candidate extracted via {extraction.strategy}")

        if validate_schema(candidate):
            return to_result(candidate)

        coerced = None
        inner_text = unwrap_envelope(candidate)
        if inner_text is not None:
            inner = extract_with_strategy(inner_text)
            if inner.found and validate_schema(inner.value):
                return to_result(inner.value)
            if inner.found:
                coerced = coerce_result(inner.value, payload)

        if coerced is None:
            coerced = coerce_result(candidate, payload)
        if coerced is None:
            raise ValidationError(VALIDATION_ERROR_MESSAGE)

        self.stats["coerced_results"] += 1
        logger.info("model response coerced into a valid result")
        return coerced

    def _record_success(self, generation_time: float):
        self.stats["successful_generations"] += 1
        count = self.stats["successful_generations"]
        current_avg = self.stats["average_generation_time"]
        self.stats["average_generation_time"] = ((current_avg * (count - 1)) + generation_time) / count

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "transport": self.transport.get_transport_name(),
            "success_rate": (
                self.stats["successful_generations"] / max(self.stats["total_requests"], 1) * 100
            ),
            "last_updated": datetime.now().isoformat()
        }

    def reset_stats(self):
        self.stats = self._empty_stats()
