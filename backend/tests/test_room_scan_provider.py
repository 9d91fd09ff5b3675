"""Tests for the vision provider layer.

Covers:
- retry/backoff controller (attempt bound, fatal short-circuit, backoff cap)
- Gemini HTTP error classification and model fallback
- provider factory and model chain resolution
"""

import asyncio
import json
import unittest

import httpx
import pytest

from app.core.config import Settings
from app.services.ai.common.providers import MockVisionProvider, get_provider
from app.services.ai.common.providers.gemini import GeminiVisionProvider, build_prompt, classify_http_error
from app.services.ai.common.retry import RetryPolicy, call_with_retry, compute_backoff_ms, is_transient_error
from app.services.ai.common.router import resolve, resolve_models
from app.services.room_scan.errors import (
    ModelUnsupportedError,
    ProviderFatalError,
    ProviderRetryExhaustedError,
    ProviderTransientError,
)


class _FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def _gemini_body(text, *, prompt_tokens=120, output_tokens=40):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {
            "promptTokenCount": prompt_tokens,
            "candidatesTokenCount": output_tokens,
            "totalTokenCount": prompt_tokens + output_tokens,
        },
    }


class RetryControllerTests(unittest.TestCase):
    def test_always_transient_stops_after_max_attempts(self):
        calls = []

        async def always_busy():
            calls.append(1)
            raise ProviderTransientError("Gemini 429: rate limit", status=429)

        sleep = _FakeSleep()
        policy = RetryPolicy(max_attempts=4, base_delay_ms=500, max_delay_ms=8000, jitter_ms=0)
        with self.assertRaises(ProviderRetryExhaustedError) as ctx:
            asyncio.run(call_with_retry(always_busy, policy=policy, sleep=sleep))

        self.assertEqual(len(calls), 4)
        self.assertEqual(ctx.exception.attempts, 4)
        self.assertIsInstance(ctx.exception.__cause__, ProviderTransientError)
        self.assertEqual(sleep.delays, [0.5, 1.0, 2.0])

    def test_fatal_error_is_not_retried(self):
        calls = []

        async def rejected():
            calls.append(1)
            raise ProviderFatalError("Gemini rejected credentials (401)", status=401)

        sleep = _FakeSleep()
        with self.assertRaises(ProviderFatalError) as ctx:
            asyncio.run(call_with_retry(rejected, policy=RetryPolicy(), sleep=sleep))

        self.assertNotIsInstance(ctx.exception, ProviderRetryExhaustedError)
        self.assertEqual(len(calls), 1)
        self.assertEqual(sleep.delays, [])

    def test_recovers_after_transient_failures(self):
        calls = []

        async def flaky(value, *, suffix=""):
            calls.append(1)
            if len(calls) < 3:
                raise ProviderTransientError("Gemini 503: unavailable", status=503)
            return value + suffix

        sleep = _FakeSleep()
        result = asyncio.run(call_with_retry(flaky, "ok", suffix="!", policy=RetryPolicy(jitter_ms=0), sleep=sleep))
        self.assertEqual(result, "ok!")
        self.assertEqual(len(calls), 3)
        self.assertEqual(len(sleep.delays), 2)

    def test_backoff_is_capped(self):
        policy = RetryPolicy(max_attempts=10, base_delay_ms=500, max_delay_ms=8000, jitter_ms=0)
        self.assertEqual(compute_backoff_ms(policy, 1), 500)
        self.assertEqual(compute_backoff_ms(policy, 4), 4000)
        self.assertEqual(compute_backoff_ms(policy, 5), 8000)
        self.assertEqual(compute_backoff_ms(policy, 12), 8000)

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(base_delay_ms=500, max_delay_ms=8000, jitter_ms=150)
        for _ in range(50):
            delay = compute_backoff_ms(policy, 2)
            self.assertGreaterEqual(delay, 1000)
            self.assertLessEqual(delay, 1150)

    def test_transient_classification(self):
        self.assertTrue(is_transient_error(ProviderTransientError("x")))
        self.assertTrue(is_transient_error(httpx.ReadTimeout("slow")))
        self.assertTrue(is_transient_error(RuntimeError("Rate limit exceeded")))
        self.assertTrue(is_transient_error(RuntimeError("Service temporarily unavailable")))
        self.assertTrue(is_transient_error(RuntimeError("quota exhausted for project")))
        self.assertFalse(is_transient_error(RuntimeError("invalid argument")))
        self.assertFalse(is_transient_error(ProviderFatalError("quota exceeded for billing")))
        self.assertFalse(is_transient_error(ModelUnsupportedError("model not found")))

    def test_policy_from_settings(self):
        s = Settings(room_scan_max_attempts=2, room_scan_backoff_base_ms=10, room_scan_backoff_jitter_ms=0)
        policy = RetryPolicy.from_settings(s)
        self.assertEqual(policy.max_attempts, 2)
        self.assertEqual(policy.base_delay_ms, 10)
        self.assertEqual(policy.jitter_ms, 0)


class GeminiErrorClassificationTests(unittest.TestCase):
    def _resp(self, status, message="boom"):
        return httpx.Response(status, json={"error": {"code": status, "message": message}})

    def test_404_is_model_unsupported(self):
        self.assertIsInstance(classify_http_error("m", self._resp(404)), ModelUnsupportedError)

    def test_400_model_not_supported(self):
        exc = classify_http_error("m", self._resp(400, "models/m is not supported for generateContent"))
        self.assertIsInstance(exc, ModelUnsupportedError)

    def test_400_other_is_fatal(self):
        exc = classify_http_error("m", self._resp(400, "Invalid JSON payload"))
        self.assertIsInstance(exc, ProviderFatalError)
        self.assertNotIsInstance(exc, ModelUnsupportedError)

    def test_429_and_503_are_transient(self):
        self.assertIsInstance(classify_http_error("m", self._resp(429)), ProviderTransientError)
        self.assertIsInstance(classify_http_error("m", self._resp(503)), ProviderTransientError)

    def test_auth_failure_is_fatal(self):
        exc = classify_http_error("m", self._resp(403, "API key not valid"))
        self.assertIsInstance(exc, ProviderFatalError)
        self.assertEqual(exc.status, 403)

    def test_prompt_mentions_room_type(self):
        self.assertIn("Room type hint: KITCHEN", build_prompt("KITCHEN"))
        self.assertIn("Room type hint: unknown", build_prompt(None))


class GeminiProviderTests(unittest.TestCase):
    def _provider(self, handler, *, models=("model-a", "model-b"), api_key="test-key"):
        return GeminiVisionProvider(
            api_key,
            models=models,
            base_url="https://gemini.test/v1beta",
            transport=httpx.MockTransport(handler),
        )

    def test_falls_back_to_next_model_when_unsupported(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            self.assertEqual(request.headers["x-goog-api-key"], "test-key")
            if "model-a" in request.url.path:
                return httpx.Response(404, json={"error": {"message": "model-a is not found"}})
            body = json.loads(request.content)
            self.assertEqual(body["contents"][0]["parts"][1]["inline_data"]["mime_type"], "image/jpeg")
            return httpx.Response(200, json=_gemini_body('{"items": [{"label": "TV", "confidence": 0.8}]}'))

        result = asyncio.run(self._provider(handler).extract_items([b"jpeg-bytes"], room_type="LIVING_ROOM"))

        self.assertEqual(
            seen,
            ["/v1beta/models/model-a:generateContent", "/v1beta/models/model-b:generateContent"],
        )
        self.assertEqual(result.raw.model, "model-b")
        self.assertEqual([i.label for i in result.items], ["TV"])
        self.assertEqual(result.raw.total_tokens, 160)

    def test_fenced_model_output_is_parsed(self):
        def handler(request):
            return httpx.Response(200, json=_gemini_body('```json\n{"items": [{"label": "Desk"}]}\n```'))

        result = asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertEqual(result.raw.model, "model-a")
        self.assertEqual([i.label for i in result.items], ["Desk"])

    def test_unparseable_output_yields_zero_items(self):
        def handler(request):
            return httpx.Response(200, json=_gemini_body("I see a cozy room."))

        result = asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertEqual(result.items, [])
        self.assertEqual(result.raw.text, "I see a cozy room.")

    def test_non_json_success_body_is_fatal_provider_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>", headers={"content-type": "text/html"})

        with self.assertRaises(ProviderFatalError) as ctx:
            asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertEqual(ctx.exception.code, "ROOM_SCAN_PROVIDER_ERROR")
        self.assertIn("malformed response for model-a", ctx.exception.message)
        self.assertFalse(is_transient_error(ctx.exception))

    def test_non_object_success_body_is_fatal_provider_error(self):
        def handler(request):
            return httpx.Response(200, json=["not", "an", "object"])

        with self.assertRaises(ProviderFatalError):
            asyncio.run(self._provider(handler).extract_items([b"x"]))

    def test_odd_candidate_shapes_yield_zero_items(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": ["text"], "usageMetadata": "n/a"})

        result = asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertEqual(result.items, [])
        self.assertEqual(result.raw.usage, {})

    def test_all_models_unsupported_is_fatal(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "not found"}})

        with self.assertRaises(ProviderFatalError) as ctx:
            asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertIn("All candidate models unsupported", ctx.exception.message)

    def test_transient_error_is_not_a_fallback_trigger(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}})

        with self.assertRaises(ProviderTransientError):
            asyncio.run(self._provider(handler).extract_items([b"x"]))
        self.assertEqual(len(seen), 1)

    def test_retry_wraps_whole_provider_call(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(503, json={"error": {"message": "The model is overloaded"}})

        provider = self._provider(handler, models=("model-a",))
        sleep = _FakeSleep()
        with self.assertRaises(ProviderRetryExhaustedError):
            asyncio.run(
                call_with_retry(provider.extract_items, [b"x"], policy=RetryPolicy(max_attempts=3), sleep=sleep)
            )
        self.assertEqual(len(seen), 3)
        self.assertEqual(len(sleep.delays), 2)

    def test_missing_api_key_is_config_error(self):
        def handler(request):  # pragma: no cover - never reached
            raise AssertionError("no request expected")

        with self.assertRaises(ProviderFatalError) as ctx:
            asyncio.run(self._provider(handler, api_key="").extract_items([b"x"]))
        self.assertEqual(ctx.exception.code, "ROOM_SCAN_CONFIG_ERROR")


class ProviderFactoryTests(unittest.TestCase):
    def test_mock_provider_selected_by_name(self):
        provider = get_provider("mock", settings=Settings())
        self.assertIsInstance(provider, MockVisionProvider)
        self.assertEqual(provider.name, "mock")

    def test_gemini_selected_by_default_settings(self):
        s = Settings(room_scan_provider="gemini", gemini_api_key="k")
        provider = get_provider(settings=s)
        self.assertIsInstance(provider, GeminiVisionProvider)

    def test_unknown_provider_falls_back_to_gemini(self):
        provider = get_provider("does-not-exist", settings=Settings(gemini_api_key="k"))
        self.assertIsInstance(provider, GeminiVisionProvider)

    def test_mock_provider_counts_calls_and_parses(self):
        provider = MockVisionProvider('{"items": [{"label": "Lamp"}, {"label": ""}]}')
        result = asyncio.run(provider.extract_items([b"a", b"b"]))
        self.assertEqual(provider.calls, 1)
        self.assertEqual([i.label for i in result.items], ["Lamp"])
        self.assertEqual(result.raw.prompt_tokens, 2)


class ModelChainTests(unittest.TestCase):
    def test_override_first_then_fallbacks_without_duplicates(self):
        chain = resolve_models("models/gemini-2.5-flash", ["gemini-2.0-flash", "gemini-2.5-flash", " "])
        self.assertEqual(chain, ("gemini-2.5-flash", "gemini-2.0-flash"))

    def test_no_override(self):
        self.assertEqual(resolve_models("", ["a", "b"]), ("a", "b"))

    def test_resolve_reads_settings(self):
        s = Settings(
            room_scan_model_override="custom-model",
            room_scan_fallback_models_raw='["gemini-2.0-flash"]',
            room_scan_timeout_seconds=12,
        )
        config = resolve(s)
        self.assertEqual(config.models, ("custom-model", "gemini-2.0-flash"))
        self.assertEqual(config.timeout_seconds, 12)


@pytest.mark.asyncio
async def test_mock_provider_default_payload_has_detection_meta():
    result = await MockVisionProvider().extract_items([b"x"], room_type="LIVING_ROOM")
    (item,) = result.items
    assert item.label == "Sofa"
    assert item.category == "FURNITURE"
    assert item.boxes[0].image_index == 0
    assert item.explanation.tier == "MEDIUM"
    assert result.raw.model == "mock-vision-v1"


if __name__ == "__main__":
    unittest.main()
