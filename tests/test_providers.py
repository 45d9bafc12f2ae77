"""Tests for provider wire formats and HTTP error mapping."""

import base64
import json
from datetime import UTC, datetime

import httpx
import pytest

from snapmeal_api.core.exceptions import (
    ProviderCallError,
    ProviderNotConfiguredError,
    ProviderResponseError,
)
from snapmeal_api.models.provider_config import ProviderConfigSnapshot, ProviderKind
from snapmeal_api.services.inference import create_provider
from snapmeal_api.services.inference.base import (
    DEFAULT_PROMPT,
    OUTPUT_SCHEMA_INSTRUCTION,
    ProviderRequest,
    build_prompt,
)
from snapmeal_api.services.inference.gemini_provider import GeminiVisionProvider
from snapmeal_api.services.inference.ollama_provider import OllamaVisionProvider
from snapmeal_api.services.inference.openai_provider import OpenAIVisionProvider

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"
ANSWER = '{"foodName": "Pancakes", "calories": 350, "protein": 8, "carbs": 60, "fat": 9}'


def make_request(model: str = "test-model") -> ProviderRequest:
    return ProviderRequest(
        model_name=model,
        prompt="Analyze this meal",
        image_data=IMAGE,
        mime_type="image/jpeg",
        temperature=0.2,
        max_output_tokens=400,
    )


def make_snapshot(kind: ProviderKind, model: str = "test-model") -> ProviderConfigSnapshot:
    return ProviderConfigSnapshot(
        config_id="cfg-1",
        provider_kind=kind,
        model_name=model,
        temperature=0.2,
        max_output_tokens=400,
        version=1,
        loaded_at=datetime.now(UTC),
    )


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def client_for(recorder: Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


class TestPrompt:
    def test_default_prompt_includes_schema(self):
        prompt = build_prompt(None)

        assert prompt.startswith(DEFAULT_PROMPT)
        assert prompt.endswith(OUTPUT_SCHEMA_INSTRUCTION)

    def test_custom_prompt_keeps_schema(self):
        prompt = build_prompt("Be brief.")

        assert prompt.startswith("Be brief.")
        assert OUTPUT_SCHEMA_INSTRUCTION in prompt
        assert DEFAULT_PROMPT not in prompt


class TestOpenAIVisionProvider:
    """Tests for the OpenAI wire format."""

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        recorder = Recorder(
            httpx.Response(200, json={"choices": [{"message": {"content": ANSWER}}]})
        )
        async with client_for(recorder) as http_client:
            provider = OpenAIVisionProvider(http_client, "gpt-4o", credential="sk-test")
            response = await provider.analyze(make_request("gpt-4o"))

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"

        body = recorder.last_json
        assert body["model"] == "gpt-4o"
        assert body["max_tokens"] == 400
        assert body["response_format"] == {"type": "json_object"}
        text_part, image_part = body["messages"][0]["content"]
        assert text_part == {"type": "text", "text": "Analyze this meal"}
        assert image_part["image_url"]["url"] == (
            "data:image/jpeg;base64," + base64.b64encode(IMAGE).decode()
        )

        assert response.raw_text == ANSWER
        assert response.provider == ProviderKind.OPENAI
        assert response.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_empty_content(self):
        recorder = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": ""}}]}))
        async with client_for(recorder) as http_client:
            provider = OpenAIVisionProvider(http_client, "gpt-4o", credential="sk-test")
            with pytest.raises(ProviderResponseError):
                await provider.analyze(make_request())

    @pytest.mark.asyncio
    async def test_missing_choices(self):
        recorder = Recorder(httpx.Response(200, json={"error": "nope"}))
        async with client_for(recorder) as http_client:
            provider = OpenAIVisionProvider(http_client, "gpt-4o", credential="sk-test")
            with pytest.raises(ProviderResponseError):
                await provider.analyze(make_request())


class TestGeminiVisionProvider:
    """Tests for the Gemini wire format."""

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        recorder = Recorder(
            httpx.Response(
                200,
                json={
                    "candidates": [
                        {"content": {"parts": [{"text": ANSWER[:20]}, {"text": ANSWER[20:]}]}}
                    ]
                },
            )
        )
        async with client_for(recorder) as http_client:
            provider = GeminiVisionProvider(http_client, "gemini-2.5-flash", credential="g-key")
            response = await provider.analyze(make_request("gemini-2.5-flash"))

        request = recorder.requests[0]
        assert request.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "g-key"
        assert "key" not in request.url.params

        body = recorder.last_json
        parts = body["contents"][0]["parts"]
        assert parts[0] == {"text": "Analyze this meal"}
        assert parts[1]["inline_data"] == {
            "mime_type": "image/jpeg",
            "data": base64.b64encode(IMAGE).decode(),
        }
        assert body["generationConfig"]["maxOutputTokens"] == 400
        assert response.raw_text == ANSWER

    @pytest.mark.asyncio
    async def test_blocked_prompt(self):
        recorder = Recorder(
            httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})
        )
        async with client_for(recorder) as http_client:
            provider = GeminiVisionProvider(http_client, "gemini-2.5-flash", credential="g-key")
            with pytest.raises(ProviderResponseError, match="SAFETY"):
                await provider.analyze(make_request())


class TestOllamaVisionProvider:
    """Tests for the Ollama wire format."""

    @pytest.mark.asyncio
    async def test_request_and_response(self):
        recorder = Recorder(httpx.Response(200, json={"response": ANSWER, "done": True}))
        async with client_for(recorder) as http_client:
            provider = OllamaVisionProvider(
                http_client, "llava:7b", base_url="http://ollama:11434/"
            )
            response = await provider.analyze(make_request("llava:7b"))

        assert str(recorder.requests[0].url) == "http://ollama:11434/api/generate"
        body = recorder.last_json
        assert body["images"] == [base64.b64encode(IMAGE).decode()]
        assert body["stream"] is False
        assert body["format"] == "json"
        assert body["options"]["num_predict"] == 400
        assert response.raw_text == ANSWER

    @pytest.mark.asyncio
    async def test_health_check(self):
        recorder = Recorder(
            httpx.Response(200, json={"models": [{"name": "llava:7b-v1.6"}]})
        )
        async with client_for(recorder) as http_client:
            assert await OllamaVisionProvider(http_client, "llava:7b").health_check() is True
            assert await OllamaVisionProvider(http_client, "bakllava").health_check() is False


class TestErrorMapping:
    """Transport and status failures surface as typed errors."""

    @pytest.mark.asyncio
    async def test_server_error(self):
        recorder = Recorder(httpx.Response(500, text="overloaded"))
        async with client_for(recorder) as http_client:
            provider = OllamaVisionProvider(http_client, "llava:7b")
            with pytest.raises(ProviderCallError) as exc_info:
                await provider.analyze(make_request())

        error = exc_info.value
        assert error.status_code == 502
        assert error.upstream_status == 500
        assert error.retryable is True
        assert error.details["body"] == "overloaded"

    @pytest.mark.asyncio
    async def test_timeout(self):
        recorder = Recorder(error=httpx.ReadTimeout("slow"))
        async with client_for(recorder) as http_client:
            provider = OllamaVisionProvider(http_client, "llava:7b", timeout=5.0)
            with pytest.raises(ProviderCallError) as exc_info:
                await provider.analyze(make_request())

        assert exc_info.value.timeout is True
        assert exc_info.value.status_code == 504

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        recorder = Recorder(error=httpx.ConnectError("refused"))
        async with client_for(recorder) as http_client:
            provider = OllamaVisionProvider(http_client, "llava:7b")
            with pytest.raises(ProviderCallError) as exc_info:
                await provider.analyze(make_request())

        assert exc_info.value.timeout is False

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        recorder = Recorder(httpx.Response(200, text="<html>proxy</html>"))
        async with client_for(recorder) as http_client:
            provider = OllamaVisionProvider(http_client, "llava:7b")
            with pytest.raises(ProviderResponseError):
                await provider.analyze(make_request())


class TestFactory:
    @pytest.mark.asyncio
    async def test_builds_provider_for_kind(self):
        async with httpx.AsyncClient() as http_client:
            provider = create_provider(
                make_snapshot(ProviderKind.GEMINI), "g-key", http_client, timeout=12.0
            )

        assert isinstance(provider, GeminiVisionProvider)
        assert provider.timeout == 12.0
        assert provider.base_url == "https://generativelanguage.googleapis.com"

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        async with httpx.AsyncClient() as http_client:
            with pytest.raises(ProviderNotConfiguredError):
                create_provider(make_snapshot(ProviderKind.OPENAI), None, http_client)

    @pytest.mark.asyncio
    async def test_ollama_needs_no_credential(self):
        async with httpx.AsyncClient() as http_client:
            provider = create_provider(make_snapshot(ProviderKind.OLLAMA), None, http_client)

        assert isinstance(provider, OllamaVisionProvider)
