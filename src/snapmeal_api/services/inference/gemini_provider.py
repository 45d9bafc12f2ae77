"""Google Gemini vision provider (``generateContent`` with inline image data)."""

import logging
import time

import httpx

from snapmeal_api.models.provider_config import ProviderKind

from .base import InferenceProvider, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)


class GeminiVisionProvider(InferenceProvider):
    """Nutrition analysis with a Gemini multimodal model over the REST API."""

    kind = ProviderKind.GEMINI
    default_base_url = "https://generativelanguage.googleapis.com"

    def _headers(self) -> dict[str, str]:
        # Header rather than ?key= so the credential never appears in URLs or logs
        return {"x-goog-api-key": self._credential or ""}

    def _model_url(self, model: str) -> str:
        return f"{self.base_url}/v1beta/models/{model}"

    async def analyze(self, request: ProviderRequest) -> ProviderResponse:
        started = time.monotonic()
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": request.prompt},
                        {
                            "inline_data": {
                                "mime_type": request.mime_type,
                                "data": request.image_b64,
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }

        logger.info(f"Sending nutrition analysis request to {self.provider_name}")
        data = await self._post_json(f"{self._model_url(request.model_name)}:generateContent", body)

        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise self._missing_text(f"no candidates (blockReason={block_reason})")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not text.strip():
            raise self._missing_text(
                f"empty candidate (finishReason={candidates[0].get('finishReason')})"
            )

        return self._response(text, started)

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(
                self._model_url(self.model),
                headers=self._headers(),
                timeout=self.timeout,
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Gemini health check failed: {e}")
            return False
