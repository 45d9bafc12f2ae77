"""OpenAI vision provider (chat completions with an inline image)."""

import logging
import time

import httpx

from snapmeal_api.models.provider_config import ProviderKind

from .base import InferenceProvider, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)


class OpenAIVisionProvider(InferenceProvider):
    """
    Nutrition analysis with an OpenAI vision model.

    The image travels as a base64 data URI in an ``image_url`` content part;
    ``response_format=json_object`` asks the model for bare JSON.
    """

    kind = ProviderKind.OPENAI
    default_base_url = "https://api.openai.com/v1"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._credential}"}

    async def analyze(self, request: ProviderRequest) -> ProviderResponse:
        started = time.monotonic()
        body = {
            "model": request.model_name,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": request.prompt},
                        {"type": "image_url", "image_url": {"url": request.data_uri}},
                    ],
                }
            ],
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "response_format": {"type": "json_object"},
        }

        logger.info(f"Sending nutrition analysis request to {self.provider_name}")
        data = await self._post_json(f"{self.base_url}/chat/completions", body)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise self._missing_text("no choices[0].message.content") from e
        if not isinstance(content, str) or not content.strip():
            raise self._missing_text("empty message content")

        return self._response(content, started)

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(
                f"{self.base_url}/models/{self.model}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"OpenAI health check failed: {e}")
            return False
