"""
Ollama provider for nutrition analysis.

Uses a self-hosted Ollama instance with a vision model (LLaVA by default).
"""

import logging
import time

import httpx

from snapmeal_api.models.provider_config import ProviderKind

from .base import InferenceProvider, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)


class OllamaVisionProvider(InferenceProvider):
    """
    Nutrition analysis using Ollama's ``/api/generate`` endpoint.

    No credential is needed; ``format=json`` constrains the model to JSON.
    """

    kind = ProviderKind.OLLAMA
    default_base_url = "http://localhost:11434"
    requires_credential = False

    async def analyze(self, request: ProviderRequest) -> ProviderResponse:
        started = time.monotonic()
        body = {
            "model": request.model_name,
            "prompt": request.prompt,
            "images": [request.image_b64],
            "stream": False,
            "format": "json",
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_output_tokens,
                "top_p": 0.9,
            },
        }

        logger.info(f"Sending nutrition analysis request to Ollama ({request.model_name})")
        data = await self._post_json(f"{self.base_url}/api/generate", body)

        raw_response = data.get("response")
        if not isinstance(raw_response, str) or not raw_response.strip():
            raise self._missing_text("empty 'response' field")

        return self._response(raw_response, started)

    async def health_check(self) -> bool:
        """Check if Ollama is available and has the required model."""
        try:
            # Check if Ollama is running
            response = await self._client.get(f"{self.base_url}/api/tags", timeout=self.timeout)
            if response.status_code != 200:
                return False

            # Check if the model is available
            tags = response.json()
            models = [m.get("name", "") for m in tags.get("models", [])]

            # Exact or prefix match (e.g., "llava:7b" in "llava:7b-v1.6")
            model_available = any(
                self.model in m or m.startswith(self.model.split(":")[0])
                for m in models
            )

            if not model_available:
                logger.warning(f"Model {self.model} not found. Available: {models}")
                return False

            return True

        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ollama health check failed: {e}")
            return False
