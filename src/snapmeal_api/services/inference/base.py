"""
Base classes for vision inference providers.

Defines the abstract interface every backend implements plus the request and
response envelopes passed between the orchestrator and a provider.
"""

import base64
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from snapmeal_api.core.exceptions import ProviderCallError, ProviderResponseError
from snapmeal_api.models.provider_config import ProviderConfigSnapshot, ProviderKind

logger = logging.getLogger(__name__)


DEFAULT_PROMPT = """You are a nutrition expert. Analyze this food image and estimate the nutritional content of what is ACTUALLY VISIBLE.

Identify each distinct food item. Estimate realistic portion sizes from the image and give calories and macronutrients (protein, carbohydrates, fat, fiber in grams) for the portion shown.
If you cannot identify the food clearly, make reasonable estimates based on what you can see."""


OUTPUT_SCHEMA_INSTRUCTION = """Respond with ONLY a JSON object in this exact format:
{
  "foodName": "<descriptive name of the meal>",
  "calories": <number>,
  "protein": <number>,
  "carbs": <number>,
  "fat": <number>,
  "fiber": <number>,
  "confidence": <0.0-1.0>,
  "items": [
    {"foodName": "<item name>", "calories": <number>, "protein": <number>, "carbs": <number>, "fat": <number>, "fiber": <number>}
  ]
}

Include "items" only when more than one distinct food is visible. All values are for the visible portion. Do not include any text outside the JSON."""


def build_prompt(prompt_template: str | None) -> str:
    """Merge a configured prompt (or the default) with the fixed output schema."""
    prompt = (prompt_template or "").strip() or DEFAULT_PROMPT
    return f"{prompt}\n\n{OUTPUT_SCHEMA_INSTRUCTION}"


@dataclass(frozen=True)
class ProviderRequest:
    """Everything a provider needs for one analysis call."""

    model_name: str
    prompt: str
    image_data: bytes
    mime_type: str
    temperature: float
    max_output_tokens: int

    @classmethod
    def from_snapshot(
        cls, snapshot: ProviderConfigSnapshot, image_data: bytes, mime_type: str
    ) -> "ProviderRequest":
        return cls(
            model_name=snapshot.model_name,
            prompt=build_prompt(snapshot.prompt_template),
            image_data=image_data,
            mime_type=mime_type,
            temperature=snapshot.temperature,
            max_output_tokens=snapshot.max_output_tokens,
        )

    @property
    def image_b64(self) -> str:
        return base64.b64encode(self.image_data).decode("ascii")

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.image_b64}"


@dataclass(frozen=True)
class ProviderResponse:
    """Raw model text plus call metadata. Only normalization reads ``raw_text``."""

    raw_text: str
    provider: ProviderKind
    model: str
    latency_ms: int


class InferenceProvider(ABC):
    """
    Abstract base class for vision inference backends.

    All providers share one ``httpx.AsyncClient`` owned by the application;
    a provider instance is cheap and built per request from the active
    config snapshot.

    Errors:
        ProviderCallError: timeout, transport failure or non-2xx status
        ProviderResponseError: 2xx body without the expected text
    """

    kind: ProviderKind
    default_base_url: str = ""
    requires_credential: bool = True

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        model: str,
        *,
        base_url: str | None = None,
        credential: str | None = None,
        timeout: float = 30.0,
    ):
        self._client = http_client
        self.model = model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self._credential = credential
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return f"{self.kind.value}/{self.model}"

    @abstractmethod
    async def analyze(self, request: ProviderRequest) -> ProviderResponse:
        """
        Send the image and prompt to the backend.

        Args:
            request: Request built from the active config snapshot

        Returns:
            ProviderResponse with the model's raw text
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backend is reachable and the model is available."""
        ...

    def _headers(self) -> dict[str, str]:
        return {}

    async def _post_json(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body and return the decoded JSON response."""
        try:
            response = await self._client.post(
                url, json=body, headers=self._headers(), timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise ProviderCallError(
                f"{self.provider_name} request timed out after {self.timeout}s",
                provider=self.provider_name,
                timeout=True,
            ) from e
        except httpx.RequestError as e:
            raise ProviderCallError(
                f"Failed to connect to {self.provider_name}: {e}",
                provider=self.provider_name,
            ) from e

        if not response.is_success:
            logger.warning(f"{self.provider_name} returned HTTP {response.status_code}")
            raise ProviderCallError(
                f"{self.provider_name} API error: {response.status_code}",
                provider=self.provider_name,
                status_code=response.status_code,
                details={"body": response.text[:500]},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(
                f"{self.provider_name} returned a non-JSON body",
                provider=self.provider_name,
            ) from e
        if not isinstance(data, dict):
            raise ProviderResponseError(
                f"{self.provider_name} returned an unexpected body",
                provider=self.provider_name,
            )
        return data

    def _response(self, raw_text: str, started: float) -> ProviderResponse:
        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"{self.provider_name} answered in {latency_ms}ms")
        logger.debug(f"Raw {self.provider_name} response: {raw_text[:500]}")
        return ProviderResponse(
            raw_text=raw_text,
            provider=self.kind,
            model=self.model,
            latency_ms=latency_ms,
        )

    def _missing_text(self, detail: str) -> ProviderResponseError:
        return ProviderResponseError(
            f"{self.provider_name} response has no text: {detail}",
            provider=self.provider_name,
        )
