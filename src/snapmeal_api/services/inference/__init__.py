"""Vision inference: provider registry, providers, normalization and orchestration."""

from .base import (
    DEFAULT_PROMPT,
    OUTPUT_SCHEMA_INSTRUCTION,
    InferenceProvider,
    ProviderRequest,
    ProviderResponse,
    build_prompt,
)
from .factory import PROVIDERS, create_provider
from .gemini_provider import GeminiVisionProvider
from .normalization import ParsedError, ParsedOk, normalize_response
from .ollama_provider import OllamaVisionProvider
from .openai_provider import OpenAIVisionProvider
from .orchestrator import AnalysisOutcome, AnalysisState, InferenceOrchestrator
from .registry import ProviderRegistry

__all__ = [
    "DEFAULT_PROMPT",
    "OUTPUT_SCHEMA_INSTRUCTION",
    "PROVIDERS",
    "AnalysisOutcome",
    "AnalysisState",
    "GeminiVisionProvider",
    "InferenceOrchestrator",
    "InferenceProvider",
    "OllamaVisionProvider",
    "OpenAIVisionProvider",
    "ParsedError",
    "ParsedOk",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderResponse",
    "build_prompt",
    "create_provider",
    "normalize_response",
]
