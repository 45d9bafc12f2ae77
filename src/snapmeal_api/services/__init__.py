"""Business logic services."""

from .analysis_cache import AnalysisCache, fingerprint_for
from .image_store import DerivativeStore, StoreResult
from .inference import InferenceOrchestrator, ProviderRegistry
from .ingestion import IngestionResult, IngestionService
from .records import AnalysisRecordWriter

__all__ = [
    "AnalysisCache",
    "AnalysisRecordWriter",
    "DerivativeStore",
    "InferenceOrchestrator",
    "IngestionResult",
    "IngestionService",
    "ProviderRegistry",
    "StoreResult",
    "fingerprint_for",
]
