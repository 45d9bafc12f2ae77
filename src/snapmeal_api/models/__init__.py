"""Pydantic models for API schemas."""

from .analysis import (
    AnalysisHistoryItem,
    AnalysisRecord,
    AnalyzeBase64Request,
    IngestionResponse,
)
from .image_asset import (
    DerivativeInfo,
    ImageAsset,
    ImageSize,
    QuotaStatus,
    StorageBackendKind,
    StorageQuota,
    StorageStats,
)
from .nutrition import FoodItemBreakdown, NutritionAnalysisResult
from .provider_config import (
    CredentialRotation,
    ProviderConfig,
    ProviderConfigCreate,
    ProviderConfigSnapshot,
    ProviderConfigUpdate,
    ProviderConfigView,
    ProviderKind,
)

__all__ = [
    # Analysis
    "AnalysisHistoryItem",
    "AnalysisRecord",
    "AnalyzeBase64Request",
    "IngestionResponse",
    # Images
    "DerivativeInfo",
    "ImageAsset",
    "ImageSize",
    "QuotaStatus",
    "StorageBackendKind",
    "StorageQuota",
    "StorageStats",
    # Nutrition
    "FoodItemBreakdown",
    "NutritionAnalysisResult",
    # Providers
    "CredentialRotation",
    "ProviderConfig",
    "ProviderConfigCreate",
    "ProviderConfigSnapshot",
    "ProviderConfigUpdate",
    "ProviderConfigView",
    "ProviderKind",
]
