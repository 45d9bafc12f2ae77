"""Repository classes for database access."""

from .analysis_records import AnalysisRecordRepository
from .image_assets import ImageAssetRepository
from .in_memory import (
    InMemoryAnalysisRecordRepository,
    InMemoryImageAssetRepository,
    InMemoryProviderConfigRepository,
    InMemoryStorageQuotaRepository,
)
from .provider_configs import ProviderConfigRepository
from .storage_quotas import StorageQuotaRepository

__all__ = [
    "AnalysisRecordRepository",
    "ImageAssetRepository",
    "InMemoryAnalysisRecordRepository",
    "InMemoryImageAssetRepository",
    "InMemoryProviderConfigRepository",
    "InMemoryStorageQuotaRepository",
    "ProviderConfigRepository",
    "StorageQuotaRepository",
]
