"""Unit of Work pattern for managing repository access."""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from snapmeal_api.core.config import RepositoryBackend, Settings

from .mongo import MongoDB
from .repositories.analysis_records import AnalysisRecordRepository
from .repositories.image_assets import ImageAssetRepository
from .repositories.in_memory import (
    InMemoryAnalysisRecordRepository,
    InMemoryImageAssetRepository,
    InMemoryProviderConfigRepository,
    InMemoryStorageQuotaRepository,
)
from .repositories.provider_configs import ProviderConfigRepository
from .repositories.storage_quotas import StorageQuotaRepository

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Unit of Work pattern implementation.

    Groups repository access and provides a single injection point for services.

    Usage:
        uow = UnitOfWork(db)
        asset = await uow.image_assets.find_by_hash(content_hash)
        config = await uow.provider_configs.get_active()
    """

    def __init__(self, db: AsyncIOMotorDatabase | None):
        """
        Initialize Unit of Work with database instance.

        Args:
            db: Motor database instance (None for the in-memory variant)
        """
        self._db = db
        self._image_assets = None
        self._provider_configs = None
        self._analysis_records = None
        self._storage_quotas = None

    @property
    def image_assets(self) -> ImageAssetRepository:
        """Get ImageAssets repository (lazy loaded)."""
        if self._image_assets is None:
            self._image_assets = ImageAssetRepository(self._db["image_assets"])
        return self._image_assets

    @property
    def provider_configs(self) -> ProviderConfigRepository:
        """Get ProviderConfigs repository (lazy loaded)."""
        if self._provider_configs is None:
            self._provider_configs = ProviderConfigRepository(self._db["ai_configs"])
        return self._provider_configs

    @property
    def analysis_records(self) -> AnalysisRecordRepository:
        """Get AnalysisRecords repository (lazy loaded)."""
        if self._analysis_records is None:
            self._analysis_records = AnalysisRecordRepository(self._db["analysis_records"])
        return self._analysis_records

    @property
    def storage_quotas(self) -> StorageQuotaRepository:
        """Get StorageQuotas repository (lazy loaded)."""
        if self._storage_quotas is None:
            self._storage_quotas = StorageQuotaRepository(self._db["image_storage_quotas"])
        return self._storage_quotas

    async def ensure_indexes(self) -> None:
        """Create indexes on every collection. Called during startup."""
        await self.image_assets.ensure_indexes()
        await self.provider_configs.ensure_indexes()
        await self.analysis_records.ensure_indexes()
        await self.storage_quotas.ensure_indexes()


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of Work over dictionary-backed repositories."""

    def __init__(self):
        super().__init__(None)
        self._image_assets = InMemoryImageAssetRepository()
        self._provider_configs = InMemoryProviderConfigRepository()
        self._analysis_records = InMemoryAnalysisRecordRepository()
        self._storage_quotas = InMemoryStorageQuotaRepository()


def create_unit_of_work(settings: Settings) -> UnitOfWork:
    """
    Build the unit of work selected by ``REPOSITORY_BACKEND``.

    The MongoDB variant connects the shared Motor client if needed.
    """
    match settings.repository_backend:
        case RepositoryBackend.MEMORY:
            logger.warning("Using in-memory repositories; data is lost on restart")
            return InMemoryUnitOfWork()
        case RepositoryBackend.MONGODB:
            if not MongoDB.is_connected():
                MongoDB.connect(settings.mongo_uri, settings.db_name)
            return UnitOfWork(MongoDB.get_database())
