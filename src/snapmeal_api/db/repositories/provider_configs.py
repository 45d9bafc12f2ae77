"""Repository for inference provider configurations."""

import logging
from datetime import UTC, datetime
from typing import Any

from pymongo import ReturnDocument

from snapmeal_api.models.provider_config import ProviderConfig

from .base import BaseRepository

logger = logging.getLogger(__name__)


class ProviderConfigRepository(BaseRepository[ProviderConfig]):
    """Repository for provider configs. At most one document has ``is_active``."""

    model_class = ProviderConfig

    async def ensure_indexes(self) -> None:
        """Create indexes. Called during application startup."""
        await self.collection.create_index("is_active", name="is_active_idx")
        await self.collection.create_index("provider_kind", name="provider_kind_idx")

    async def list_all(self) -> list[ProviderConfig]:
        return await self.find_many({}, sort=[("created_at", 1)], limit=1000)

    async def get_active(self) -> ProviderConfig | None:
        return await self.find_one({"is_active": True})

    async def insert(self, config: ProviderConfig) -> ProviderConfig:
        if config.created_at is None:
            config = config.model_copy(update={"created_at": datetime.now(UTC)})
        await self.insert_one(self._to_document(config))
        return config

    async def update(self, config_id: str, changes: dict[str, Any]) -> ProviderConfig | None:
        """Apply a partial update; returns the updated config or None if missing."""
        doc = await self.collection.find_one_and_update(
            {"_id": config_id},
            {"$set": {**changes, "updated_at": datetime.now(UTC)}},
            return_document=ReturnDocument.AFTER,
        )
        return self._to_model(doc)

    async def activate(self, config_id: str) -> bool:
        """
        Make ``config_id`` the only active config.

        A single pipeline update rewrites ``is_active`` on every document, so
        there is no moment with two active configs.

        Returns:
            False if no config has that id
        """
        if await self.count({"_id": config_id}) == 0:
            return False

        target = {"$eq": ["$_id", {"$literal": config_id}]}
        await self.collection.update_many(
            {},
            [
                {
                    "$set": {
                        "is_active": target,
                        "updated_at": {
                            "$cond": [target, datetime.now(UTC), "$updated_at"]
                        },
                    }
                }
            ],
        )
        logger.info(f"Activated provider config {config_id}")
        return True
