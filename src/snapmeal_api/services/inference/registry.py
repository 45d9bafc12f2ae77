"""
Provider registry: which inference backend is active, and its settings.

Configs live in the ``ai_configs`` collection. The active one is loaded on
first use and held as an immutable, versioned snapshot until an admin write
or an explicit refresh replaces it, so a request started under one config
finishes under it even if an admin switches providers mid-flight.
"""

import asyncio
import logging
import uuid
from datetime import UTC, datetime

from snapmeal_api.core.config import Settings
from snapmeal_api.core.exceptions import NotFoundError, ProviderNotConfiguredError
from snapmeal_api.core.security import CredentialCipher, CredentialDecryptionError
from snapmeal_api.db.unit_of_work import UnitOfWork
from snapmeal_api.models.provider_config import (
    ProviderConfig,
    ProviderConfigCreate,
    ProviderConfigSnapshot,
    ProviderConfigUpdate,
    ProviderKind,
)

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Loads, caches and administers provider configs.

    Usage:
        registry = ProviderRegistry(uow, CredentialCipher(key), settings)
        snapshot = await registry.get_active_snapshot()
        api_key = await registry.decrypt_credential(snapshot)
    """

    def __init__(self, uow: UnitOfWork, cipher: CredentialCipher, settings: Settings):
        self._uow = uow
        self._cipher = cipher
        self._settings = settings
        self._snapshot: ProviderConfigSnapshot | None = None
        self._loaded = False
        self._version = 0
        self._lock = asyncio.Lock()

    @property
    def version(self) -> int:
        return self._version

    # =========================================================================
    # Snapshot
    # =========================================================================

    async def get_active_snapshot(self) -> ProviderConfigSnapshot:
        """
        Snapshot of the active config, loading it on first use.

        Raises:
            ProviderNotConfiguredError: No config is active
        """
        if not self._loaded:
            await self.refresh()
        snapshot = self._snapshot
        if snapshot is None:
            raise ProviderNotConfiguredError(
                "No AI provider is active. Activate a provider config to enable analysis."
            )
        return snapshot

    async def refresh(self) -> ProviderConfigSnapshot | None:
        """Re-read the active config and publish a new snapshot version."""
        async with self._lock:
            config = await self._uow.provider_configs.get_active()
            self._version += 1
            self._snapshot = (
                ProviderConfigSnapshot.from_config(config, self._version, datetime.now(UTC))
                if config is not None
                else None
            )
            self._loaded = True

        if self._snapshot is None:
            logger.warning(f"Provider registry refreshed (v{self._version}): no active config")
        else:
            logger.info(f"Provider registry refreshed (v{self._version}): {self._snapshot.label}")
        return self._snapshot

    async def decrypt_credential(self, snapshot: ProviderConfigSnapshot) -> str | None:
        """
        Decrypt the snapshot's API key at the moment of use.

        Returns:
            Plaintext key, or None if the config stores no credential

        Raises:
            ProviderNotConfiguredError: The stored credential cannot be decrypted
        """
        if not snapshot.encrypted_credential:
            return None
        try:
            return await asyncio.to_thread(self._cipher.decrypt, snapshot.encrypted_credential)
        except CredentialDecryptionError as e:
            raise ProviderNotConfiguredError(
                f"Credential for {snapshot.label} cannot be decrypted",
                details={"config_id": snapshot.config_id},
            ) from e

    # =========================================================================
    # Admin reads and writes
    # =========================================================================

    async def list_configs(self) -> list[ProviderConfig]:
        return await self._uow.provider_configs.list_all()

    async def get_config(self, config_id: str) -> ProviderConfig:
        config = await self._uow.provider_configs.find_by_id(config_id)
        if config is None:
            raise NotFoundError("Provider config", config_id)
        return config

    def default_base_url(self, kind: ProviderKind) -> str:
        match kind:
            case ProviderKind.OPENAI:
                return self._settings.openai_base_url
            case ProviderKind.GEMINI:
                return self._settings.gemini_base_url
            case ProviderKind.OLLAMA:
                return self._settings.ollama_base_url

    def default_model(self, kind: ProviderKind) -> str:
        match kind:
            case ProviderKind.OPENAI:
                return self._settings.openai_model
            case ProviderKind.GEMINI:
                return self._settings.gemini_model
            case ProviderKind.OLLAMA:
                return self._settings.ollama_model

    async def create_config(
        self, payload: ProviderConfigCreate, api_key: str | None = None
    ) -> ProviderConfig:
        """Store a new, inactive config. The API key is encrypted before storage."""
        encrypted = await asyncio.to_thread(self._cipher.encrypt, api_key) if api_key else None
        config = ProviderConfig(
            id=uuid.uuid4().hex,
            provider_kind=payload.provider_kind,
            model_name=payload.model_name,
            prompt_template=payload.prompt_template,
            temperature=payload.temperature,
            max_output_tokens=payload.max_output_tokens,
            base_url=payload.base_url or self.default_base_url(payload.provider_kind),
            encrypted_credential=encrypted,
            is_active=False,
            created_at=datetime.now(UTC),
        )
        config = await self._uow.provider_configs.insert(config)
        logger.info(f"Created provider config {config.id} ({config.provider_kind.value}/{config.model_name})")
        return config

    async def update_config(self, config_id: str, changes: ProviderConfigUpdate) -> ProviderConfig:
        """
        Apply a partial update. Takes effect for new requests immediately
        when the config is the active one.

        Raises:
            NotFoundError: Unknown config id
        """
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            return await self.get_config(config_id)

        config = await self._uow.provider_configs.update(config_id, fields)
        if config is None:
            raise NotFoundError("Provider config", config_id)

        logger.info(f"Updated provider config {config_id}: {sorted(fields)}")
        if config.is_active:
            await self.refresh()
        return config

    async def activate(self, config_id: str) -> ProviderConfigSnapshot:
        """
        Make one config the only active config and publish it.

        Raises:
            NotFoundError: Unknown config id
        """
        if not await self._uow.provider_configs.activate(config_id):
            raise NotFoundError("Provider config", config_id)
        snapshot = await self.refresh()
        if snapshot is None:
            raise ProviderNotConfiguredError("Activated config could not be loaded")
        return snapshot

    async def rotate_credential(self, config_id: str, api_key: str) -> ProviderConfig:
        """Encrypt and store a new API key. The plaintext is never logged."""
        encrypted = await asyncio.to_thread(self._cipher.encrypt, api_key)
        config = await self._uow.provider_configs.update(
            config_id, {"encrypted_credential": encrypted}
        )
        if config is None:
            raise NotFoundError("Provider config", config_id)

        logger.info(f"Rotated credential for provider config {config_id}")
        if config.is_active:
            await self.refresh()
        return config

    async def ensure_default_configs(self) -> list[ProviderConfig]:
        """
        Seed one inactive config for every provider kind that has none.

        Called at startup so admins always have something to activate.
        """
        existing = {config.provider_kind for config in await self.list_configs()}
        created = []
        for kind in ProviderKind:
            if kind in existing:
                continue
            created.append(
                await self.create_config(
                    ProviderConfigCreate(
                        provider_kind=kind,
                        model_name=self.default_model(kind),
                        temperature=self._settings.default_temperature,
                        max_output_tokens=self._settings.default_max_output_tokens,
                    )
                )
            )
        if created:
            logger.info(f"Seeded default provider configs: {[c.provider_kind.value for c in created]}")
        return created
