"""Pydantic models for inference backend configuration."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .nutrition import CamelModel


class ProviderKind(str, Enum):
    """Supported inference backends."""

    OPENAI = "openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"


class ProviderConfig(BaseModel):
    """Stored configuration for one inference backend."""

    id: str
    provider_kind: ProviderKind
    model_name: str
    prompt_template: str | None = None
    temperature: float = Field(0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(500, gt=0)
    base_url: str | None = None
    encrypted_credential: str | None = None
    is_active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProviderConfigSnapshot(BaseModel):
    """
    Immutable view of the active config taken at request start.

    ``version`` increases on every registry refresh so callers can tell which
    configuration answered a request even if the active config changed since.
    """

    model_config = ConfigDict(frozen=True)

    config_id: str
    provider_kind: ProviderKind
    model_name: str
    prompt_template: str | None = None
    temperature: float
    max_output_tokens: int
    base_url: str | None = None
    encrypted_credential: str | None = None
    version: int
    loaded_at: datetime

    @classmethod
    def from_config(
        cls, config: ProviderConfig, version: int, loaded_at: datetime
    ) -> "ProviderConfigSnapshot":
        return cls(
            config_id=config.id,
            provider_kind=config.provider_kind,
            model_name=config.model_name,
            prompt_template=config.prompt_template,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            base_url=config.base_url,
            encrypted_credential=config.encrypted_credential,
            version=version,
            loaded_at=loaded_at,
        )

    @property
    def label(self) -> str:
        return f"{self.provider_kind.value}/{self.model_name}"


# =============================================================================
# Admin API schemas
# =============================================================================


class ProviderConfigCreate(CamelModel):
    """Payload for creating a provider config."""

    provider_kind: ProviderKind
    model_name: str = Field(..., min_length=1)
    prompt_template: str | None = None
    temperature: float = Field(0.2, ge=0.0, le=2.0)
    max_output_tokens: int = Field(500, gt=0)
    base_url: str | None = None


class ProviderConfigUpdate(CamelModel):
    """Partial update; unset fields are left unchanged."""

    model_name: str | None = Field(None, min_length=1)
    prompt_template: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_output_tokens: int | None = Field(None, gt=0)
    base_url: str | None = None


class CredentialRotation(CamelModel):
    """New plaintext credential to encrypt and store."""

    api_key: str = Field(..., min_length=1)


class ProviderConfigView(CamelModel):
    """Config as exposed to admins; the credential itself is never returned."""

    id: str
    provider_kind: ProviderKind
    model_name: str
    prompt_template: str | None = None
    temperature: float
    max_output_tokens: int
    base_url: str | None = None
    has_credential: bool
    is_active: bool
    updated_at: datetime | None = None

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ProviderConfigView":
        return cls(
            id=config.id,
            provider_kind=config.provider_kind,
            model_name=config.model_name,
            prompt_template=config.prompt_template,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            base_url=config.base_url,
            has_credential=config.encrypted_credential is not None,
            is_active=config.is_active,
            updated_at=config.updated_at,
        )
