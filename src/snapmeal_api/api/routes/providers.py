"""Provider configuration API routes (admin)."""

import logging

from fastapi import APIRouter
from pydantic import Field

from snapmeal_api.api.dependencies import RegistryDep
from snapmeal_api.models.nutrition import CamelModel
from snapmeal_api.models.provider_config import (
    CredentialRotation,
    ProviderConfigCreate,
    ProviderConfigSnapshot,
    ProviderConfigUpdate,
    ProviderConfigView,
    ProviderKind,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class ProviderConfigCreateRequest(ProviderConfigCreate):
    """Create payload with an optional API key."""

    api_key: str | None = Field(None, min_length=1)


class ActiveProviderResponse(CamelModel):
    config_id: str
    provider: ProviderKind
    model: str
    version: int
    has_credential: bool

    @classmethod
    def from_snapshot(cls, snapshot: ProviderConfigSnapshot) -> "ActiveProviderResponse":
        return cls(
            config_id=snapshot.config_id,
            provider=snapshot.provider_kind,
            model=snapshot.model_name,
            version=snapshot.version,
            has_credential=snapshot.encrypted_credential is not None,
        )


@router.get("", response_model=list[ProviderConfigView], response_model_by_alias=True)
async def list_providers(registry: RegistryDep) -> list[ProviderConfigView]:
    """All provider configs. Credentials are never returned."""
    return [ProviderConfigView.from_config(c) for c in await registry.list_configs()]


@router.get("/active", response_model=ActiveProviderResponse, response_model_by_alias=True)
async def active_provider(registry: RegistryDep) -> ActiveProviderResponse:
    snapshot = await registry.get_active_snapshot()
    return ActiveProviderResponse.from_snapshot(snapshot)


@router.post("/refresh", response_model=ActiveProviderResponse | None, response_model_by_alias=True)
async def refresh_providers(registry: RegistryDep) -> ActiveProviderResponse | None:
    """Reload the active config from the database."""
    snapshot = await registry.refresh()
    if snapshot is None:
        return None
    return ActiveProviderResponse.from_snapshot(snapshot)


@router.post(
    "",
    response_model=ProviderConfigView,
    response_model_by_alias=True,
    status_code=201,
)
async def create_provider(
    request: ProviderConfigCreateRequest, registry: RegistryDep
) -> ProviderConfigView:
    payload = ProviderConfigCreate.model_validate(request.model_dump(exclude={"api_key"}))
    config = await registry.create_config(payload, api_key=request.api_key)
    return ProviderConfigView.from_config(config)


@router.get("/{config_id}", response_model=ProviderConfigView, response_model_by_alias=True)
async def get_provider(config_id: str, registry: RegistryDep) -> ProviderConfigView:
    return ProviderConfigView.from_config(await registry.get_config(config_id))


@router.patch("/{config_id}", response_model=ProviderConfigView, response_model_by_alias=True)
async def update_provider(
    config_id: str, changes: ProviderConfigUpdate, registry: RegistryDep
) -> ProviderConfigView:
    """Partial update. Prompt and model changes apply to new requests immediately."""
    return ProviderConfigView.from_config(await registry.update_config(config_id, changes))


@router.post(
    "/{config_id}/activate",
    response_model=ActiveProviderResponse,
    response_model_by_alias=True,
)
async def activate_provider(config_id: str, registry: RegistryDep) -> ActiveProviderResponse:
    """Make this the only active provider."""
    snapshot = await registry.activate(config_id)
    return ActiveProviderResponse.from_snapshot(snapshot)


@router.put(
    "/{config_id}/credential",
    response_model=ProviderConfigView,
    response_model_by_alias=True,
)
async def rotate_credential(
    config_id: str, rotation: CredentialRotation, registry: RegistryDep
) -> ProviderConfigView:
    return ProviderConfigView.from_config(
        await registry.rotate_credential(config_id, rotation.api_key)
    )
