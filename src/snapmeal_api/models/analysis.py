"""Pydantic models for analysis records and the ingestion API contract."""

from datetime import datetime

from pydantic import BaseModel, Field

from .image_asset import QuotaStatus
from .nutrition import CamelModel, NutritionAnalysisResult
from .provider_config import ProviderKind


class AnalysisRecord(BaseModel):
    """Persisted link between an image, its nutrition result and its owner."""

    id: str
    owner_id: str
    asset_id: str
    content_hash: str
    result: NutritionAnalysisResult
    provider_kind: ProviderKind
    model_name: str
    cached: bool = False
    created_at: datetime
    updated_at: datetime | None = None


# =============================================================================
# Request Models
# =============================================================================


class AnalyzeBase64Request(CamelModel):
    """JSON ingestion body carrying a base64 data URI."""

    image_data: str = Field(
        ...,
        min_length=1,
        description="data:<mime>;base64,<payload> (bare base64 is also accepted)",
    )


# =============================================================================
# Response Models
# =============================================================================


class IngestionResponse(CamelModel):
    """Result of ingesting and analyzing one photo."""

    result: NutritionAnalysisResult
    image_url: str = Field(..., description="URL of the optimized derivative")
    thumbnail_url: str | None = None
    content_hash: str
    asset_id: str
    cached: bool = Field(False, description="Result served from the analysis cache")
    created: bool = Field(True, description="False when the image was already stored")
    provider: ProviderKind
    model: str
    quota: QuotaStatus


class AnalysisHistoryItem(CamelModel):
    """One entry of an owner's analysis history."""

    id: str
    asset_id: str
    content_hash: str
    result: NutritionAnalysisResult
    provider: ProviderKind
    model: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> "AnalysisHistoryItem":
        return cls(
            id=record.id,
            asset_id=record.asset_id,
            content_hash=record.content_hash,
            result=record.result,
            provider=record.provider_kind,
            model=record.model_name,
            created_at=record.updated_at or record.created_at,
        )
