"""Food photo analysis API routes."""

import logging
from typing import Annotated

from fastapi import APIRouter, File, Query, UploadFile

from snapmeal_api.api.dependencies import IngestionServiceDep, OwnerIdDep, RecordWriterDep
from snapmeal_api.models.analysis import (
    AnalysisHistoryItem,
    AnalyzeBase64Request,
    IngestionResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload", response_model=IngestionResponse, response_model_by_alias=True)
async def analyze_upload(
    service: IngestionServiceDep,
    owner_id: OwnerIdDep,
    image: Annotated[UploadFile, File(description="Food photo (JPEG, PNG or WebP)")],
) -> IngestionResponse:
    """
    Store a food photo and return its nutrition analysis.

    Re-submitting the same bytes returns the stored image and, while the
    cache entry lives, the cached result without another model call.
    """
    data = await image.read()
    result = await service.ingest(data, image.content_type, owner_id)
    return result.to_response()


@router.post("/base64", response_model=IngestionResponse, response_model_by_alias=True)
async def analyze_base64(
    request: AnalyzeBase64Request,
    service: IngestionServiceDep,
    owner_id: OwnerIdDep,
) -> IngestionResponse:
    """Same as ``/upload`` for clients that send a base64 data URI."""
    result = await service.ingest_data_uri(request.image_data, owner_id)
    return result.to_response()


@router.get("/history", response_model=list[AnalysisHistoryItem], response_model_by_alias=True)
async def analysis_history(
    records: RecordWriterDep,
    owner_id: OwnerIdDep,
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
) -> list[AnalysisHistoryItem]:
    """The caller's analyses, most recent first."""
    history = await records.list_for_owner(owner_id, limit=limit, skip=skip)
    return [AnalysisHistoryItem.from_record(record) for record in history]
