"""Stored image API routes."""

import logging

from fastapi import APIRouter, Response

from snapmeal_api.api.dependencies import OwnerIdDep, StoreDep
from snapmeal_api.core.exceptions import NotFoundError
from snapmeal_api.models.image_asset import ImageSize
from snapmeal_api.services.image_store import make_locator, parse_locator
from snapmeal_api.services.validation import sniff_mime_type

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{size}/{filename}")
async def get_image(size: ImageSize, filename: str, store: StoreDep) -> Response:
    """Serve one stored variant by its locator."""
    locator = make_locator(size, filename)
    try:
        parse_locator(locator)
    except ValueError as e:
        raise NotFoundError("Image", locator) from e

    data = await store.read(locator)
    return Response(
        content=data,
        media_type=sniff_mime_type(data) or "application/octet-stream",
        # Content addressed, so a locator's bytes never change
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )


@router.delete("/{asset_id}", status_code=204)
async def delete_image(asset_id: str, store: StoreDep, owner_id: OwnerIdDep) -> Response:
    """Soft-delete an image owned by the caller. Blobs stay until the retention sweep."""
    await store.soft_delete(asset_id, owner_id=owner_id)
    return Response(status_code=204)


@router.get("/stats")
async def storage_stats(store: StoreDep, owner_id: OwnerIdDep) -> dict:
    """Global storage usage plus the caller's quota position."""
    stats = await store.get_storage_stats()
    quota = await store.get_quota_status(owner_id)
    return {
        "backend": store.backend.name,
        "total_images": stats.total_images,
        "total_bytes": stats.total_bytes,
        "bytes_by_size": {size.value: total for size, total in stats.bytes_by_size.items()},
        "quota": quota.model_dump(by_alias=True),
    }
