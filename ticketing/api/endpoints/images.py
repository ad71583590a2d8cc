import asyncio

from fastapi import APIRouter, Depends, Response

from ticketing.api import deps
from ticketing.core.errors import NotFound
from ticketing.core.storage import S3BlobStore

router = APIRouter()

COLLECTIONS = {"events", "users"}


@router.get("/{collection}/{filename}", summary="Get Photo")  # type: ignore[misc]
async def read_image(
    collection: str,
    filename: str,
    blob_store: S3BlobStore = Depends(deps.get_blob_store),
) -> Response:
    """Stream a stored event or user photo."""
    if collection not in COLLECTIONS:
        raise NotFound("The specified image does not exist.")
    data = await asyncio.to_thread(blob_store.get, f"{collection}/{filename}")
    return Response(content=data, media_type="image/jpeg")
