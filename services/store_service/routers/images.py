"""Image router: staff uploads for product and category images."""

from typing import List

from fastapi import APIRouter, Depends, File, UploadFile, status
from libs.auth.dependencies import require_staff
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.errors import ValidationError
from services.store_service.schemas import ImageListResponse, ImageResponse
from services.store_service.services.image_storage import (
    ImageStorage,
    get_image_storage,
)

router = APIRouter(prefix="/images", tags=["images"])


async def _store(storage: ImageStorage, upload: UploadFile) -> ImageResponse:
    data = await upload.read()
    stored = await storage.save(data, upload.filename or "", upload.content_type)
    return ImageResponse.model_validate(stored)


@router.post("/upload", response_model=ImageResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    image: UploadFile = File(...),
    current_user: AuthUser = Depends(require_staff),
    storage: ImageStorage = Depends(get_image_storage),
):
    """Store one image and its thumbnail."""
    return await _store(storage, image)


@router.post(
    "/upload-multiple",
    response_model=ImageListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_images(
    images: List[UploadFile] = File(...),
    current_user: AuthUser = Depends(require_staff),
    storage: ImageStorage = Depends(get_image_storage),
):
    max_files = get_settings().MAX_UPLOAD_FILES
    if len(images) > max_files:
        raise ValidationError(
            f"At most {max_files} files per upload", code="TOO_MANY_FILES"
        )
    return ImageListResponse(images=[await _store(storage, f) for f in images])


@router.delete("/{filename}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    filename: str,
    current_user: AuthUser = Depends(require_staff),
    storage: ImageStorage = Depends(get_image_storage),
):
    await storage.delete(filename)
