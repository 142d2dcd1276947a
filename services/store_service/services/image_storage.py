"""Local-disk storage for product and category images."""

import os
import re
import uuid
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from libs.common.config import get_settings
from libs.common.errors import AppError, NotFoundError, ValidationError
from libs.common.logging import get_logger
from PIL import Image, UnidentifiedImageError

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}
ALLOWED_FORMATS = {"JPEG", "PNG", "WEBP"}
THUMBNAIL_PREFIX = "thumb_"
PUBLIC_PREFIX = "/uploads"
_SAFE_NAME = re.compile(r"^[A-Za-z0-9_-]+\.(jpg|jpeg|png|webp)$")


@dataclass
class StoredImage:
    filename: str
    url: str
    thumbnail_url: str
    content_type: str
    size: int
    width: int
    height: int


class ImageStorage:
    """Validates uploads with Pillow and writes originals plus thumbnails."""

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        max_bytes: Optional[int] = None,
        thumbnail_size: Optional[int] = None,
    ):
        settings = get_settings()
        self.root = Path(upload_dir or settings.UPLOAD_DIR) / "images"
        self.max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES
        size = thumbnail_size or settings.THUMBNAIL_SIZE
        self.thumbnail_size: Tuple[int, int] = (size, size)

    def _validate(self, data: bytes, filename: str, content_type: Optional[str]) -> Image.Image:
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                "Only jpg, jpeg, png and webp images are allowed",
                code="INVALID_FILE_TYPE",
            )
        if content_type and not content_type.startswith("image/"):
            raise ValidationError("File is not an image", code="INVALID_FILE_TYPE")
        if not data:
            raise ValidationError("File is empty", code="EMPTY_FILE")
        if len(data) > self.max_bytes:
            raise AppError(
                f"File exceeds {self.max_bytes // (1024 * 1024)}MB limit",
                code="FILE_TOO_LARGE",
                status_code=413,
            )
        try:
            with Image.open(BytesIO(data)) as probe:
                probe.verify()
            image = Image.open(BytesIO(data))
        except (UnidentifiedImageError, OSError, SyntaxError) as exc:
            raise ValidationError(
                "File is not a valid image", code="INVALID_IMAGE"
            ) from exc
        if image.format not in ALLOWED_FORMATS:
            raise ValidationError(
                "Only jpg, jpeg, png and webp images are allowed",
                code="INVALID_FILE_TYPE",
            )
        return image

    def _write(self, image: Image.Image, data: bytes, extension: str) -> StoredImage:
        self.root.mkdir(parents=True, exist_ok=True)
        name = f"{uuid.uuid4().hex}.{extension}"
        (self.root / name).write_bytes(data)

        fmt = image.format
        width, height = image.size
        thumbnail = image.copy()
        thumbnail.thumbnail(self.thumbnail_size, Image.Resampling.LANCZOS)
        if fmt == "JPEG" and thumbnail.mode not in ("RGB", "L"):
            thumbnail = thumbnail.convert("RGB")
        buffer = BytesIO()
        thumbnail.save(buffer, format=fmt)
        (self.root / f"{THUMBNAIL_PREFIX}{name}").write_bytes(buffer.getvalue())

        return StoredImage(
            filename=name,
            url=f"{PUBLIC_PREFIX}/images/{name}",
            thumbnail_url=f"{PUBLIC_PREFIX}/images/{THUMBNAIL_PREFIX}{name}",
            content_type=Image.MIME.get(fmt, "application/octet-stream"),
            size=len(data),
            width=width,
            height=height,
        )

    async def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> StoredImage:
        image = self._validate(data, filename, content_type)
        extension = filename.rsplit(".", 1)[-1].lower()
        stored = await run_in_threadpool(self._write, image, data, extension)
        logger.info("Stored image %s (%d bytes)", stored.filename, stored.size)
        return stored

    def _remove(self, filename: str) -> None:
        path = self.root / filename
        if not path.exists():
            raise NotFoundError("Image not found", code="IMAGE_NOT_FOUND")
        os.remove(path)
        thumb = self.root / f"{THUMBNAIL_PREFIX}{filename}"
        if thumb.exists():
            os.remove(thumb)

    async def delete(self, filename: str) -> None:
        if not _SAFE_NAME.match(filename) or filename.startswith(THUMBNAIL_PREFIX):
            raise ValidationError("Invalid image name", code="INVALID_FILENAME")
        await run_in_threadpool(self._remove, filename)
        logger.info("Deleted image %s", filename)


def get_image_storage() -> ImageStorage:
    """FastAPI dependency; tests point it at a temporary directory."""
    return ImageStorage()
