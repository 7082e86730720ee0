"""Market image store - local directory served under /images by the API."""

from __future__ import annotations

import time
import uuid
from pathlib import Path

import structlog

from predmarket.errors import UpstreamWriteError, ValidationError

log = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def image_file_name(original_name: str, proposer: str) -> str:
    """Collision-resistant name: <ms timestamp>-<proposer>-<uuid>.<ext>."""
    ext = Path(original_name).suffix.lstrip(".").lower() or "png"
    return f"{int(time.time() * 1000)}-{proposer.lower()}-{uuid.uuid4().hex[:12]}.{ext}"


def check_image_name(name: str) -> None:
    ext = Path(name).suffix.lstrip(".").lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(f"Unsupported image type: .{ext or '?'}")


class ImageStore:
    """Stores uploaded images on disk and returns their public URL."""

    def __init__(self, images_dir: str | Path, base_url: str) -> None:
        self.images_dir = Path(images_dir)
        self.base_url = base_url.rstrip("/")

    async def upload(self, original_name: str, data: bytes, proposer: str) -> str:
        check_image_name(original_name)
        name = image_file_name(original_name, proposer)
        try:
            self.images_dir.mkdir(parents=True, exist_ok=True)
            (self.images_dir / name).write_bytes(data)
        except OSError as e:
            log.error("image_upload_failed", name=name, error=str(e))
            raise UpstreamWriteError("Failed to upload image") from e
        log.info("image_uploaded", name=name, size=len(data))
        return f"{self.base_url}/{name}"
