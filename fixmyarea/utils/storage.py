"""
FixMyArea - Image Storage
Complaint and dog photos saved under UPLOAD_DIR and served from PUBLIC_UPLOAD_URL
"""
import logging
import os
import uuid
from typing import List, Optional, Tuple

from fastapi import UploadFile

from fixmyarea.config import Settings, settings as default_settings
from fixmyarea.exceptions import ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


class LocalImageStorage:
    def __init__(self, settings: Settings = None, subdir: str = "complaints"):
        self.settings = settings or default_settings
        self.subdir = subdir

    @property
    def max_bytes(self) -> int:
        return self.settings.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def directory(self) -> str:
        return os.path.join(self.settings.UPLOAD_DIR, self.subdir)

    async def _read_checked(self, file: UploadFile) -> Tuple[bytes, str]:
        """Content and extension of an acceptable image; nothing is written"""
        content_type = (file.content_type or "").lower()
        extension = SUPPORTED_FORMATS.get(content_type)
        if extension is None:
            supported = ", ".join(sorted({ext.lstrip(".").upper() for ext in SUPPORTED_FORMATS.values()}))
            raise ValidationError(
                f"File {file.filename} has unsupported format. Supported formats: {supported}"
            )

        content = await file.read()
        if len(content) > self.max_bytes:
            raise ValidationError(
                f"File {file.filename} is too large. Maximum size is {self.settings.MAX_FILE_SIZE_MB}MB"
            )
        return content, extension

    def _write(self, original_name: str, content: bytes, extension: str) -> str:
        os.makedirs(self.directory, exist_ok=True)
        file_name = f"{uuid.uuid4()}{extension}"
        with open(os.path.join(self.directory, file_name), "wb") as f:
            f.write(content)

        logger.info("Stored image %s (%s bytes) as %s/%s", original_name, len(content), self.subdir, file_name)
        return f"{self.settings.PUBLIC_UPLOAD_URL.rstrip('/')}/{self.subdir}/{file_name}"

    async def upload(self, file: UploadFile) -> str:
        """Validate and write one image; returns its public URL"""
        content, extension = await self._read_checked(file)
        return self._write(file.filename, content, extension)

    async def upload_many(self, files: Optional[List[UploadFile]]) -> List[str]:
        """All files are checked before the first one is written"""
        files = [f for f in files or [] if f is not None and f.filename]
        checked = [(f.filename, *await self._read_checked(f)) for f in files]
        return [self._write(name, content, extension) for name, content, extension in checked]

    def discard(self, urls: List[str]) -> None:
        """Remove stored images, e.g. when the request that uploaded them fails"""
        for url in urls:
            path = os.path.join(self.directory, os.path.basename(url))
            if os.path.exists(path):
                os.remove(path)
                logger.info("Discarded image %s/%s", self.subdir, os.path.basename(url))


def get_image_storage() -> LocalImageStorage:
    return LocalImageStorage()


def get_dog_photo_storage() -> LocalImageStorage:
    return LocalImageStorage(subdir="dogs")
