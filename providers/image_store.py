"""
Image Store Providers

Photo bytes never touch the database: an upload is handed to an external
image host and only the URL it returns is stored on the Photo row.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from core.config import get_settings
from core.exceptions import ImageStoreError

logger = logging.getLogger(__name__)


class ImageStore(ABC):
    """Abstract base class for image hosts"""

    @abstractmethod
    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        """Store the image and return its public URL. Raises ImageStoreError."""
        pass


class HttpImageStore(ImageStore):
    """Uploads to an HTTP image host that answers with JSON containing the URL"""

    def __init__(
        self,
        upload_url: str,
        upload_preset: Optional[str] = None,
        timeout_seconds: float = 30,
    ):
        self.upload_url = upload_url
        self.upload_preset = upload_preset
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def upload(self, data: bytes, filename: str, content_type: str) -> str:
        form = aiohttp.FormData()
        form.add_field("file", data, filename=filename, content_type=content_type)
        if self.upload_preset:
            form.add_field("upload_preset", self.upload_preset)

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.upload_url, data=form) as response:
                    if response.status >= 400:
                        body = await response.text()
                        raise ImageStoreError(
                            f"HTTP {response.status} from image host: {body[:200]}"
                        )
                    payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error(f"Image upload to {self.upload_url} failed: {e}")
            raise ImageStoreError(str(e))

        url = payload.get("secure_url") or payload.get("url")
        if not url:
            raise ImageStoreError("Image host response contained no URL")

        logger.info(f"Uploaded {filename} ({len(data)} bytes) to image host")
        return url


def create_image_store() -> Optional[ImageStore]:
    """The configured image store, or None when uploads are not configured"""
    settings = get_settings()
    if not settings.image_store_upload_url:
        return None
    return HttpImageStore(settings.image_store_upload_url, settings.image_store_upload_preset)
