"""Resize pipelines.

resize_upload: decode an uploaded image, resize it, upload original and
derivative concurrently, then store the original row followed by the
derivative row that points back at it.

resize_existing: load a stored image by id, download it, resize it, upload
the derivative and store a row pointing back at the stored image.

Nothing is rolled back. If the derivative row fails to save, the original
row and both objects stay where they are.
"""

import asyncio
import logging
import posixpath
from urllib.parse import urlparse

from imager import codec
from imager.errors import (
    DecodeError,
    DownloadError,
    EncodeError,
    InternalError,
    RepositoryError,
    UploadError,
    ValidationError,
)
from imager.models import Image, OriginalResized
from imager.uploads import upload_one, upload_pair

logger = logging.getLogger(__name__)

MAX_WIDTH = 3840
MAX_HEIGHT = 2160


def validate_dimensions(width: int, height: int) -> tuple[int, int]:
    """Check the requested size is within 1..3840 x 1..2160."""
    if width <= 0 or width > MAX_WIDTH:
        raise ValidationError(f"weight is not in range [1-{MAX_WIDTH}]")
    if height <= 0 or height > MAX_HEIGHT:
        raise ValidationError(f"height is not in range [1-{MAX_HEIGHT}]")
    return width, height


def _object_name(url: str) -> str:
    return posixpath.basename(urlparse(url).path)


class ResizePipeline:
    """Runs resize requests against injected repository, uploader and downloader."""

    def __init__(self, repository, uploader, downloader):
        self.repository = repository
        self.uploader = uploader
        self.downloader = downloader

    async def list_pairs(self) -> list[OriginalResized]:
        try:
            return await asyncio.to_thread(self.repository.all)
        except RepositoryError as e:
            raise InternalError(f"error getting images from db: {e}") from e

    async def list_resized(self) -> list[Image]:
        try:
            return await asyncio.to_thread(self.repository.only_resized)
        except RepositoryError as e:
            raise InternalError(f"error getting resized images from db: {e}") from e

    async def resize_upload(self, data: bytes, width: int, height: int, filename: str = "") -> OriginalResized:
        """Resize an uploaded image and persist both artifacts."""
        validate_dimensions(width, height)

        img = await self._decode(data, filename)
        original_resolution = codec.resolution(img)
        resized_bytes = await self._resize(img, width, height, filename)
        logger.info(f"Resized {filename or 'upload'} from {original_resolution} to {width}x{height}")

        try:
            original_url, resized_url = await upload_pair(self.uploader, data, resized_bytes)
        except UploadError as e:
            raise InternalError(f"error uploading images: {e}") from e

        original = Image(download_url=original_url, resolution=original_resolution)
        original = original.with_id(await self._save(original))

        resized = Image(
            download_url=resized_url,
            resolution=f"{width}x{height}",
            original_id=original.id,
        )
        resized = resized.with_id(await self._save(resized))
        logger.info(f"Saved original {original.id} and resized {resized.id}")
        return OriginalResized(original=original, resized=resized)

    async def resize_existing(self, image_id: int, width: int, height: int) -> OriginalResized:
        """Derive a new resize from an image that is already stored."""
        validate_dimensions(width, height)

        try:
            original = await asyncio.to_thread(self.repository.get_one, image_id)
        except RepositoryError as e:
            raise InternalError(f"couldn't get image by id: {image_id} with error: {e}") from e

        name = _object_name(original.download_url)
        try:
            data = await asyncio.to_thread(self.downloader.download, original.download_url)
        except DownloadError as e:
            raise InternalError(f"couldn't download image by url: {name} with error: {e}") from e
        logger.info(f"Downloaded {len(data)} bytes for image {image_id}")

        img = await self._decode(data, name)
        resized_bytes = await self._resize(img, width, height, name)

        try:
            resized_url = await upload_one(self.uploader, resized_bytes)
        except UploadError as e:
            raise InternalError(f"error uploading image: {e}") from e

        resized = Image(
            download_url=resized_url,
            resolution=f"{width}x{height}",
            original_id=original.id,
        )
        resized = resized.with_id(await self._save(resized))
        logger.info(f"Saved resized {resized.id} of image {image_id}")
        return OriginalResized(original=original, resized=resized)

    async def _decode(self, data: bytes, name: str):
        try:
            return await asyncio.to_thread(codec.decode, data)
        except DecodeError as e:
            raise InternalError(f"error decoding file {name} into image: {e}") from e

    async def _resize(self, img, width: int, height: int, name: str) -> bytes:
        try:
            return await asyncio.to_thread(codec.resize_bytes, img, width, height)
        except EncodeError as e:
            raise InternalError(f"error encoding file {name}: {e}") from e

    async def _save(self, image: Image) -> int:
        # Runs to completion in its worker thread even if the request is cancelled.
        try:
            return await asyncio.to_thread(self.repository.save, image)
        except RepositoryError as e:
            raise InternalError(str(e)) from e
