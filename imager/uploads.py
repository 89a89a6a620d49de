"""Concurrent hash-and-upload of an original and its derivative.

Each payload is hashed, named and uploaded in its own task; the caller waits
for both. If either fails, one UploadError is raised, chained from the first
failure to finish. An upload that already succeeded is left in place.
"""

import asyncio
import logging

from imager.errors import UploadError
from imager.naming import object_key

logger = logging.getLogger(__name__)


def _hash_and_upload(uploader, data: bytes) -> str:
    key = object_key(data)
    url = uploader.upload(key, data)
    logger.info(f"Uploaded {len(data)} bytes as {key}")
    return url


async def upload_one(uploader, data: bytes) -> str:
    """Hash, name and upload a single payload; return its download URL."""
    try:
        return await asyncio.to_thread(_hash_and_upload, uploader, data)
    except UploadError:
        raise
    except Exception as e:
        raise UploadError(str(e)) from e


async def upload_pair(uploader, original: bytes, resized: bytes) -> tuple[str, str]:
    """Upload both payloads concurrently and return (original_url, resized_url)."""
    failures: list[BaseException] = []

    async def _run(data: bytes) -> str:
        try:
            return await upload_one(uploader, data)
        except UploadError as e:
            failures.append(e)
            raise

    results = await asyncio.gather(_run(original), _run(resized), return_exceptions=True)
    if failures:
        raise failures[0]
    for result in results:
        if isinstance(result, BaseException):
            raise UploadError(f"upload did not complete: {result!r}") from result
    return results[0], results[1]
