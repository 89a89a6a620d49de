"""Content-addressed object names.

Objects are keyed by the MD5 of their bytes plus the output format extension,
so identical content always lands on the same key. MD5 is used for naming
only, not as a security property.
"""

import hashlib
import io
from typing import BinaryIO, Union

from imager.codec import OUTPUT_EXTENSION
from imager.errors import HashError

CHUNK_SIZE = 64 * 1024


def content_digest(data: Union[bytes, BinaryIO]) -> str:
    """Return the lowercase hex MD5 of a byte string or readable stream."""
    stream = io.BytesIO(data) if isinstance(data, (bytes, bytearray, memoryview)) else data
    md5 = hashlib.md5()
    try:
        for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
            md5.update(chunk)
    except (OSError, ValueError) as e:
        raise HashError(f"hash computation failed: {e}") from e
    return md5.hexdigest()


def object_name(digest: str, extension: str = OUTPUT_EXTENSION) -> str:
    """Build the storage key: '<digest>.<extension>'."""
    return f"{digest}.{extension.lower()}"


def object_key(data: Union[bytes, BinaryIO]) -> str:
    return object_name(content_digest(data))
