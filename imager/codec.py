"""Pillow codec helpers: decode, nearest-neighbour resize, PNG encode.

Every derivative is re-encoded as PNG regardless of the input format.
"""

import io

from PIL import Image, UnidentifiedImageError

from imager.errors import DecodeError, EncodeError

OUTPUT_FORMAT = "PNG"
OUTPUT_EXTENSION = "png"
OUTPUT_CONTENT_TYPE = "image/png"

# Modes PNG can store as-is; anything else (CMYK, YCbCr, ...) goes through RGBA.
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def decode(data: bytes) -> Image.Image:
    """Decode image bytes into a fully loaded raster."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"cannot decode image: {e}") from e
    return img


def resize(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to exactly width x height. Callers validate the dimensions."""
    return img.resize((width, height), Image.Resampling.NEAREST)


def encode(img: Image.Image, fmt: str = OUTPUT_FORMAT) -> bytes:
    if fmt == "PNG" and img.mode not in PNG_MODES:
        img = img.convert("RGBA")
    buf = io.BytesIO()
    try:
        img.save(buf, format=fmt)
    except (OSError, KeyError, ValueError) as e:
        raise EncodeError(f"cannot encode image as {fmt}: {e}") from e
    return buf.getvalue()


def resolution(img: Image.Image) -> str:
    w, h = img.size
    return f"{w}x{h}"


def resize_bytes(img: Image.Image, width: int, height: int) -> bytes:
    """Resize a decoded raster and encode it in the output format."""
    return encode(resize(img, width, height))
