"""aiohttp routes for the images API.

Successful responses are JSON. Errors are answered with a plain-text
diagnostic and the status carried by the ImagerError that ended the request.
"""

import logging
import re

from aiohttp import web

from imager.errors import BadRequest, ImagerError, ValidationError
from imager.pipeline import ResizePipeline, validate_dimensions

logger = logging.getLogger(__name__)

INT_RE = re.compile(r"-?\d+", re.ASCII)

PIPELINE_KEY = web.AppKey("pipeline", ResizePipeline)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except ImagerError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}")
        else:
            logger.warning(f"{request.method} {request.path} rejected: {e}")
        return web.Response(status=e.status, text=str(e))
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error in {request.method} {request.path}")
        return web.Response(status=500, text="internal server error")


def _query_int(request: web.Request, name: str) -> int:
    raw = request.query.get(name)
    if raw is None:
        raise ValidationError(f"error validating resize params: missing {name} param")
    if not INT_RE.fullmatch(raw):
        raise ValidationError(f"error validating resize params: invalid {name} param")
    return int(raw)


def _size_params(request: web.Request) -> tuple[int, int]:
    """Read and range-check ?weight=&height= before any other work."""
    width = _query_int(request, "weight")
    height = _query_int(request, "height")
    return validate_dimensions(width, height)


async def _read_upload(request: web.Request) -> tuple[bytes, str]:
    try:
        form = await request.post()
    except ValueError as e:
        raise BadRequest(f"error reading multipart form: {e}") from e
    field = form.get("file")
    if not isinstance(field, web.FileField):
        raise BadRequest("error reading file: multipart field 'file' is missing")
    try:
        data = field.file.read()
    except OSError as e:
        raise BadRequest(f"error reading file {field.filename} with error: {e}") from e
    logger.info(f"Received {len(data)} bytes in {field.filename}")
    return data, field.filename


async def list_images(request: web.Request) -> web.Response:
    pairs = await request.app[PIPELINE_KEY].list_pairs()
    return web.json_response([pair.to_dict() for pair in pairs])


async def list_resized(request: web.Request) -> web.Response:
    images = await request.app[PIPELINE_KEY].list_resized()
    return web.json_response([image.to_dict() for image in images])


async def resize(request: web.Request) -> web.Response:
    width, height = _size_params(request)
    data, filename = await _read_upload(request)
    result = await request.app[PIPELINE_KEY].resize_upload(data, width, height, filename)
    return web.json_response(result.to_dict(), status=201)


async def resize_by_id(request: web.Request) -> web.Response:
    width, height = _size_params(request)
    raw_id = request.match_info["id"]
    if not INT_RE.fullmatch(raw_id):
        raise ValidationError(f"error converting id to int: {raw_id!r}")
    image_id = int(raw_id)
    result = await request.app[PIPELINE_KEY].resize_existing(image_id, width, height)
    return web.json_response(result.to_dict(), status=201)


async def health(request: web.Request) -> web.Response:
    return web.Response(text="OK")


def create_app(pipeline: ResizePipeline, max_upload_bytes: int = 32 * 1024 * 1024) -> web.Application:
    app = web.Application(middlewares=[error_middleware], client_max_size=max_upload_bytes)
    app[PIPELINE_KEY] = pipeline
    app.router.add_get("/health", health)
    app.router.add_get("/api/v1/images", list_images)
    app.router.add_post("/api/v1/images", resize)
    app.router.add_get("/api/v1/images/resized", list_resized)
    app.router.add_post("/api/v1/images/{id}", resize_by_id)
    return app
