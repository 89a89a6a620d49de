import io
from unittest.mock import MagicMock

import pytest
from PIL import Image as PILImage

from imager.errors import (
    DownloadError,
    InternalError,
    NotFoundError,
    RepositoryError,
    UploadError,
    ValidationError,
)
from imager.models import Image, OriginalResized
from imager.naming import object_key
from imager.pipeline import ResizePipeline, validate_dimensions


def _make_test_image(width, height, fmt="JPEG"):
    """Create a test image and return its bytes."""
    img = PILImage.new("RGB", (width, height), color="blue")
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def _uploader():
    uploader = MagicMock()
    uploader.upload.side_effect = lambda key, data: f"https://bucket.example.com/{key}"
    return uploader


def _repository(ids=(1, 2)):
    repository = MagicMock()
    repository.save.side_effect = list(ids)
    return repository


class TestValidateDimensions:
    @pytest.mark.parametrize("w,h", [(1, 1), (3840, 2160), (100, 100), (3840, 1), (1, 2160)])
    def test_accepts_bounds(self, w, h):
        assert validate_dimensions(w, h) == (w, h)

    @pytest.mark.parametrize("w,h", [(0, 100), (-1, 100), (3841, 100), (100, 0), (100, -5), (100, 2161)])
    def test_rejects_out_of_range(self, w, h):
        with pytest.raises(ValidationError):
            validate_dimensions(w, h)

    def test_height_checked_against_its_own_bound(self):
        # A small width must not let an oversized height through.
        with pytest.raises(ValidationError, match="height"):
            validate_dimensions(100, 3000)


class TestResizeUpload:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        original = _make_test_image(640, 480)
        repository = _repository()
        uploader = _uploader()
        pipeline = ResizePipeline(repository, uploader, MagicMock())

        result = await pipeline.resize_upload(original, 100, 100, "test.jpg")

        assert result.original.id == 1
        assert result.original.resolution == "640x480"
        assert result.original.original_id is None
        assert result.original.download_url.endswith(object_key(original))
        assert result.resized.id == 2
        assert result.resized.resolution == "100x100"
        assert result.resized.original_id == result.original.id

    @pytest.mark.asyncio
    async def test_uploads_original_bytes_and_png_derivative(self):
        original = _make_test_image(320, 200)
        uploader = _uploader()
        pipeline = ResizePipeline(_repository(), uploader, MagicMock())

        await pipeline.resize_upload(original, 32, 20)

        uploaded = {call.args[0]: call.args[1] for call in uploader.upload.call_args_list}
        assert uploaded[object_key(original)] == original
        resized = [data for key, data in uploaded.items() if data != original][0]
        img = PILImage.open(io.BytesIO(resized))
        assert img.format == "PNG"
        assert img.size == (32, 20)

    @pytest.mark.asyncio
    async def test_saves_original_before_resized(self):
        repository = _repository(ids=(7, 8))
        pipeline = ResizePipeline(repository, _uploader(), MagicMock())

        await pipeline.resize_upload(_make_test_image(50, 40), 10, 10)

        first, second = [call.args[0] for call in repository.save.call_args_list]
        assert first.original_id is None
        assert first.resolution == "50x40"
        assert second.original_id == 7
        assert second.resolution == "10x10"

    @pytest.mark.asyncio
    async def test_invalid_dimensions_do_no_work(self):
        repository = _repository()
        uploader = _uploader()
        pipeline = ResizePipeline(repository, uploader, MagicMock())

        with pytest.raises(ValidationError):
            await pipeline.resize_upload(_make_test_image(50, 40), 0, 100)

        uploader.upload.assert_not_called()
        repository.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_decode_failure_is_internal(self):
        uploader = _uploader()
        pipeline = ResizePipeline(_repository(), uploader, MagicMock())

        with pytest.raises(InternalError, match="error decoding file"):
            await pipeline.resize_upload(b"not an image", 10, 10, "broken.jpg")
        uploader.upload.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_failure_skips_persistence(self):
        repository = _repository()
        uploader = MagicMock()
        uploader.upload.side_effect = UploadError("s3 down")
        pipeline = ResizePipeline(repository, uploader, MagicMock())

        with pytest.raises(InternalError, match="error uploading images"):
            await pipeline.resize_upload(_make_test_image(50, 40), 10, 10)
        repository.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_original_save_failure_surfaces_repository_error(self):
        repository = MagicMock()
        repository.save.side_effect = RepositoryError("inserting failed")
        pipeline = ResizePipeline(repository, _uploader(), MagicMock())

        with pytest.raises(InternalError, match="^inserting failed$"):
            await pipeline.resize_upload(_make_test_image(50, 40), 10, 10)
        assert repository.save.call_count == 1

    @pytest.mark.asyncio
    async def test_resized_save_failure_keeps_original(self):
        repository = MagicMock()
        repository.save.side_effect = [1, RepositoryError("second insert failed")]
        pipeline = ResizePipeline(repository, _uploader(), MagicMock())

        with pytest.raises(InternalError, match="second insert failed"):
            await pipeline.resize_upload(_make_test_image(50, 40), 10, 10)
        assert repository.save.call_count == 2


class TestResizeExisting:
    STORED = Image(id=1, download_url="https://bucket.example.com/abc.png", resolution="640x480")

    def _pipeline(self, data, repository=None, uploader=None):
        if repository is None:
            repository = MagicMock()
            repository.get_one.return_value = self.STORED
            repository.save.return_value = 5
        downloader = MagicMock()
        downloader.download.return_value = data
        return ResizePipeline(repository, uploader or _uploader(), downloader), repository, downloader

    @pytest.mark.asyncio
    async def test_creates_linked_derivative(self):
        pipeline, repository, downloader = self._pipeline(_make_test_image(640, 480))

        result = await pipeline.resize_existing(1, 100, 100)

        repository.get_one.assert_called_once_with(1)
        downloader.download.assert_called_once_with(self.STORED.download_url)
        assert result == OriginalResized(
            original=self.STORED,
            resized=Image(
                id=5,
                download_url=result.resized.download_url,
                resolution="100x100",
                original_id=1,
            ),
        )

    @pytest.mark.asyncio
    async def test_single_upload_of_derivative(self):
        uploader = _uploader()
        pipeline, repository, _ = self._pipeline(_make_test_image(64, 64), uploader=uploader)

        await pipeline.resize_existing(1, 16, 8)

        uploader.upload.assert_called_once()
        key, data = uploader.upload.call_args.args
        assert key == object_key(data)
        assert PILImage.open(io.BytesIO(data)).size == (16, 8)
        repository.save.assert_called_once()

    @pytest.mark.asyncio
    async def test_invalid_dimensions(self):
        pipeline, repository, _ = self._pipeline(b"")
        with pytest.raises(ValidationError):
            await pipeline.resize_existing(1, 100, 2161)
        repository.get_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_lookup_error_is_internal(self):
        repository = MagicMock()
        repository.get_one.side_effect = RepositoryError("connection reset")
        pipeline, _, _ = self._pipeline(b"", repository=repository)

        with pytest.raises(InternalError, match="couldn't get image by id: 1"):
            await pipeline.resize_existing(1, 100, 100)

    @pytest.mark.asyncio
    async def test_not_found_passes_through(self):
        repository = MagicMock()
        repository.get_one.side_effect = NotFoundError("image with ID 9 not found")
        pipeline, _, _ = self._pipeline(b"", repository=repository)

        with pytest.raises(NotFoundError):
            await pipeline.resize_existing(9, 100, 100)

    @pytest.mark.asyncio
    async def test_download_error_is_internal(self):
        pipeline, repository, downloader = self._pipeline(b"")
        downloader.download.side_effect = DownloadError("status code is: 404")

        with pytest.raises(InternalError, match="couldn't download image by url: abc.png"):
            await pipeline.resize_existing(1, 100, 100)
        repository.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_decode_error_is_internal(self):
        pipeline, _, _ = self._pipeline(b"test")
        with pytest.raises(InternalError, match="error decoding file abc.png"):
            await pipeline.resize_existing(1, 100, 100)

    @pytest.mark.asyncio
    async def test_upload_error_is_internal(self):
        uploader = MagicMock()
        uploader.upload.side_effect = UploadError("s3 down")
        pipeline, repository, _ = self._pipeline(_make_test_image(64, 64), uploader=uploader)

        with pytest.raises(InternalError, match="s3 down"):
            await pipeline.resize_existing(1, 100, 100)
        repository.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_save_error_is_internal(self):
        pipeline, repository, _ = self._pipeline(_make_test_image(64, 64))
        repository.save.side_effect = RepositoryError("insert failed")

        with pytest.raises(InternalError, match="insert failed"):
            await pipeline.resize_existing(1, 100, 100)


class TestListing:
    @pytest.mark.asyncio
    async def test_list_pairs(self):
        repository = MagicMock()
        pairs = [OriginalResized(Image("a", "1x1", 1), Image("b", "2x2", 2, 1))]
        repository.all.return_value = pairs
        pipeline = ResizePipeline(repository, MagicMock(), MagicMock())

        assert await pipeline.list_pairs() == pairs

    @pytest.mark.asyncio
    async def test_list_resized_error(self):
        repository = MagicMock()
        repository.only_resized.side_effect = RepositoryError("db gone")
        pipeline = ResizePipeline(repository, MagicMock(), MagicMock())

        with pytest.raises(InternalError, match="db gone"):
            await pipeline.list_resized()
