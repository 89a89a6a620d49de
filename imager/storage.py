"""Blob storage helpers: S3-compatible uploads and plain HTTP downloads.

Works against AWS S3 or any S3-compatible endpoint (R2, MinIO) when
S3_ENDPOINT_URL is set. Uploaded objects are public-read and addressed by the
URL returned from S3Uploader.upload().
"""

import logging
import mimetypes
from typing import Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from imager.config import Settings
from imager.errors import DownloadError, UploadError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def make_s3_client(settings: Settings):
    """Create an S3 client; credentials come from boto3's default chain."""
    kwargs = {"region_name": settings.aws_region}
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    return boto3.client("s3", **kwargs)


class S3Uploader:
    """Uploads objects to one bucket and returns their download URLs."""

    def __init__(self, client, bucket: str, endpoint_url: Optional[str] = None, region: str = "us-east-1"):
        self._client = client
        self.bucket = bucket
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        self.region = region

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Uploader":
        return cls(
            make_s3_client(settings),
            settings.bucket_name,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.aws_region,
        )

    def object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload(self, key: str, data: bytes) -> str:
        """Upload bytes under key and return the object's URL."""
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as e:
            raise UploadError(f"can't upload {key} with error: {e}") from e
        return self.object_url(key)

    def ensure_bucket(self):
        """Create the bucket unless we already own it."""
        kwargs = {"Bucket": self.bucket}
        if not self.endpoint_url and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._client.create_bucket(**kwargs)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "BucketAlreadyOwnedByYou":
                logger.info(f"Bucket {self.bucket} already exists")
                return
            raise
        logger.info(f"Created bucket {self.bucket}")


class Downloader:
    """Fetches objects over HTTP by their download URL."""

    def __init__(self, timeout: float = 60, max_bytes: int = 32 * 1024 * 1024):
        self.timeout = timeout
        self.max_bytes = max_bytes

    def download(self, url: str) -> bytes:
        """Stream the object at url, failing once it grows past max_bytes."""
        try:
            resp = requests.get(url, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise DownloadError(f"error downloading {url}: {e}") from e
        try:
            if resp.status_code != requests.codes.ok:
                raise DownloadError(f"error downloading {url}, status code is: {resp.status_code}")
            chunks = []
            size = 0
            for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                size += len(chunk)
                if size > self.max_bytes:
                    raise DownloadError(f"error downloading {url}: larger than {self.max_bytes} bytes")
                chunks.append(chunk)
        except requests.RequestException as e:
            raise DownloadError(f"reading body for: {url} failed with error: {e}") from e
        finally:
            resp.close()
        return b"".join(chunks)
