"""
Remote image storage for listing photos and payment proofs.

Objects live in an S3-compatible bucket (AWS S3 or MinIO). The public URL of
an object is `<S3_PUBLIC_BASE>/<key>`, so the key, and with it the folder the
image was filed under, can always be recovered from the URL alone.
"""

import mimetypes
import uuid
from abc import ABC, abstractmethod
from urllib.parse import urlparse

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import ClientError
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from staybook.core.config import Settings
from staybook.core.logging import get_logger

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}


class ImageStore(ABC):
    """Interface for the remote image store."""

    @abstractmethod
    async def upload(self, file: UploadFile, folder: str) -> str:
        """Store one image and return its public URL."""

    @abstractmethod
    async def delete(self, url: str) -> bool:
        """Delete the image behind `url`. Returns False when it did not exist."""


class S3ImageStore(ImageStore):
    def __init__(self, settings: Settings):
        self.client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY or None,
            aws_secret_access_key=settings.S3_SECRET_KEY or None,
            region_name=settings.S3_REGION,
            config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
        self.bucket_name = settings.S3_BUCKET_NAME
        self.public_base = settings.S3_PUBLIC_BASE.rstrip("/")
        self.max_bytes = settings.IMAGE_MAX_BYTES

    def key_from_url(self, url: str) -> str | None:
        if self.public_base and url.startswith(self.public_base + "/"):
            return url[len(self.public_base) + 1:]
        # Fall back to path-style URLs: /<bucket>/<key>
        path = urlparse(url).path.lstrip("/")
        prefix = f"{self.bucket_name}/"
        if path.startswith(prefix):
            return path[len(prefix):]
        return path or None

    async def upload(self, file: UploadFile, folder: str) -> str:
        content_type = file.content_type or mimetypes.guess_type(file.filename or "")[0]
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValueError(f"Unsupported image type: {content_type}")

        body = await file.read()
        if not body:
            raise ValueError("Empty image file")
        if len(body) > self.max_bytes:
            raise ValueError(f"Image exceeds {self.max_bytes // (1024 * 1024)} MB")

        extension = mimetypes.guess_extension(content_type) or ".bin"
        key = f"{folder.strip('/')}/{uuid.uuid4().hex}{extension}"

        await run_in_threadpool(
            self.client.put_object,
            Bucket=self.bucket_name,
            Key=key,
            Body=body,
            ContentType=content_type,
            CacheControl="max-age=31536000",
        )
        logger.info("image_uploaded", key=key, size=len(body))
        return f"{self.public_base}/{key}"

    async def delete(self, url: str) -> bool:
        key = self.key_from_url(url)
        if not key:
            logger.warning("image_key_unresolvable", url=url)
            return False

        try:
            await run_in_threadpool(self.client.head_object, Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                logger.info("image_not_found", key=key)
                return False
            raise

        await run_in_threadpool(self.client.delete_object, Bucket=self.bucket_name, Key=key)
        logger.info("image_deleted", key=key)
        return True


async def upload_images(store: ImageStore, files: list[UploadFile], folder: str) -> list[str]:
    """
    Upload each file independently. A failed file is logged and skipped;
    the caller decides whether an empty result is an error.
    """
    urls: list[str] = []
    for file in files:
        try:
            urls.append(await store.upload(file, folder))
        except Exception as e:
            logger.error("image_upload_failed", filename=file.filename, error=str(e))
    return urls
