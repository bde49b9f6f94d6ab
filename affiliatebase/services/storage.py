"""Logo storage on an S3-compatible bucket (MinIO)."""

import io
import json
import uuid
from typing import Optional

from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool
from urllib3.exceptions import HTTPError

from affiliatebase.core.logging import get_logger
from affiliatebase.core.settings import Settings

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

MAX_LOGO_BYTES = 5 * 1024 * 1024


class LogoValidationError(ValueError):
    """Upload rejected because of its type or size."""


def validate_logo(content_type: Optional[str], size: int, max_bytes: int = MAX_LOGO_BYTES) -> str:
    """
    Check an uploaded logo and return the file extension to store it under.

    Raises:
        LogoValidationError: unsupported type, empty file or too large
    """
    extension = ALLOWED_CONTENT_TYPES.get((content_type or "").lower())
    if extension is None:
        raise LogoValidationError("Invalid file type. Allowed: JPEG, PNG, WebP, GIF")
    if size <= 0:
        raise LogoValidationError("No file provided")
    if size > max_bytes:
        raise LogoValidationError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")
    return extension


def _public_read_policy(bucket: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"AWS": ["*"]},
            "Action": ["s3:GetObject"],
            "Resource": [f"arn:aws:s3:::{bucket}/*"],
        }],
    })


class LogoStorage:
    """Uploads and deletes program logos; the SDK client is blocking so calls run in a thread."""

    def __init__(self, client: Minio, bucket: str, public_url: str, max_bytes: int = MAX_LOGO_BYTES):
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")
        self.max_bytes = max_bytes
        self._bucket_ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "LogoStorage":
        client = Minio(
            settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
        )
        return cls(client, settings.minio_bucket, settings.minio_public_url, settings.max_logo_bytes)

    def public_object_url(self, filename: str) -> str:
        return f"{self.public_url}/{self.bucket}/{filename}"

    def object_name_from_url(self, url: Optional[str]) -> Optional[str]:
        """Object name for URLs that point into our bucket, else None."""
        prefix = f"{self.public_url}/{self.bucket}/"
        if not url or not url.startswith(prefix):
            return None
        name = url[len(prefix):]
        return name or None

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            self.client.set_bucket_policy(self.bucket, _public_read_policy(self.bucket))
            logger.info(f"Created public bucket {self.bucket}")
        self._bucket_ready = True

    def _put(self, filename: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self.client.put_object(
            self.bucket,
            filename,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )

    async def upload_logo(self, data: bytes, content_type: str) -> str:
        """
        Store a validated logo under a random name.

        Args:
            data: File bytes
            content_type: MIME type of the upload

        Returns:
            Public URL of the stored object
        """
        extension = validate_logo(content_type, len(data), self.max_bytes)
        filename = f"{uuid.uuid4()}.{extension}"

        await run_in_threadpool(self._put, filename, data, content_type)

        url = self.public_object_url(filename)
        logger.info(f"Uploaded logo {filename}", extra={"bytes": len(data), "content_type": content_type})
        return url

    async def delete_logo(self, url: Optional[str]) -> bool:
        """Remove a previously uploaded logo. Never raises."""
        name = self.object_name_from_url(url)
        if name is None:
            return False
        try:
            await run_in_threadpool(self.client.remove_object, self.bucket, name)
            logger.info(f"Deleted old logo {name}")
            return True
        except (S3Error, HTTPError) as e:
            logger.warning(f"Could not delete old logo {name}: {e}")
            return False
