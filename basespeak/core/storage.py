"""
Asset storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Paths are bucket-relative ("<user_id>/audio/<message_id>-0.mp3"). Uploads
upsert: writing the same path twice replaces the object.
"""

import asyncio
import logging
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class StoredAsset:
    path: str
    public_url: Optional[str]


class StorageBackend(ABC):
    @abstractmethod
    async def upload(
        self, bucket: str, path: str, file_bytes: bytes, mime_type: str
    ) -> StoredAsset:
        """Upload bytes to bucket/path. Returns the stored path and its public URL."""
        ...

    @abstractmethod
    def public_url(self, bucket: str, path: Optional[str]) -> Optional[str]:
        """Public URL for a stored path, or None when there is no path."""
        ...

    async def read_file(self, bucket: str, path: str) -> Optional[tuple[bytes, str]]:
        """Read a stored file. Returns (bytes, content_type) or None if not found."""
        return None


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    async def upload(
        self, bucket: str, path: str, file_bytes: bytes, mime_type: str
    ) -> StoredAsset:
        key = path.strip("/")
        client = self._get_client()
        await asyncio.to_thread(
            client.put_object,
            Bucket=bucket,
            Key=key,
            Body=file_bytes,
            ContentType=mime_type or guess_content_type(key),
            CacheControl="max-age=3600",
        )
        logger.info("Uploaded to S3: %s/%s (%d bytes)", bucket, key, len(file_bytes))
        return StoredAsset(path=key, public_url=self.public_url(bucket, key))

    def public_url(self, bucket: str, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        settings = get_settings()
        return f"https://{bucket}.s3.{settings.aws_region}.amazonaws.com/{path.strip('/')}"


class LocalStorage(StorageBackend):
    def __init__(self, base_path: str = "./local_storage", public_base_url: str = ""):
        self.base_path = Path(base_path)
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, bucket: str, path: str) -> Optional[Path]:
        """Absolute file path for bucket/path, or None if it would leave the bucket."""
        if not is_bucket_name(bucket):
            return None
        base = self.base_path.resolve()
        root = (base / bucket).resolve()
        target = (root / path.strip("/")).resolve()
        if base not in root.parents or root not in target.parents:
            return None
        return target

    async def upload(
        self, bucket: str, path: str, file_bytes: bytes, mime_type: str
    ) -> StoredAsset:
        target = self._resolve(bucket, path)
        if target is None:
            raise ValueError(f"Invalid storage path: {path}")

        target.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_bytes, file_bytes)

        key = path.strip("/")
        logger.info("Saved locally: %s/%s (%d bytes)", bucket, key, len(file_bytes))
        return StoredAsset(path=key, public_url=self.public_url(bucket, key))

    def public_url(self, bucket: str, path: Optional[str]) -> Optional[str]:
        if not path:
            return None
        return f"{self.public_base_url}/v1/files/{bucket}/{path.strip('/')}"

    async def read_file(self, bucket: str, path: str) -> Optional[tuple[bytes, str]]:
        target = self._resolve(bucket, path)
        if target is None or not target.is_file():
            return None
        return await asyncio.to_thread(target.read_bytes), guess_content_type(target.name)


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    settings = get_settings()
    return LocalStorage(settings.local_storage_path, settings.public_base_url)


def is_bucket_name(bucket: str) -> bool:
    """A bucket is one plain path segment: no separators, not "." or ".."."""
    return bool(bucket) and bucket not in (".", "..") and not any(c in bucket for c in "/\\\0")


def guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"


def extension_for_mime(mime: str) -> str:
    """File extension (no dot) for the media types the pipeline stores."""
    known = {
        "image/png": "png",
        "image/jpeg": "jpg",
        "image/jpg": "jpg",
        "image/webp": "webp",
        "video/mp4": "mp4",
        "video/quicktime": "mov",
        "audio/mpeg": "mp3",
        "audio/wav": "wav",
        "audio/x-wav": "wav",
    }
    return known.get(mime, "bin")
