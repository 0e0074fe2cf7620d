"""
Storage for original upload bytes. S3 OR local filesystem. Controlled by FF_USE_S3 flag.
"""

import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    @abstractmethod
    async def upload(self, file_bytes: bytes, filename: str, folder: str = "") -> str:
        """Upload file. Returns the URL/path to the stored file."""
        ...

    @abstractmethod
    async def delete(self, location: str) -> None:
        """Remove a previously stored file. Missing files are ignored."""
        ...


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

    def _base_url(self) -> str:
        settings = get_settings()
        return f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/"

    async def upload(self, file_bytes: bytes, filename: str, folder: str = "") -> str:
        settings = get_settings()
        key = f"{folder}/{_unique_name(filename)}" if folder else _unique_name(filename)
        key = key.strip("/")

        client = self._get_client()
        client.put_object(
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=file_bytes,
            ContentType=_guess_content_type(filename),
        )

        logger.info("Uploaded to S3: %s", key)
        return self._base_url() + key

    async def delete(self, location: str) -> None:
        base = self._base_url()
        if not location.startswith(base):
            return
        settings = get_settings()
        self._get_client().delete_object(
            Bucket=settings.s3_bucket_name, Key=location[len(base):]
        )
        logger.info("Deleted from S3: %s", location)


class LocalStorage(StorageBackend):
    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or get_settings().local_storage_path)

    async def upload(self, file_bytes: bytes, filename: str, folder: str = "") -> str:
        dir_path = self.base_path / folder if folder else self.base_path
        dir_path.mkdir(parents=True, exist_ok=True)

        file_path = dir_path / _unique_name(filename)
        file_path.write_bytes(file_bytes)

        result = str(file_path)
        logger.info("Saved locally: %s", result)
        return result

    async def delete(self, location: str) -> None:
        path = Path(location)
        if path.is_file() and self.base_path.resolve() in path.resolve().parents:
            path.unlink()
            logger.info("Deleted local file: %s", location)


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage()


def _unique_name(filename: str) -> str:
    return f"{uuid.uuid4().hex[:12]}{Path(filename).suffix}"


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
