"""Storage backend interface and the S3-compatible implementation (boto3 + aiohttp)."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

import aiohttp
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from migration_errors import BackendRejected, BucketAlreadyExists, ListingError, TransportError
from migration_types import BackendSettings

_ALREADY_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class StorageEntry:
    """One row of a folder listing."""

    name: str
    is_folder: bool
    size_bytes: int = 0
    last_modified: Optional[str] = None


class StorageBackend(Protocol):
    """Capabilities the migration needs from a storage service."""

    async def list_buckets(self) -> List[str]: ...

    async def list_entries(self, bucket: str, folder: str) -> List[StorageEntry]: ...

    async def get_signed_download_url(self, bucket: str, path: str, ttl_seconds: int) -> Optional[str]: ...

    async def stream_download(self, url: str, destination: Path) -> None: ...

    async def create_bucket_if_absent(self, bucket: str, public: bool = False) -> None: ...

    async def upload_object(self, bucket: str, path: str, data: bytes, upsert: bool = True) -> None: ...

    async def close(self) -> None: ...


def create_s3_client(settings: BackendSettings):
    """Build a boto3 S3 client for the given endpoint settings."""
    kwargs = {}
    if settings.endpoint_url:
        kwargs["endpoint_url"] = settings.endpoint_url
    if settings.access_key_id:
        kwargs["aws_access_key_id"] = settings.access_key_id
    if settings.secret_access_key:
        kwargs["aws_secret_access_key"] = settings.secret_access_key
    if settings.region:
        kwargs["region_name"] = settings.region
    return boto3.client("s3", **kwargs)


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _folder_prefix(folder: str) -> str:
    folder = folder.strip("/")
    return f"{folder}/" if folder else ""


def _list_folder(s3_client, bucket: str, folder: str) -> List[StorageEntry]:
    """List one folder level using the "/" delimiter, folders before objects."""
    prefix = _folder_prefix(folder)
    folders: List[StorageEntry] = []
    objects: List[StorageEntry] = []
    paginator = s3_client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix, Delimiter="/"):
        for common in page.get("CommonPrefixes") or []:
            name = common["Prefix"][len(prefix) :].rstrip("/")
            if name:
                folders.append(StorageEntry(name=name, is_folder=True))
        for obj in page.get("Contents") or []:
            name = obj["Key"][len(prefix) :]
            if not name or name.endswith("/"):
                continue
            last_modified = obj.get("LastModified")
            objects.append(
                StorageEntry(
                    name=name,
                    is_folder=False,
                    size_bytes=int(obj.get("Size") or 0),
                    last_modified=last_modified.isoformat() if last_modified is not None else None,
                )
            )
    return folders + objects


class S3StorageBackend:
    """S3-compatible backend; blocking boto3 calls run off the event loop."""

    def __init__(
        self,
        s3_client,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 300.0,
        region: Optional[str] = None,
    ):
        self.s3 = s3_client
        self._session = session
        self._owns_session = session is None
        self.timeout_seconds = timeout_seconds
        self.region = region

    @classmethod
    def from_settings(cls, settings: BackendSettings) -> "S3StorageBackend":
        return cls(create_s3_client(settings), region=settings.region)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def list_buckets(self) -> List[str]:
        try:
            response = await asyncio.to_thread(self.s3.list_buckets)
        except (ClientError, BotoCoreError) as exc:
            raise ListingError(f"Failed to list buckets: {exc}") from exc
        return [bucket["Name"] for bucket in response.get("Buckets", [])]

    async def list_entries(self, bucket: str, folder: str) -> List[StorageEntry]:
        try:
            return await asyncio.to_thread(_list_folder, self.s3, bucket, folder)
        except (ClientError, BotoCoreError) as exc:
            raise ListingError(f"Failed to list {bucket}/{folder}: {exc}") from exc

    async def get_signed_download_url(self, bucket: str, path: str, ttl_seconds: int) -> Optional[str]:
        try:
            return await asyncio.to_thread(
                self.s3.generate_presigned_url,
                "get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise TransportError(f"Failed to sign {bucket}/{path}: {exc}") from exc

    async def stream_download(self, url: str, destination: Path) -> None:
        """Stream *url* into *destination*; a partial file is removed on failure."""
        session = self._get_session()
        try:
            async with session.get(url) as response:
                if response.status >= 400:
                    raise TransportError(f"HTTP {response.status} fetching {destination.name}")
                handle = await asyncio.to_thread(destination.open, "wb")
                try:
                    async for chunk in response.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                        await asyncio.to_thread(handle.write, chunk)
                finally:
                    await asyncio.to_thread(handle.close)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            destination.unlink(missing_ok=True)
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
        except (TransportError, OSError):
            destination.unlink(missing_ok=True)
            raise

    async def create_bucket_if_absent(self, bucket: str, public: bool = False) -> None:
        kwargs = {"Bucket": bucket}
        # us-east-1 and endpoints without a region take no LocationConstraint
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        if public:
            kwargs["ACL"] = "public-read"
        try:
            await asyncio.to_thread(self.s3.create_bucket, **kwargs)
        except ClientError as exc:
            if _error_code(exc) in _ALREADY_EXISTS_CODES:
                raise BucketAlreadyExists(f"Bucket {bucket} already exists") from exc
            raise BackendRejected(f"Failed to create bucket {bucket}: {exc}") from exc
        except BotoCoreError as exc:
            raise BackendRejected(f"Failed to create bucket {bucket}: {exc}") from exc

    async def upload_object(self, bucket: str, path: str, data: bytes, upsert: bool = True) -> None:
        # S3 PUT replaces existing keys; without upsert refuse to overwrite.
        kwargs = {"Bucket": bucket, "Key": path, "Body": data}
        if not upsert:
            kwargs["IfNoneMatch"] = "*"
        try:
            await asyncio.to_thread(self.s3.put_object, **kwargs)
        except ClientError as exc:
            raise BackendRejected(f"Upload rejected for {bucket}/{path}: {exc}") from exc
        except BotoCoreError as exc:
            raise TransportError(f"Upload failed for {bucket}/{path}: {exc}") from exc
