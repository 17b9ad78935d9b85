"""Per-object units of work: download to local staging, upload from staging."""

from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath
from typing import Iterable, List

from migration_batches import with_retry
from migration_errors import BucketAlreadyExists, NoSignedUrl, StagingFileMissing
from migration_types import TransferItem, TransferResult
from migration_utils import format_bytes


def staging_path_for(staging_dir, bucket: str, path: str) -> Path:
    """Deterministic local path for an object: ``<staging>/<bucket>/<path>``."""
    relative = PurePosixPath(path.lstrip("/"))
    if ".." in relative.parts:
        raise ValueError(f"Refusing to stage object outside its bucket: {path}")
    return Path(staging_dir) / bucket / Path(*relative.parts)


def print_result(verb: str, result: TransferResult):
    item = result.item
    if result.success:
        print(f"✅ [{item.ordinal}] {verb}: {item.path} ({format_bytes(item.size_bytes)})")
    else:
        print(f"❌ [{item.ordinal}] Failed: {item.path} - {result.error}")


class Downloader:
    """Fetches objects through signed URLs into the staging directory."""

    def __init__(self, source, staging_dir, *, ttl_seconds=3600, max_attempts=3, base_delay=1.0, sleep=asyncio.sleep):
        self.source = source
        self.staging_dir = Path(staging_dir)
        self.ttl_seconds = ttl_seconds
        self.download_one = with_retry(
            self._attempt_download, max_attempts, base_delay, sleep=sleep, label="download"
        )

    async def _attempt_download(self, item: TransferItem):
        bucket_dir = self.staging_dir / item.bucket
        bucket_dir.mkdir(parents=True, exist_ok=True)
        url = await self.source.get_signed_download_url(item.bucket, item.path, self.ttl_seconds)
        if not url:
            raise NoSignedUrl(f"No signed URL received for {item.bucket}/{item.path}")
        destination = staging_path_for(self.staging_dir, item.bucket, item.path)
        destination.parent.mkdir(parents=True, exist_ok=True)
        await self.source.stream_download(url, destination)
        item.downloaded = True
        item.staging_path = str(destination)


class Uploader:
    """Pushes staged files to the destination with upsert semantics."""

    def __init__(self, destination, staging_dir, *, max_attempts=3, base_delay=1.0, sleep=asyncio.sleep):
        self.destination = destination
        self.staging_dir = Path(staging_dir)
        # A missing staging file goes through the same retry budget as transient errors.
        self.upload_one = with_retry(self._attempt_upload, max_attempts, base_delay, sleep=sleep, label="upload")

    async def _attempt_upload(self, item: TransferItem):
        local_path = staging_path_for(self.staging_dir, item.bucket, item.path)
        if not local_path.exists():
            raise StagingFileMissing(f"Local file not found: {local_path}")
        data = await asyncio.to_thread(local_path.read_bytes)
        await self.destination.upload_object(item.bucket, item.path, data, upsert=True)
        item.uploaded = True
        item.staging_path = str(local_path)

    async def ensure_buckets(self, buckets: Iterable[str], public: bool = False) -> List[str]:
        """Create each destination bucket if needed; an existing bucket counts as ready."""
        ready = []
        for bucket in buckets:
            print(f"📁 Creating/checking bucket: {bucket}")
            try:
                await self.destination.create_bucket_if_absent(bucket, public=public)
            except BucketAlreadyExists:
                pass
            print(f'✅ Bucket "{bucket}" ready')
            ready.append(bucket)
        return ready
