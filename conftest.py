"""Pytest configuration and shared fixtures for the storage migration."""

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from migration_errors import BackendRejected, BucketAlreadyExists, ListingError, TransportError
from migration_state_store import ProgressStore
from migration_types import MigrationSettings
from storage_backends import StorageEntry

FAKE_TIMESTAMP = "2024-01-01T00:00:00+00:00"
ALWAYS = -1


def _consume_failure(table: dict, path: str) -> bool:
    """Return True if *path* should fail now, decrementing its remaining budget."""
    remaining = table.get(path)
    if remaining is None or remaining == 0:
        return False
    if remaining > 0:
        table[path] = remaining - 1
    return True


class FakeStorageBackend:
    """In-memory storage backend that records every call it receives."""

    def __init__(self, objects=None, delay: float = 0.0):
        self.objects = {bucket: dict(paths) for bucket, paths in (objects or {}).items()}
        self.delay = delay
        self.calls = []
        self.failing_listings = set()
        self.download_failures = {}
        self.upload_failures = {}
        self.no_url_paths = set()
        self.existing_buckets = set()
        self.reject_bucket_creation = False
        self.fail_bucket_listing = False
        self.uploaded = {}
        self.in_flight = 0
        self.peak_in_flight = 0
        self.closed = False

    def calls_named(self, name):
        return [call for call in self.calls if call[0] == name]

    @asynccontextmanager
    async def _track(self):
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            yield
        finally:
            self.in_flight -= 1

    async def list_buckets(self):
        self.calls.append(("list_buckets",))
        if self.fail_bucket_listing:
            raise ListingError("bucket listing unavailable")
        return list(self.objects)

    async def list_entries(self, bucket, folder):
        self.calls.append(("list_entries", bucket, folder))
        if (bucket, folder) in self.failing_listings:
            raise ListingError(f"cannot list {bucket}/{folder}")
        prefix = f"{folder}/" if folder else ""
        folders = {}
        entries = []
        # Deliberately unsorted: objects in insertion order, folders after them.
        for path, data in self.objects.get(bucket, {}).items():
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix) :]
            if "/" in rest:
                name = rest.split("/", 1)[0]
                folders.setdefault(name, StorageEntry(name=name, is_folder=True))
            else:
                entries.append(StorageEntry(name=rest, is_folder=False, size_bytes=len(data), last_modified=FAKE_TIMESTAMP))
        return entries + list(folders.values())

    async def get_signed_download_url(self, bucket, path, ttl_seconds):
        self.calls.append(("get_signed_download_url", bucket, path, ttl_seconds))
        if path in self.no_url_paths:
            return None
        return f"fake://{bucket}/{path}"

    async def stream_download(self, url, destination):
        self.calls.append(("stream_download", url, str(destination)))
        bucket, path = url[len("fake://") :].split("/", 1)
        async with self._track():
            if _consume_failure(self.download_failures, path):
                raise TransportError(f"connection reset while fetching {path}")
            Path(destination).write_bytes(self.objects[bucket][path])

    async def create_bucket_if_absent(self, bucket, public=False):
        self.calls.append(("create_bucket_if_absent", bucket, public))
        if self.reject_bucket_creation:
            raise BackendRejected(f"not allowed to create {bucket}")
        if bucket in self.existing_buckets:
            raise BucketAlreadyExists(f"Bucket {bucket} already exists")
        self.existing_buckets.add(bucket)

    async def upload_object(self, bucket, path, data, upsert=True):
        self.calls.append(("upload_object", bucket, path, upsert))
        async with self._track():
            if _consume_failure(self.upload_failures, path):
                raise BackendRejected(f"destination refused {path}")
            self.uploaded[(bucket, path)] = bytes(data)

    async def close(self):
        self.closed = True


@pytest.fixture(name="make_backend")
def fixture_make_backend():
    """Factory for FakeStorageBackend instances."""
    return FakeStorageBackend


@pytest.fixture(name="scenario_objects")
def fixture_scenario_objects():
    """Bucket ``b`` with ``x/a.txt`` (10 B), ``x/b.txt`` (20 B) and ``c.txt`` (5 B)."""
    return {"b": {"c.txt": b"c" * 5, "x/b.txt": b"b" * 20, "x/a.txt": b"a" * 10}}


@pytest.fixture(name="source")
def fixture_source(scenario_objects):
    return FakeStorageBackend(scenario_objects)


@pytest.fixture(name="destination")
def fixture_destination():
    return FakeStorageBackend()


@pytest.fixture(name="settings")
def fixture_settings(tmp_path):
    """Settings rooted in a temp dir with no pauses between batches."""
    return MigrationSettings(
        staging_dir=str(tmp_path / "staging"),
        progress_file=str(tmp_path / "migration_progress.json"),
        index_file=str(tmp_path / "files_index.json"),
        download_batch_pause=0.0,
        upload_batch_pause=0.0,
        retry_base_delay=0.0,
    )


@pytest.fixture(name="progress_store")
def fixture_progress_store(settings):
    return ProgressStore.from_paths(settings.progress_file, settings.index_file)


@pytest.fixture(name="recorded_sleeps")
def fixture_recorded_sleeps():
    """Return (delays, sleep) where sleep records its argument instead of waiting."""
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    return delays, fake_sleep
