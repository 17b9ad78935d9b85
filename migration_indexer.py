"""Index building: walk every bucket and assign each object a permanent ordinal."""

from __future__ import annotations

import logging
from typing import List

from migration_errors import ListingError
from migration_types import TransferItem
from migration_utils import format_bytes


def _entry_sort_key(entry):
    return (not entry.is_folder, entry.name)


def _join(folder: str, name: str) -> str:
    return f"{folder}/{name}" if folder else name


async def _walk_folder(source, bucket: str, folder: str, accumulator: List[TransferItem]):
    """Depth-first walk; folders before objects, each group in name order."""
    try:
        entries = await source.list_entries(bucket, folder)
    except ListingError as exc:
        logging.warning("Listing failed for %s/%s, treating as empty: %s", bucket, folder, exc)
        return
    for entry in sorted(entries, key=_entry_sort_key):
        path = _join(folder, entry.name)
        if entry.is_folder:
            await _walk_folder(source, bucket, path, accumulator)
        else:
            accumulator.append(
                TransferItem(
                    bucket=bucket,
                    path=path,
                    size_bytes=entry.size_bytes or 0,
                    last_modified=entry.last_modified,
                    ordinal=-1,
                )
            )


async def list_bucket_objects(source, bucket: str) -> List[TransferItem]:
    """Return every object in *bucket* in traversal order, ordinals unassigned."""
    items: List[TransferItem] = []
    await _walk_folder(source, bucket, "", items)
    return items


async def build_index(source, bucket_names: List[str]) -> List[TransferItem]:
    """Walk all buckets and number the accumulated objects 0..N-1."""
    all_items: List[TransferItem] = []
    for bucket in bucket_names:
        print(f"\n📁 Indexing bucket: {bucket}")
        items = await list_bucket_objects(source, bucket)
        total_size = sum(item.size_bytes for item in items)
        print(f"  Found {len(items):,} file(s), {format_bytes(total_size)}")
        all_items.extend(items)
    for ordinal, item in enumerate(all_items):
        item.ordinal = ordinal
    return all_items


async def resolve_buckets(source, configured: List[str], excluded: List[str]) -> List[str]:
    """Configured bucket list, else every source bucket; excluded names removed.

    A failure to list source buckets propagates: an empty migration is not a safe fallback.
    """
    buckets = list(configured) if configured else await source.list_buckets()
    excluded_set = set(excluded)
    return [bucket for bucket in buckets if bucket not in excluded_set]
