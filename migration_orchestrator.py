"""Orchestration: phase sequencing, resume points, checkpoints and status reporting"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from migration_batches import run_bounded_batches
from migration_errors import MigrationFatalError
from migration_indexer import build_index, resolve_buckets
from migration_state_store import ProgressStore
from migration_transfer import Downloader, Uploader, print_result
from migration_types import MigrationSettings, Phase, PhaseSummary, ProgressState, TransferItem, TransferResult
from migration_utils import format_bytes, format_duration, percent


class CheckpointTracker:
    """Counts successes as chunks settle and checkpoints every *interval* of them."""

    def __init__(
        self,
        store: ProgressStore,
        state: ProgressState,
        interval: int,
        advance_cursor: Callable[[int], None],
        verb: str,
    ):
        if interval < 1:
            raise ValueError(f"checkpoint interval must be at least 1, got {interval}")
        self.store = store
        self.state = state
        self.interval = interval
        self.advance_cursor = advance_cursor
        self.verb = verb
        self.successes = 0
        self.checkpoints = 0

    async def record(self, results: List[TransferResult]):
        for result in results:
            print_result(self.verb, result)
            if not result.success:
                continue
            self.successes += 1
            if self.successes % self.interval == 0:
                self.advance_cursor(result.item.ordinal)
                await asyncio.to_thread(self.store.checkpoint, self.state)
                self.checkpoints += 1


def _summarize(name: str, results: List[TransferResult]) -> PhaseSummary:
    summary = PhaseSummary(name=name, attempted=len(results))
    for result in results:
        if result.success:
            summary.succeeded += 1
        else:
            summary.failures.append(result)
    return summary


def print_phase_summary(summary: PhaseSummary, icon: str):
    print(f"{icon} {summary.name} phase completed: {summary.succeeded} successful, {summary.failed} failed")
    if summary.failures:
        print(f"⚠️  Failed {summary.name.lower()}s:")
        for result in summary.failures:
            print(f"   - {result.item.bucket}/{result.item.path}: {result.error}")


def _resume_point(manual_start: Optional[int], cursor: int, label: str) -> int:
    if manual_start is not None:
        print(f"🎯 Manual {label} start index specified: {manual_start}")
        return max(0, manual_start)
    start = max(0, cursor + 1)
    print(f"🚀 Resuming {label} from checkpoint: {start}")
    return start


def _pending(items: List[TransferItem], start: int, flag: str) -> List[TransferItem]:
    return [item for item in items if item.ordinal >= start and not getattr(item, flag)]


def _distinct_buckets(items: List[TransferItem]) -> List[str]:
    return list(dict.fromkeys(item.bucket for item in items))


def handle_migration_error(phase: Phase, error: Exception):
    """Log an unexpected phase error and stop without advancing the phase"""
    logging.error("Migration failed during %s: %s", phase.value, error, exc_info=error)
    print()
    print("=" * 70)
    print("MIGRATION STOPPED - ERROR ENCOUNTERED")
    print("=" * 70)
    print(f"Phase: {phase.value}")
    print(f"Error: {error}")
    print()
    print("The last checkpoint has been kept.")
    print("💡 You can resume by running the script again.")
    print("=" * 70)
    raise MigrationFatalError(f"Migration error: {error}") from error


def show_migration_status(state: ProgressState):
    """Display current migration status"""
    print("\n" + "=" * 70)
    print("MIGRATION STATUS")
    print("=" * 70)
    print(f"Phase: {state.phase.value}")
    print(f"Buckets: {len(state.buckets)}")
    total = len(state.items)
    print(f"Total files: {total:,} ({format_bytes(sum(item.size_bytes for item in state.items))})")
    if total:
        downloaded = sum(1 for item in state.items if item.downloaded)
        uploaded = sum(1 for item in state.items if item.uploaded)
        failed = sum(1 for item in state.items if item.last_error)
        print(f"Downloaded: {downloaded:,}/{total:,} ({percent(downloaded, total)}%)")
        print(f"Uploaded: {uploaded:,}/{total:,} ({percent(uploaded, total)}%)")
        if failed:
            print(f"With errors: {failed:,}")
    print(f"Last download index: {state.download_cursor}")
    print(f"Last upload index: {state.upload_cursor}")
    print(f"Started: {state.started_at}")
    print(f"Last saved: {state.last_saved_at}")
    print("=" * 70)


def print_completion_message(staging_dir: str):
    print("\n" + "=" * 70)
    print("🎉 MIGRATION COMPLETED!")
    print("=" * 70)
    print(f"💡 You can now delete the {staging_dir} folder if everything looks good.")
    print('💡 Use "clean" to remove checkpoint files.')
    print("=" * 70)


class MigrationOrchestrator:
    """Runs index -> download -> upload, resuming each phase from its checkpoint"""

    def __init__(
        self,
        source,
        destination,
        store: ProgressStore,
        settings: MigrationSettings,
        *,
        sleep=asyncio.sleep,
    ):
        self.source = source
        self.destination = destination
        self.store = store
        self.settings = settings
        self.sleep = sleep
        self.downloader = Downloader(
            source,
            settings.staging_dir,
            ttl_seconds=settings.signed_url_ttl_seconds,
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            sleep=sleep,
        )
        self.uploader = Uploader(
            destination,
            settings.staging_dir,
            max_attempts=settings.max_attempts,
            base_delay=settings.retry_base_delay,
            sleep=sleep,
        )
        self.summaries: Dict[str, PhaseSummary] = {}

    def _has_manual_start(self) -> bool:
        return self.settings.manual_download_start is not None or self.settings.manual_upload_start is not None

    async def run(self, command: str = "migrate") -> ProgressState:
        """Load state and run the phases *command* asks for"""
        state = await asyncio.to_thread(self.store.load)
        if state.phase == Phase.COMPLETED and not self._has_manual_start():
            print("✓ Migration already complete!")
            show_migration_status(state)
            return state
        print(f"Resuming from: {state.phase.value}")
        try:
            if command in ("migrate", "download"):
                await self.ensure_index(state)
                await self.download_phase(state)
            if command in ("migrate", "upload"):
                await self.upload_phase(state)
        except MigrationFatalError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            handle_migration_error(state.phase, exc)
        if state.phase == Phase.COMPLETED:
            print_completion_message(self.settings.staging_dir)
        return state

    async def ensure_index(self, state: ProgressState) -> List[TransferItem]:
        """Build and persist the object index unless one already exists"""
        if state.items:
            print(f"📋 Using existing files index: {len(state.items):,} files")
            return state.items
        print("=" * 70)
        print("🔍 BUILDING FILES INDEX")
        print("=" * 70)
        state.advance_phase(Phase.INDEXING)
        await asyncio.to_thread(self.store.save, state)
        buckets = await resolve_buckets(self.source, self.settings.buckets, self.settings.excluded_buckets)
        print(f"🪣 Buckets: {', '.join(buckets) if buckets else '(none)'}")
        state.buckets = buckets
        state.items = await build_index(self.source, buckets)
        await asyncio.to_thread(self.store.checkpoint, state)
        print(f"📊 Total files indexed: {len(state.items):,}")
        return state.items

    async def download_phase(self, state: ProgressState) -> PhaseSummary:
        """Download every pending item at or past the resume point"""
        print("\n📥 Starting download phase...")
        state.advance_phase(Phase.DOWNLOADING)
        await asyncio.to_thread(self.store.save, state)
        start = _resume_point(self.settings.manual_download_start, state.download_cursor, "download")
        work = _pending(state.items, start, "downloaded")
        results: List[TransferResult] = []
        if work:
            print(f"📥 Files to download: {len(work):,} (from index {start}, {self.settings.download_concurrent} concurrent)")
            tracker = CheckpointTracker(
                self.store,
                state,
                self.settings.download_checkpoint_interval,
                state.advance_download_cursor,
                "Downloaded",
            )
            started = time.time()
            results = await run_bounded_batches(
                work,
                self.settings.download_concurrent,
                self.downloader.download_one,
                pause=self.settings.download_batch_pause,
                sleep=self.sleep,
                on_chunk_settled=tracker.record,
                label="batch",
            )
            print(f"⏱  Download time: {format_duration(time.time() - started)}")
        else:
            print("✅ All files already downloaded!")
        if state.items:
            state.advance_download_cursor(len(state.items) - 1)
        await asyncio.to_thread(self.store.checkpoint, state)
        summary = _summarize("Download", results)
        self.summaries["download"] = summary
        print_phase_summary(summary, "📥")
        return summary

    async def upload_phase(self, state: ProgressState) -> Optional[PhaseSummary]:
        """Upload every pending item at or past the resume point, then mark completion"""
        print("\n📤 Starting upload phase...")
        if not state.items and state.phase.rank < Phase.DOWNLOADING.rank:
            print("No files index found. Please run download first.")
            return None
        state.advance_phase(Phase.UPLOADING)
        await asyncio.to_thread(self.store.save, state)
        start = _resume_point(self.settings.manual_upload_start, state.upload_cursor, "upload")
        work = _pending(state.items, start, "uploaded")
        results: List[TransferResult] = []
        if work:
            await self.uploader.ensure_buckets(_distinct_buckets(state.items), public=self.settings.public_buckets)
            print(f"📤 Files to upload: {len(work):,} (from index {start}, {self.settings.upload_concurrent} concurrent)")
            tracker = CheckpointTracker(
                self.store,
                state,
                self.settings.upload_checkpoint_interval,
                state.advance_upload_cursor,
                "Uploaded",
            )
            started = time.time()
            results = await run_bounded_batches(
                work,
                self.settings.upload_concurrent,
                self.uploader.upload_one,
                pause=self.settings.upload_batch_pause,
                sleep=self.sleep,
                on_chunk_settled=tracker.record,
                label="upload batch",
            )
            print(f"⏱  Upload time: {format_duration(time.time() - started)}")
        else:
            print("✅ All files already uploaded!")
        state.advance_upload_cursor(len(state.items) - 1)
        state.advance_phase(Phase.COMPLETED)
        await asyncio.to_thread(self.store.checkpoint, state)
        summary = _summarize("Upload", results)
        self.summaries["upload"] = summary
        print_phase_summary(summary, "📤")
        return summary
