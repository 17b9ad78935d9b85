#!/usr/bin/env python3
"""
Storage Migration Script - resumable, checkpointed bucket copy.

Copies every object from a source S3-compatible storage service to a
destination one:
1. Indexes all buckets (folders first, depth-first) and numbers each object
2. Downloads objects to local staging in bounded concurrent batches
3. Uploads staged objects to the destination in bounded concurrent batches

Progress is checkpointed to two JSON records while each phase runs, so an
interrupted migration resumes from the last checkpoint instead of the start.

Usage:
    python storage_migrate.py             # Run full migration (default)
    python storage_migrate.py download    # Only index and download files
    python storage_migrate.py upload      # Only upload files
    python storage_migrate.py status      # Show current status
    python storage_migrate.py reset       # Reset progress (start over)
    python storage_migrate.py clean       # Remove checkpoint files
    python storage_migrate.py help        # Show commands and configuration
"""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace

import config as config_module
from migration_errors import MigrationFatalError, PersistenceError
from migration_orchestrator import MigrationOrchestrator, show_migration_status
from migration_state_store import ProgressStore
from migration_types import MigrationSettings
from storage_backends import S3StorageBackend

COMMANDS = ("migrate", "download", "upload", "status", "reset", "clean", "help")
config = config_module  # expose module for tests


def _discard_records(store: ProgressStore):
    try:
        removed = store.discard()
    except PersistenceError as exc:
        print(f"❌ Error removing checkpoint files: {exc}")
        return None
    return removed


class StorageMigration:
    """Facade wiring settings, backends and state for each command"""

    def __init__(self, settings: MigrationSettings, source=None, destination=None, store=None):
        self.settings = settings
        self.source = source
        self.destination = destination
        self.store = store or ProgressStore.from_paths(settings.progress_file, settings.index_file)

    def _build_backends(self):
        if self.source is None:
            self.source = S3StorageBackend.from_settings(self.settings.source)
        if self.destination is None:
            self.destination = S3StorageBackend.from_settings(self.settings.destination)

    async def _run_async(self, command: str):
        self._build_backends()
        orchestrator = MigrationOrchestrator(self.source, self.destination, self.store, self.settings)
        try:
            return await orchestrator.run(command)
        finally:
            await self.source.close()
            await self.destination.close()

    def run(self, command: str = "migrate"):
        """Run migrate/download/upload to completion or to the next fatal error"""
        print("\n" + "=" * 70)
        print("🚀 STORAGE MIGRATION WITH CHECKPOINTS")
        print("=" * 70)
        print(f"Source: {self.settings.source.endpoint_url or 'default S3 endpoint'}")
        print(f"Destination: {self.settings.destination.endpoint_url or 'default S3 endpoint'}")
        print(f"Staging: {self.settings.staging_dir}")
        print(f"Progress file: {self.settings.progress_file}")
        print()
        return asyncio.run(self._run_async(command))

    def show_status(self):
        """Display current migration status"""
        show_migration_status(self.store.load())

    def reset(self, assume_yes: bool = False):
        """Discard all persisted progress after confirmation"""
        print("\n" + "=" * 70)
        print("RESET MIGRATION")
        print("=" * 70)
        print()
        print("This will delete all migration progress and start over.")
        print("Staged local files will NOT be deleted.")
        print()
        if not assume_yes:
            response = input("Are you sure? (yes/no): ")
            if response.lower() != "yes":
                print()
                print("Reset cancelled")
                return False
        print("🔄 Resetting migration progress...")
        if _discard_records(self.store) is None:
            return False
        print("✅ Progress reset complete")
        print("Run 'python storage_migrate.py' to start fresh")
        return True

    def clean(self):
        """Remove checkpoint files once a migration is finished"""
        print("🧹 Cleaning up checkpoint files...")
        removed = _discard_records(self.store)
        if removed is None:
            return False
        if removed.get("progress"):
            print("✅ Removed progress file")
        if removed.get("index"):
            print("✅ Removed files index")
        print("🎉 Cleanup complete!")
        return True


def show_help(settings: MigrationSettings):
    print("\n📖 Available commands:")
    print("  python storage_migrate.py migrate    - Run full migration (default)")
    print("  python storage_migrate.py download   - Only download files")
    print("  python storage_migrate.py upload     - Only upload files")
    print("  python storage_migrate.py status     - Show current status")
    print("  python storage_migrate.py reset      - Reset progress (start over)")
    print("  python storage_migrate.py clean      - Remove checkpoint files")
    print("  python storage_migrate.py help       - Show this help")
    print()
    print("🔧 Configuration (environment or .env file):")
    print(f"  Download concurrent: {settings.download_concurrent} files")
    print(f"  Upload concurrent: {settings.upload_concurrent} files")
    manual_download = settings.manual_download_start
    manual_upload = settings.manual_upload_start
    print(f"  Manual download start: {'auto-resume' if manual_download is None else manual_download}")
    print(f"  Manual upload start: {'auto-resume' if manual_upload is None else manual_upload}")
    print()


def build_settings(args) -> MigrationSettings:
    """Settings from config, with command-line overrides applied"""
    settings = MigrationSettings.from_config(config)
    overrides = {}
    if args.download_start is not None:
        overrides["manual_download_start"] = args.download_start
    if args.upload_start is not None:
        overrides["manual_upload_start"] = args.upload_start
    if args.download_concurrency is not None:
        overrides["download_concurrent"] = args.download_concurrency
    if args.upload_concurrency is not None:
        overrides["upload_concurrent"] = args.upload_concurrency
    return replace(settings, **overrides) if overrides else settings


def create_migrator(settings: MigrationSettings) -> StorageMigration:
    """Factory function to create StorageMigration with file-backed state"""
    return StorageMigration(settings)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resumable storage migration between S3-compatible services",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="migrate",
        choices=COMMANDS,
        help="Command to execute (default: migrate)",
    )
    parser.add_argument("--download-start", type=_non_negative_int, help="Start downloading at this index")
    parser.add_argument("--upload-start", type=_non_negative_int, help="Start uploading at this index")
    parser.add_argument("--download-concurrency", type=_positive_int, help="Simultaneous downloads")
    parser.add_argument("--upload-concurrency", type=_positive_int, help="Simultaneous uploads")
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation on reset")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )


def main(argv=None):
    """Main entry point for storage migration"""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    settings = build_settings(args)
    if args.command == "help":
        show_help(settings)
        return
    migrator = create_migrator(settings)
    if args.command == "status":
        migrator.show_status()
    elif args.command == "reset":
        migrator.reset(assume_yes=args.yes)
    elif args.command == "clean":
        migrator.clean()
    else:
        try:
            migrator.run(args.command)
        except MigrationFatalError:
            sys.exit(1)
        except KeyboardInterrupt:
            print("\n" + "=" * 70)
            print("MIGRATION INTERRUPTED")
            print("=" * 70)
            print("Progress up to the last checkpoint has been saved.")
            print("Run 'python storage_migrate.py' to resume from where you left off.")
            print("=" * 70)
            sys.exit(0)


if __name__ == "__main__":
    main()
