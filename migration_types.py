"""Shared types for the migration system."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from migration_utils import get_utc_now


class Phase(Enum):
    """Migration phases"""

    INIT = "init"
    INDEXING = "indexing"
    DOWNLOADING = "downloading"
    UPLOADING = "uploading"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        """Position of the phase in the forward-only sequence."""
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = (Phase.INIT, Phase.INDEXING, Phase.DOWNLOADING, Phase.UPLOADING, Phase.COMPLETED)


@dataclass
class TransferItem:
    """One object to move, with its permanent ordinal and per-phase flags."""

    bucket: str
    path: str
    size_bytes: int
    last_modified: Optional[str]
    ordinal: int
    downloaded: bool = False
    uploaded: bool = False
    staging_path: str = ""
    last_error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransferItem":
        return cls(
            bucket=data["bucket"],
            path=data["path"],
            size_bytes=int(data.get("size_bytes") or 0),
            last_modified=data.get("last_modified"),
            ordinal=int(data["ordinal"]),
            downloaded=bool(data.get("downloaded", False)),
            uploaded=bool(data.get("uploaded", False)),
            staging_path=data.get("staging_path") or "",
            last_error=data.get("last_error") or "",
        )


@dataclass
class ProgressState:
    """Durable migration state: phase, object index and per-phase cursors."""

    phase: Phase = Phase.INIT
    buckets: List[str] = field(default_factory=list)
    items: List[TransferItem] = field(default_factory=list)
    download_cursor: int = -1
    upload_cursor: int = -1
    started_at: str = field(default_factory=get_utc_now)
    last_saved_at: str = field(default_factory=get_utc_now)

    def advance_phase(self, phase: Phase) -> bool:
        """Move forward to *phase*; earlier phases are ignored. Returns True if changed."""
        if phase.rank <= self.phase.rank:
            return False
        self.phase = phase
        return True

    def advance_download_cursor(self, ordinal: int):
        self.download_cursor = max(self.download_cursor, ordinal)

    def advance_upload_cursor(self, ordinal: int):
        self.upload_cursor = max(self.upload_cursor, ordinal)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "buckets": list(self.buckets),
            "items": [item.to_dict() for item in self.items],
            "download_cursor": self.download_cursor,
            "upload_cursor": self.upload_cursor,
            "started_at": self.started_at,
            "last_saved_at": self.last_saved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressState":
        return cls(
            phase=Phase(data.get("phase", Phase.INIT.value)),
            buckets=list(data.get("buckets") or []),
            items=[TransferItem.from_dict(entry) for entry in data.get("items") or []],
            download_cursor=int(data.get("download_cursor", -1)),
            upload_cursor=int(data.get("upload_cursor", -1)),
            started_at=data.get("started_at") or get_utc_now(),
            last_saved_at=data.get("last_saved_at") or get_utc_now(),
        )


@dataclass
class TransferResult:
    """Outcome of one unit of work, in the batch runner's result list."""

    item: TransferItem
    success: bool
    error: Optional[str] = None


@dataclass
class PhaseSummary:
    """End-of-phase counts plus the failed results."""

    name: str
    attempted: int = 0
    succeeded: int = 0
    failures: List[TransferResult] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass(frozen=True)
class BackendSettings:
    """Connection settings for one S3-compatible storage endpoint."""

    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None


@dataclass
class MigrationSettings:
    """Explicit configuration handed to the orchestrator."""

    staging_dir: str = "./storage_downloads"
    progress_file: str = "./migration_progress.json"
    index_file: str = "./files_index.json"
    buckets: List[str] = field(default_factory=list)
    excluded_buckets: List[str] = field(default_factory=list)
    download_concurrent: int = 5
    upload_concurrent: int = 3
    manual_download_start: Optional[int] = None
    manual_upload_start: Optional[int] = None
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    download_batch_pause: float = 0.5
    upload_batch_pause: float = 0.3
    download_checkpoint_interval: int = 10
    upload_checkpoint_interval: int = 5
    signed_url_ttl_seconds: int = 3600
    public_buckets: bool = False
    source: BackendSettings = field(default_factory=BackendSettings)
    destination: BackendSettings = field(default_factory=BackendSettings)

    @classmethod
    def from_config(cls, config_module) -> "MigrationSettings":
        """Build settings from a config module exposing the documented constants."""
        return cls(
            staging_dir=config_module.STAGING_DIR,
            progress_file=config_module.PROGRESS_FILE,
            index_file=config_module.INDEX_FILE,
            buckets=list(config_module.MIGRATION_BUCKETS),
            excluded_buckets=list(config_module.EXCLUDED_BUCKETS),
            download_concurrent=config_module.DOWNLOAD_CONCURRENT,
            upload_concurrent=config_module.UPLOAD_CONCURRENT,
            manual_download_start=config_module.MANUAL_DOWNLOAD_START,
            manual_upload_start=config_module.MANUAL_UPLOAD_START,
            max_attempts=config_module.MAX_ATTEMPTS,
            retry_base_delay=config_module.RETRY_BASE_DELAY,
            download_batch_pause=config_module.DOWNLOAD_BATCH_PAUSE,
            upload_batch_pause=config_module.UPLOAD_BATCH_PAUSE,
            download_checkpoint_interval=config_module.DOWNLOAD_CHECKPOINT_INTERVAL,
            upload_checkpoint_interval=config_module.UPLOAD_CHECKPOINT_INTERVAL,
            signed_url_ttl_seconds=config_module.SIGNED_URL_TTL_SECONDS,
            public_buckets=config_module.PUBLIC_BUCKETS,
            source=BackendSettings(
                endpoint_url=config_module.SOURCE_ENDPOINT_URL,
                access_key_id=config_module.SOURCE_ACCESS_KEY_ID,
                secret_access_key=config_module.SOURCE_SECRET_ACCESS_KEY,
                region=config_module.SOURCE_REGION,
            ),
            destination=BackendSettings(
                endpoint_url=config_module.DEST_ENDPOINT_URL,
                access_key_id=config_module.DEST_ACCESS_KEY_ID,
                secret_access_key=config_module.DEST_SECRET_ACCESS_KEY,
                region=config_module.DEST_REGION,
            ),
        )
