"""
Configuration for the storage migration script.

Values come from the environment, optionally seeded from a dotenv file
(``MIGRATION_ENV_FILE``, default ``.env``). Endpoint settings point at any
S3-compatible service; leave an endpoint unset to use AWS defaults.
"""

import os

from dotenv import load_dotenv

load_dotenv(os.environ.get("MIGRATION_ENV_FILE", ".env"))


def _env_str(name: str, default=None):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(name: str, default=None):
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = _env_str(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_list(name: str) -> list[str]:
    value = _env_str(name, "")
    return [part.strip() for part in value.split(",") if part.strip()]


# Source storage (objects are read from here)
SOURCE_ENDPOINT_URL = _env_str("SOURCE_ENDPOINT_URL")
SOURCE_ACCESS_KEY_ID = _env_str("SOURCE_ACCESS_KEY_ID")
SOURCE_SECRET_ACCESS_KEY = _env_str("SOURCE_SECRET_ACCESS_KEY")
SOURCE_REGION = _env_str("SOURCE_REGION")

# Destination storage (objects are written here)
DEST_ENDPOINT_URL = _env_str("DEST_ENDPOINT_URL")
DEST_ACCESS_KEY_ID = _env_str("DEST_ACCESS_KEY_ID")
DEST_SECRET_ACCESS_KEY = _env_str("DEST_SECRET_ACCESS_KEY")
DEST_REGION = _env_str("DEST_REGION")

# Buckets to migrate; empty means every bucket the source lists
MIGRATION_BUCKETS = _env_list("MIGRATION_BUCKETS")
EXCLUDED_BUCKETS = _env_list("EXCLUDED_BUCKETS")

# Local staging and checkpoint records
STAGING_DIR: str = _env_str("STAGING_DIR", "./storage_downloads")
PROGRESS_FILE: str = _env_str("PROGRESS_FILE", "./migration_progress.json")
INDEX_FILE: str = _env_str("INDEX_FILE", "./files_index.json")

# Concurrency (1-10 downloads / 1-5 uploads recommended)
DOWNLOAD_CONCURRENT: int = _env_int("DOWNLOAD_CONCURRENT", 5)
UPLOAD_CONCURRENT: int = _env_int("UPLOAD_CONCURRENT", 3)

# Manual resume overrides; None resumes from the saved cursor
MANUAL_DOWNLOAD_START = _env_int("MANUAL_DOWNLOAD_START")
MANUAL_UPLOAD_START = _env_int("MANUAL_UPLOAD_START")

# Retry and pacing
MAX_ATTEMPTS: int = _env_int("MAX_ATTEMPTS", 3)
RETRY_BASE_DELAY: float = _env_float("RETRY_BASE_DELAY", 1.0)  # seconds, multiplied by attempt number
DOWNLOAD_BATCH_PAUSE: float = _env_float("DOWNLOAD_BATCH_PAUSE", 0.5)
UPLOAD_BATCH_PAUSE: float = _env_float("UPLOAD_BATCH_PAUSE", 0.3)

# Checkpoint every N successes
DOWNLOAD_CHECKPOINT_INTERVAL: int = _env_int("DOWNLOAD_CHECKPOINT_INTERVAL", 10)
UPLOAD_CHECKPOINT_INTERVAL: int = _env_int("UPLOAD_CHECKPOINT_INTERVAL", 5)

SIGNED_URL_TTL_SECONDS: int = _env_int("SIGNED_URL_TTL_SECONDS", 60 * 60)
PUBLIC_BUCKETS: bool = _env_bool("PUBLIC_BUCKETS", False)
