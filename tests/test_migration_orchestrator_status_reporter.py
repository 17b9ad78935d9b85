"""Unit tests for status and summary reporting in migration_orchestrator.py"""

import pytest

from migration_errors import MigrationFatalError
from migration_orchestrator import handle_migration_error, print_completion_message, print_phase_summary, show_migration_status
from migration_types import Phase, PhaseSummary, ProgressState, TransferItem, TransferResult


def _items():
    items = [TransferItem(bucket="b", path=f"f{n}", size_bytes=500, last_modified=None, ordinal=n) for n in range(4)]
    for item in items[:3]:
        item.downloaded = True
    items[0].uploaded = True
    items[3].last_error = "timeout"
    return items


def test_status_shows_percentages(capsys):
    state = ProgressState(phase=Phase.UPLOADING, buckets=["b"], items=_items(), download_cursor=3, upload_cursor=0)

    show_migration_status(state)

    out = capsys.readouterr().out
    assert "Phase: uploading" in out
    assert "Buckets: 1" in out
    assert "Total files: 4 (2.00 KB)" in out
    assert "Downloaded: 3/4 (75.0%)" in out
    assert "Uploaded: 1/4 (25.0%)" in out
    assert "With errors: 1" in out
    assert "Last download index: 3" in out
    assert "Last upload index: 0" in out


def test_status_for_fresh_state_omits_percentages(capsys):
    show_migration_status(ProgressState())

    out = capsys.readouterr().out
    assert "Phase: init" in out
    assert "Total files: 0 (0 Bytes)" in out
    assert "Downloaded:" not in out
    assert "Last download index: -1" in out


def test_phase_summary_lists_every_failure(capsys):
    items = _items()
    summary = PhaseSummary(
        name="Upload",
        attempted=3,
        succeeded=1,
        failures=[
            TransferResult(item=items[1], success=False, error="Local file not found: staging/b/f1"),
            TransferResult(item=items[2], success=False, error="destination refused f2"),
        ],
    )

    print_phase_summary(summary, "📤")

    out = capsys.readouterr().out
    assert "Upload phase completed: 1 successful, 2 failed" in out
    assert "Failed uploads:" in out
    assert "   - b/f1: Local file not found: staging/b/f1" in out
    assert "   - b/f2: destination refused f2" in out


def test_phase_summary_without_failures_has_no_failure_list(capsys):
    print_phase_summary(PhaseSummary(name="Download", attempted=2, succeeded=2), "📥")

    out = capsys.readouterr().out
    assert "2 successful, 0 failed" in out
    assert "Failed" not in out


def test_handle_migration_error_raises_fatal(capsys):
    with pytest.raises(MigrationFatalError, match="disk full"):
        handle_migration_error(Phase.DOWNLOADING, OSError("disk full"))

    out = capsys.readouterr().out
    assert "MIGRATION STOPPED" in out
    assert "Phase: downloading" in out
    assert "resume by running the script again" in out


def test_completion_message_mentions_staging_and_clean(capsys):
    print_completion_message("./storage_downloads")

    out = capsys.readouterr().out
    assert "./storage_downloads" in out
    assert '"clean"' in out
