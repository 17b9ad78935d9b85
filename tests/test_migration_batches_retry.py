"""Unit tests for with_retry in migration_batches.py"""

import asyncio

import pytest

from migration_batches import with_retry
from migration_errors import StagingFileMissing, TransportError
from migration_types import TransferItem


def _item():
    return TransferItem(bucket="b", path="docs/report.pdf", size_bytes=42, last_modified=None, ordinal=7)


def test_always_failing_unit_is_tried_max_attempts_times(recorded_sleeps):
    delays, fake_sleep = recorded_sleeps
    attempts = []

    async def unit(item):
        attempts.append(item.ordinal)
        raise TransportError("connection reset")

    wrapped = with_retry(unit, max_attempts=3, base_delay=1.0, sleep=fake_sleep)
    result = asyncio.run(wrapped(_item()))

    assert len(attempts) == 3
    assert delays == [1.0, 2.0]
    assert result.success is False
    assert result.error == "connection reset"
    assert result.item.last_error == "connection reset"


def test_delay_schedule_is_linear_in_attempt_number(recorded_sleeps):
    delays, fake_sleep = recorded_sleeps

    async def unit(item):
        raise TransportError("nope")

    asyncio.run(with_retry(unit, max_attempts=5, base_delay=0.25, sleep=fake_sleep)(_item()))

    assert delays == [0.25, 0.5, 0.75, 1.0]


def test_success_after_transient_failure_clears_error(recorded_sleeps):
    delays, fake_sleep = recorded_sleeps
    outcomes = [TransportError("flaky"), None]

    async def unit(item):
        outcome = outcomes.pop(0)
        if outcome is not None:
            raise outcome

    item = _item()
    item.last_error = "old failure"
    result = asyncio.run(with_retry(unit, max_attempts=3, base_delay=1.0, sleep=fake_sleep)(item))

    assert result.success is True
    assert result.error is None
    assert item.last_error == ""
    assert delays == [1.0]


def test_missing_staging_file_uses_full_retry_budget(recorded_sleeps):
    _, fake_sleep = recorded_sleeps
    attempts = []

    async def unit(item):
        attempts.append(1)
        raise StagingFileMissing("Local file not found")

    result = asyncio.run(with_retry(unit, max_attempts=3, sleep=fake_sleep)(_item()))

    assert len(attempts) == 3
    assert result.error == "Local file not found"


def test_os_errors_are_captured_as_failures(recorded_sleeps):
    _, fake_sleep = recorded_sleeps

    async def unit(item):
        raise PermissionError("read-only filesystem")

    result = asyncio.run(with_retry(unit, max_attempts=2, sleep=fake_sleep)(_item()))

    assert result.success is False
    assert "read-only" in result.error


def test_any_exception_uses_full_retry_budget(recorded_sleeps):
    delays, fake_sleep = recorded_sleeps
    attempts = []

    async def unit(item):
        attempts.append(1)
        raise RuntimeError("boom")

    result = asyncio.run(with_retry(unit, max_attempts=3, base_delay=1.0, sleep=fake_sleep)(_item()))

    assert len(attempts) == 3
    assert delays == [1.0, 2.0]
    assert result.success is False
    assert result.error == "boom"
    assert result.item.last_error == "boom"


def test_timeout_without_message_is_reported_by_type(recorded_sleeps):
    _, fake_sleep = recorded_sleeps

    async def unit(item):
        raise asyncio.TimeoutError()

    result = asyncio.run(with_retry(unit, max_attempts=2, sleep=fake_sleep)(_item()))

    assert result.success is False
    assert result.error == "TimeoutError"


def test_process_exit_is_not_retried(recorded_sleeps):
    _, fake_sleep = recorded_sleeps
    attempts = []

    async def unit(item):
        attempts.append(1)
        raise SystemExit(3)

    with pytest.raises(SystemExit):
        asyncio.run(with_retry(unit, sleep=fake_sleep)(_item()))

    assert len(attempts) == 1


def test_retries_are_logged(recorded_sleeps, caplog):
    _, fake_sleep = recorded_sleeps

    async def unit(item):
        raise TransportError("timeout")

    asyncio.run(with_retry(unit, max_attempts=2, sleep=fake_sleep, label="download")(_item()))

    assert "Retry 1/2 for download docs/report.pdf: timeout" in caplog.text


def test_max_attempts_must_be_positive():
    async def unit(item):
        return None

    with pytest.raises(ValueError):
        with_retry(unit, max_attempts=0)
