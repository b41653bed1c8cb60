"""Test parsing helpers."""

from datetime import datetime, timezone

import pytest

from plan_inspector.core.models import EPOCH, PhaseInfo, RawLogEntry, VM, isoformat_z
from plan_inspector.core.utils import (
    CancellationToken,
    compute_phase_log_summaries,
    detect_vm_migration_type,
    format_duration,
    get_vm_info,
    group_logs,
    is_panic_line,
    parse_timestamp,
    parse_vm_info,
    truncate,
)
from plan_inspector.utils.exceptions import ParseCancelledError


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_parse_timestamp_rfc3339():
    """Test RFC-3339 timestamps."""
    assert parse_timestamp("2026-02-05T02:57:29.093Z") == utc(2026, 2, 5, 2, 57, 29, 93000)


def test_parse_timestamp_space_separated_is_utc():
    """Test the controller's 'YYYY-MM-DD HH:MM:SS.fff' format."""
    assert parse_timestamp("2026-02-05 02:57:29.093") == utc(2026, 2, 5, 2, 57, 29, 93000)


def test_parse_timestamp_epoch_seconds():
    """Test numeric epoch seconds."""
    assert parse_timestamp(1770260249) == datetime.fromtimestamp(1770260249, tz=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "not a timestamp", {"a": 1}])
def test_parse_timestamp_invalid_yields_epoch(value):
    """Test that unparseable input falls back to the epoch."""
    assert parse_timestamp(value) == EPOCH


def test_isoformat_z_millisecond_precision():
    """Test ISO rendering."""
    assert isoformat_z(utc(2026, 2, 5, 12, 0, 0, 123456)) == "2026-02-05T12:00:00.123Z"


def test_parse_vm_info():
    """Test the string VM reference format."""
    assert parse_vm_info("id:vm-1002 name:'ameen-RHEL9'") == ("vm-1002", "ameen-RHEL9")
    assert parse_vm_info("garbage") == ("", "")


def test_get_vm_info_sources():
    """Test vmRef, vm object and vm string resolution."""
    assert get_vm_info({"vmRef": {"id": "vm-1", "name": "a"}}) == ("vm-1", "a")
    assert get_vm_info({"vm": {"id": "vm-2", "name": "b"}}) == ("vm-2", "b")
    assert get_vm_info({"vm": "id:vm-3 name:'c'"}) == ("vm-3", "c")
    assert get_vm_info({"msg": "no vm"}) == ("", "")


def test_truncate():
    """Test truncation with ellipsis."""
    assert truncate("short", 10) == "short"
    assert truncate("abcdefghij", 4) == "abcd..."


@pytest.mark.parametrize("ms,expected", [
    (850, "850ms"),
    (12500, "12.5s"),
    (200000, "3m 20s"),
    (7500000, "2h 5m"),
])
def test_format_duration(ms, expected):
    """Test human-readable durations."""
    assert format_duration(ms) == expected


def test_detect_vm_migration_type():
    """Test migration type detection from phase names."""
    def history(*names):
        return [PhaseInfo(name=n, started_at=EPOCH) for n in names]

    assert detect_vm_migration_type(history("Started", "CreateInitialSnapshot")) == "Warm"
    assert detect_vm_migration_type(history("CreateGuestConversionPod", "ConvertGuest")) == "OnlyConversion"
    assert detect_vm_migration_type(history("AllocateDisks", "ConvertGuest")) == "Cold"
    assert detect_vm_migration_type(history("Started")) == "Cold"
    assert detect_vm_migration_type([]) == "Unknown"


def test_group_logs_keeps_first_seen_order():
    """Test grouping identical messages."""
    logs = [
        RawLogEntry(timestamp="t1", level="info", message="b", raw_line=""),
        RawLogEntry(timestamp="t2", level="info", message="a", raw_line=""),
        RawLogEntry(timestamp="t3", level="info", message="b", raw_line=""),
    ]
    groups = group_logs(logs)

    assert [g.message for g in groups] == ["b", "a"]
    assert groups[0].count == 2
    assert groups[0].first_seen == "t1"
    assert groups[0].last_seen == "t3"


def test_compute_phase_log_summaries_timing():
    """Test per-phase summary timing from phase history."""
    vm = VM(id="vm-1", name="a", first_seen=EPOCH, last_seen=EPOCH)
    vm.phase_history.append(PhaseInfo(
        name="CopyDisks", started_at=utc(2026, 1, 1, 0, 0, 0), ended_at=utc(2026, 1, 1, 0, 1, 30),
    ))
    vm.add_phase_log("CopyDisks", RawLogEntry(timestamp="t", level="info", message="m", raw_line=""))
    vm.phase_logs["Empty"] = []

    summaries = compute_phase_log_summaries(vm)

    assert list(summaries) == ["CopyDisks"]
    assert summaries["CopyDisks"].duration_ms == 90000
    assert summaries["CopyDisks"].duration == "1m 30s"
    assert summaries["CopyDisks"].total_logs == 1


def test_is_panic_line():
    """Test panic marker detection."""
    assert is_panic_line("panic: boom")
    assert is_panic_line("goroutine 1 [running]:")
    assert not is_panic_line("  panic: indented")


def test_cancellation_token():
    """Test cooperative cancellation."""
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled
    with pytest.raises(ParseCancelledError):
        token.raise_if_cancelled()
