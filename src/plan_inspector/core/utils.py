"""Parsing helpers shared by the log and YAML pipelines."""

import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .constants import (
    MigrationTypes,
    COLD_DISK_PHASES,
    CONVERSION_PHASES,
    WARM_ONLY_PHASES,
    VM_REF_RE,
    PANIC_PREFIX,
    GOROUTINE_PREFIX,
)
from .models import (
    EPOCH,
    VM,
    GroupedLogEntry,
    PhaseInfo,
    PhaseLogSummary,
    RawLogEntry,
    isoformat_z,
)
from ..utils.exceptions import ParseCancelledError


def parse_timestamp(ts: Any) -> datetime:
    """
    Parse a record timestamp into an aware UTC datetime.

    Accepts RFC-3339 strings, ``YYYY-MM-DD HH:MM:SS[.fff]`` strings (read as
    UTC), epoch seconds and datetimes. Anything unparseable yields the epoch.
    """
    if ts is None or ts == "":
        return EPOCH
    if isinstance(ts, bool):
        return EPOCH
    if isinstance(ts, datetime):
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    if isinstance(ts, (int, float)):
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return EPOCH
    if not isinstance(ts, str):
        return EPOCH

    parsed = pd.to_datetime(ts.strip(), utc=True, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return EPOCH
    return parsed.floor("us").to_pydatetime()


def timestamp_string(ts: Any, fallback: datetime) -> str:
    """Event timestamps keep the record's own text where there is one."""
    if isinstance(ts, str) and ts:
        return ts
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        return isoformat_z(parse_timestamp(ts))
    return isoformat_z(fallback)


def parse_vm_info(vm_str: str) -> Tuple[str, str]:
    """Parse ``id:vm-1002 name:'rhel9'`` into (id, name); ('', '') on mismatch."""
    match = VM_REF_RE.search(vm_str or "")
    if match:
        return match.group(1), match.group(2)
    return "", ""


def get_vm_info(record: Dict[str, Any]) -> Tuple[str, str]:
    """Resolve the VM a record refers to from ``vmRef`` or ``vm``."""
    vm_ref = record.get("vmRef")
    if isinstance(vm_ref, dict) and vm_ref.get("id"):
        return str(vm_ref["id"]), str(vm_ref.get("name") or "")

    vm = record.get("vm")
    if isinstance(vm, str):
        return parse_vm_info(vm)
    if isinstance(vm, dict):
        return str(vm.get("id") or ""), str(vm.get("name") or "")
    return "", ""


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def format_duration(ms: int) -> str:
    """Human duration: ``850ms``, ``12.5s``, ``3m 20s``, ``2h 5m``."""
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    if ms < 3_600_000:
        return f"{ms // 60_000}m {(ms % 60_000) // 1000}s"
    return f"{ms // 3_600_000}h {(ms % 3_600_000) // 60_000}m"


def duration_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


def detect_vm_migration_type(phase_history: List[PhaseInfo]) -> str:
    """Infer a VM's migration type from the phases it went through."""
    names = {ph.name for ph in phase_history}
    if names & WARM_ONLY_PHASES:
        return MigrationTypes.WARM
    has_disk = bool(names & COLD_DISK_PHASES)
    if names & CONVERSION_PHASES and not has_disk:
        return MigrationTypes.ONLY_CONVERSION
    if has_disk or phase_history:
        return MigrationTypes.COLD
    return MigrationTypes.UNKNOWN


def group_logs(logs: List[RawLogEntry]) -> List[GroupedLogEntry]:
    """Group entries with identical messages, in first-seen order."""
    groups: Dict[str, GroupedLogEntry] = {}
    for entry in logs:
        group = groups.get(entry.message)
        if group is None:
            groups[entry.message] = GroupedLogEntry(
                message=entry.message,
                count=1,
                first_seen=entry.timestamp,
                last_seen=entry.timestamp,
                level=entry.level,
                entries=[entry],
            )
        else:
            group.count += 1
            group.last_seen = entry.timestamp
            group.entries.append(entry)
    return list(groups.values())


def compute_phase_log_summaries(vm: VM) -> Dict[str, PhaseLogSummary]:
    """
    Build one summary per phase that has logs.

    Timing comes from the last PhaseInfo recorded under that phase name.
    """
    phase_times = {ph.name: ph for ph in vm.phase_history}
    summaries: Dict[str, PhaseLogSummary] = {}

    for phase, logs in vm.phase_logs.items():
        if not logs:
            continue
        summary = PhaseLogSummary(
            phase=phase,
            total_logs=len(logs),
            grouped_logs=group_logs(logs),
        )
        info = phase_times.get(phase)
        if info is not None:
            summary.start_time = isoformat_z(info.started_at)
            if info.ended_at is not None:
                summary.end_time = isoformat_z(info.ended_at)
                summary.duration_ms = duration_ms(info.started_at, info.ended_at)
                summary.duration = format_duration(summary.duration_ms)
        summaries[phase] = summary
    return summaries


def is_panic_line(line: str) -> bool:
    return line.startswith(PANIC_PREFIX) or line.startswith(GOROUTINE_PREFIX)


class CancellationToken:
    """Cooperative cancellation flag checked between lines."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ParseCancelledError("Parse cancelled")


def check_cancelled(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
