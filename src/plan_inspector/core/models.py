"""
Normalized entity model shared by the log and YAML pipelines.

Every model serializes through ``to_dict()`` into the camelCase JSON shape
consumed by the presentation layer. Datetimes are rendered as ISO-8601 UTC
strings with millisecond precision; optional fields left as ``None`` are
omitted.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .constants import MigrationTypes, PlanStatuses


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def isoformat_z(value: datetime) -> str:
    """Render a datetime like ``2026-02-05T12:00:00.000Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def to_jsonable(value: Any) -> Any:
    """Convert models, datetimes and containers into JSON-compatible values."""
    if is_dataclass(value) and not isinstance(value, type):
        result = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if item is None:
                continue
            result[_camel(f.name)] = to_jsonable(item)
        return result
    if isinstance(value, datetime):
        return isoformat_z(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class Serializable:
    """Adds ``to_dict()`` to a dataclass."""

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


@dataclass
class Condition(Serializable):
    type: str
    status: str
    message: str
    timestamp: datetime
    category: Optional[str] = None


@dataclass
class PhaseInfo(Serializable):
    """One interval a VM spent in a phase."""
    name: str
    started_at: datetime
    step: str = ""
    ended_at: Optional[datetime] = None
    iteration: Optional[int] = None  # precopy loop phases only


@dataclass
class DataVolume(Serializable):
    name: str
    created_at: datetime


@dataclass
class CreatedResource(Serializable):
    type: str
    name: str
    created_at: datetime


@dataclass
class RawLogEntry(Serializable):
    timestamp: str
    level: str
    message: str
    raw_line: str
    phase: Optional[str] = None


@dataclass
class GroupedLogEntry(Serializable):
    message: str
    count: int
    first_seen: str
    last_seen: str
    level: str
    entries: List[RawLogEntry] = field(default_factory=list)


@dataclass
class PhaseSummaryItem(Serializable):
    label: str
    value: str
    type: Optional[str] = None


@dataclass
class PhaseLogSummary(Serializable):
    phase: str
    total_logs: int
    grouped_logs: List[GroupedLogEntry] = field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration: Optional[str] = None
    duration_ms: Optional[int] = None
    summary_items: Optional[List[PhaseSummaryItem]] = None


@dataclass
class PrecopyInfo(Serializable):
    iteration: int
    snapshot: str
    disks: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


@dataclass
class WarmInfo(Serializable):
    precopies: List[PrecopyInfo]
    successes: int
    failures: int
    consecutive_failures: int = 0
    next_precopy_at: Optional[str] = None


@dataclass
class VMError(Serializable):
    phase: str
    reasons: List[str] = field(default_factory=list)


@dataclass
class VM(Serializable):
    """A migrated virtual machine, identified by ``id`` within its plan."""
    id: str
    name: str
    first_seen: datetime
    last_seen: datetime
    current_phase: str = ""
    current_step: str = ""
    migration_type: str = MigrationTypes.UNKNOWN
    phase_history: List[PhaseInfo] = field(default_factory=list)
    data_volumes: List[DataVolume] = field(default_factory=list)
    created_resources: List[CreatedResource] = field(default_factory=list)
    phase_logs: Dict[str, List[RawLogEntry]] = field(default_factory=dict)
    phase_log_summaries: Optional[Dict[str, PhaseLogSummary]] = None
    from_yaml: bool = False
    precopy_count: Optional[int] = None
    warm_info: Optional[WarmInfo] = None
    error: Optional[VMError] = None
    conditions: Optional[List[Condition]] = None
    operating_system: Optional[str] = None
    restore_power_state: Optional[str] = None
    new_name: Optional[str] = None

    def open_phase(self) -> Optional[PhaseInfo]:
        """Return the last phase if it has not ended."""
        if self.phase_history and self.phase_history[-1].ended_at is None:
            return self.phase_history[-1]
        return None

    def close_open_phase(self, ts: datetime) -> None:
        phase = self.open_phase()
        if phase is not None:
            phase.ended_at = ts

    def add_phase_log(self, phase: str, entry: RawLogEntry) -> None:
        self.phase_logs.setdefault(phase, []).append(entry)


@dataclass
class ErrorEntry(Serializable):
    timestamp: datetime
    message: str
    error: str
    count: int = 1
    level: str = "error"
    stacktrace: Optional[str] = None
    raw_line: Optional[str] = None


@dataclass
class PanicEntry(Serializable):
    timestamp: datetime
    message: str
    count: int = 1
    controller: Optional[str] = None
    reconcile_id: Optional[str] = None
    stacktrace: Optional[str] = None
    raw_lines: List[str] = field(default_factory=list)


@dataclass
class PlanSpec(Serializable):
    description: Optional[str] = None
    target_namespace: Optional[str] = None
    preserve_static_ips: Optional[bool] = None
    skip_guest_conversion: Optional[bool] = None
    use_compatibility_mode: Optional[bool] = None
    run_preflight_inspection: Optional[bool] = None
    target_power_state: Optional[str] = None
    migrate_shared_disks: Optional[bool] = None
    pvc_name_template_use_generate_name: Optional[bool] = None
    preserve_cluster_cpu_model: Optional[bool] = None
    delete_guest_conversion_pod: Optional[bool] = None
    delete_vm_on_fail_migration: Optional[bool] = None
    install_legacy_drivers: Optional[bool] = None
    transfer_network: Optional[str] = None
    source_provider: Optional[str] = None
    destination_provider: Optional[str] = None
    network_map: Optional[str] = None
    storage_map: Optional[str] = None


@dataclass
class ScheduleSnapshot(Serializable):
    timestamp: str
    inflight: Dict[str, Any] = field(default_factory=dict)
    pending: Dict[str, Any] = field(default_factory=dict)
    next_vm: Optional[Dict[str, Any]] = None


@dataclass
class Plan(Serializable):
    """A migration plan, identified by (namespace, name)."""
    name: str
    namespace: str
    status: str = PlanStatuses.PENDING
    archived: bool = False
    migration_type: str = MigrationTypes.UNKNOWN
    migration: Optional[str] = None
    conditions: List[Condition] = field(default_factory=list)
    vms: Dict[str, VM] = field(default_factory=dict)
    errors: List[ErrorEntry] = field(default_factory=list)
    panics: List[PanicEntry] = field(default_factory=list)
    first_seen: datetime = EPOCH
    last_seen: datetime = EPOCH
    spec: Optional[PlanSpec] = None
    schedule_history: Optional[List[ScheduleSnapshot]] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def has_logged_vm(self) -> bool:
        """True when at least one VM came from controller logs rather than YAML."""
        return any(not vm.from_yaml for vm in self.vms.values())


@dataclass
class Event(Serializable):
    timestamp: str
    type: str
    plan_name: str
    namespace: str
    description: str
    vm_name: Optional[str] = None
    phase: Optional[str] = None


@dataclass
class ParseStats(Serializable):
    total_lines: int = 0
    parsed_lines: int = 0
    error_lines: int = 0
    duplicate_lines: int = 0
    plans_found: int = 0
    vms_found: int = 0


@dataclass
class Summary(Serializable):
    total_plans: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0
    archived: int = 0
    pending: int = 0

    @classmethod
    def from_plans(cls, plans: List[Plan]) -> "Summary":
        """Count plans per status; archived is counted independently."""
        summary = cls(total_plans=len(plans))
        for plan in plans:
            if plan.archived:
                summary.archived += 1
            if plan.status == PlanStatuses.RUNNING:
                summary.running += 1
            elif plan.status == PlanStatuses.SUCCEEDED:
                summary.succeeded += 1
            elif plan.status == PlanStatuses.FAILED:
                summary.failed += 1
            elif plan.status in (PlanStatuses.PENDING, PlanStatuses.READY):
                summary.pending += 1
        return summary


@dataclass
class MapEntry(Serializable):
    source: str
    destination: str


@dataclass
class MapResource(Serializable):
    """A NetworkMap or StorageMap resource."""
    kind: str
    name: str
    namespace: str
    source_provider: Optional[str] = None
    destination_provider: Optional[str] = None
    entries: List[MapEntry] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ParsedData(Serializable):
    """The single normalized result handed to the presentation layer."""
    plans: List[Plan] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
    summary: Summary = field(default_factory=Summary)
    network_maps: List[MapResource] = field(default_factory=list)
    storage_maps: List[MapResource] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ParsedData":
        return cls()

    def find_plan(self, namespace: str, name: str) -> Optional[Plan]:
        for plan in self.plans:
            if plan.namespace == namespace and plan.name == name:
                return plan
        return None


@dataclass
class ArchiveEntry:
    """One extracted archive member."""
    path: str
    content: str


@dataclass
class ToolLogFile(Serializable):
    """A disk-conversion tool log, kept per file."""
    file_path: str
    data: Any = None
    plan_name: Optional[str] = None
    vm_id: Optional[str] = None


@dataclass
class ArchiveResult(Serializable):
    log_files: List[str] = field(default_factory=list)
    yaml_files: List[str] = field(default_factory=list)
    tool_log_files: List[str] = field(default_factory=list)
    tool_log_entries: List[ToolLogFile] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    parsed_data: ParsedData = field(default_factory=ParsedData)
    cancelled: bool = False

    @classmethod
    def empty(cls, cancelled: bool = False) -> "ArchiveResult":
        return cls(cancelled=cancelled)
