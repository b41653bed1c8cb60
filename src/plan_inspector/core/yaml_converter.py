"""
Conversion of Plan, NetworkMap and StorageMap YAML resources.

Produces the same entity shapes as the log pipeline. Plan VMs are built from
``status.migration.vms[]``; each pipeline step that ran becomes a PhaseInfo
with synthetic log entries describing it.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import yaml

from .constants import (
    MigrationTypes,
    PlanStatuses,
    ConditionStatus,
    PipelineSteps,
    YAML_STEP_NAMES,
    phase_to_step,
)
from .models import (
    EPOCH,
    Condition,
    MapEntry,
    MapResource,
    ParsedData,
    ParseStats,
    PhaseInfo,
    PhaseLogSummary,
    PhaseSummaryItem,
    Plan,
    PlanSpec,
    RawLogEntry,
    Summary,
    VM,
    VMError,
    WarmInfo,
    isoformat_z,
)
from .plan_processor import apply_condition_status
from .precopy import warm_info_from_checkpoint
from .utils import duration_ms, format_duration, group_logs, parse_timestamp
from ..utils.config import config
from ..utils.exceptions import YamlParseError
from ..utils.logger import get_logger
from ..utils.validators import get_string_from_map, is_platform_api_version

logger = get_logger("yaml")

PENDING_PHASE = "Pending"
DISK_TRANSFER_STEP = "DiskTransfer"


class StringTimestampLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as strings."""


StringTimestampLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def is_yaml_content(content: str) -> bool:
    """Tell a YAML resource apart from JSON-lines log text."""
    trimmed = content.strip()
    if trimmed.startswith("{") or trimmed.startswith("["):
        return False
    if "apiVersion:" in trimmed and "kind:" in trimmed:
        return True
    return trimmed.startswith("---")


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _ts(value: Any) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps({k: v for k, v in payload.items() if v is not None}, indent=2, default=str)


def convert_conditions(raw_conditions: Any) -> List[Condition]:
    conditions = []
    for raw in _list(raw_conditions):
        raw = _dict(raw)
        conditions.append(Condition(
            type=get_string_from_map(raw, "type"),
            status=get_string_from_map(raw, "status"),
            message=get_string_from_map(raw, "message"),
            timestamp=parse_timestamp(raw.get("lastTransitionTime")),
            category=get_string_from_map(raw, "category") or None,
        ))
    return conditions


def migration_type_from_spec(spec: Dict[str, Any]) -> str:
    spec_type = spec.get("type") or ("warm" if spec.get("warm") else "cold")
    return {
        "warm": MigrationTypes.WARM,
        "cold": MigrationTypes.COLD,
        "conversion": MigrationTypes.ONLY_CONVERSION,
    }.get(str(spec_type).lower(), MigrationTypes.UNKNOWN)


def status_from_conditions(conditions: List[Condition]) -> str:
    """Succeeded or Failed win immediately; Executing and Ready accumulate."""
    probe = Plan(name="", namespace="")
    for condition in conditions:
        if condition.status != ConditionStatus.TRUE:
            continue
        if condition.type in ("Succeeded", "Failed"):
            apply_condition_status(probe, condition)
            return probe.status
        apply_condition_status(probe, condition)
    return probe.status


def infer_status(status: str, vms: List[Dict[str, Any]], migration: Dict[str, Any]) -> str:
    """Fill in a status the conditions left inconclusive from the VM list."""
    if status not in (PlanStatuses.PENDING, PlanStatuses.READY) or not vms:
        return status
    if any(_dict(vm).get("error") for vm in vms):
        return PlanStatuses.FAILED
    if all(_dict(vm).get("completed") for vm in vms):
        return PlanStatuses.SUCCEEDED
    if migration.get("started") or any(_dict(vm).get("started") for vm in vms):
        return PlanStatuses.RUNNING
    return status


def convert_spec(spec: Dict[str, Any]) -> PlanSpec:
    provider = _dict(spec.get("provider"))
    maps = _dict(spec.get("map"))
    return PlanSpec(
        description=spec.get("description"),
        target_namespace=spec.get("targetNamespace"),
        preserve_static_ips=spec.get("preserveStaticIPs"),
        skip_guest_conversion=spec.get("skipGuestConversion"),
        use_compatibility_mode=spec.get("useCompatibilityMode"),
        run_preflight_inspection=spec.get("runPreflightInspection"),
        target_power_state=spec.get("targetPowerState"),
        migrate_shared_disks=spec.get("migrateSharedDisks"),
        pvc_name_template_use_generate_name=spec.get("pvcNameTemplateUseGenerateName"),
        preserve_cluster_cpu_model=spec.get("preserveClusterCpuModel"),
        delete_guest_conversion_pod=spec.get("deleteGuestConversionPod"),
        delete_vm_on_fail_migration=spec.get("deleteVmOnFailMigration"),
        install_legacy_drivers=spec.get("installLegacyDrivers"),
        transfer_network=_dict(spec.get("transferNetwork")).get("name"),
        source_provider=_dict(provider.get("source")).get("name"),
        destination_provider=_dict(provider.get("destination")).get("name"),
        network_map=_dict(maps.get("network")).get("name"),
        storage_map=_dict(maps.get("storage")).get("name"),
    )


def convert_plan(resource: Dict[str, Any]) -> Plan:
    metadata = _dict(resource.get("metadata"))
    spec = _dict(resource.get("spec"))
    status = _dict(resource.get("status"))
    migration = _dict(status.get("migration"))

    plan = Plan(
        name=metadata.get("name") or "unknown",
        namespace=metadata.get("namespace") or "default",
        migration_type=migration_type_from_spec(spec),
        archived=bool(spec.get("archived")),
        conditions=convert_conditions(status.get("conditions")),
    )
    if resource.get("spec") is not None:
        plan.spec = convert_spec(spec)

    raw_vms = _list(migration.get("vms"))
    plan.status = infer_status(status_from_conditions(plan.conditions), raw_vms, migration)

    for raw_vm in raw_vms:
        vm = convert_vm(_dict(raw_vm), plan.migration_type)
        if vm is not None:
            plan.vms[vm.id] = vm

    created = metadata.get("creationTimestamp")
    plan.first_seen = parse_timestamp(migration.get("started") or created)
    plan.last_seen = parse_timestamp(migration.get("completed") or migration.get("started") or created)
    return plan


def step_is_pending(step: Dict[str, Any]) -> bool:
    if step.get("phase") == PENDING_PHASE:
        return True
    return not step.get("started") and not step.get("completed") and not step.get("error")


def step_logs(step: Dict[str, Any], name: str, started: Optional[datetime],
              completed: Optional[datetime]) -> List[RawLogEntry]:
    """Synthetic log entries describing one pipeline step."""
    base_ts = isoformat_z(started or EPOCH)
    end_ts = isoformat_z(completed or started or EPOCH)
    step_phase = step.get("phase") or ""
    logs = [RawLogEntry(
        timestamp=base_ts,
        level="info",
        message=f"{step.get('description') or name} - Phase: {step_phase or 'Unknown'}",
        phase=name,
        raw_line=_dump({
            "step": name,
            "description": step.get("description"),
            "phase": step_phase,
            "progress": step.get("progress"),
            "started": step.get("started"),
            "completed": step.get("completed"),
        }),
    )]

    progress = step.get("progress")
    if isinstance(progress, dict):
        annotations = _dict(step.get("annotations"))
        text = f"{progress.get('completed') or 0}/{progress.get('total') or 0}"
        if annotations.get("unit"):
            text = f"{text} {annotations['unit']}"
        logs.append(RawLogEntry(
            timestamp=end_ts,
            level="info",
            message=f"Progress: {text}",
            phase=name,
            raw_line=_dump({"progress": progress, "annotations": step.get("annotations")}),
        ))

    for task in _list(step.get("tasks")):
        task = _dict(task)
        message = f"Task: {task.get('name') or 'unknown'}"
        if task.get("reason"):
            message += f" - {task['reason']}"
        precopy = _dict(task.get("annotations")).get("Precopy")
        if precopy:
            message += f" (Precopy #{precopy})"
        task_ts = _ts(task.get("started"))
        logs.append(RawLogEntry(
            timestamp=isoformat_z(task_ts) if task_ts else base_ts,
            level="info",
            message=message,
            phase=name,
            raw_line=_dump(task),
        ))

    error = _dict(step.get("error"))
    for reason in _list(error.get("reasons")):
        logs.append(RawLogEntry(
            timestamp=end_ts,
            level="error",
            message=f"{name} failed: {reason}",
            phase=name,
            raw_line=_dump({"step": name, "error": error}),
        ))
    return logs


def precopy_logs(precopies: List[Dict[str, Any]], warm: Dict[str, Any], name: str) -> List[RawLogEntry]:
    """One entry per precopy plus a summary stamped at the last precopy."""
    logs = []
    total = len(precopies)
    last_ts = EPOCH
    for iteration, precopy in enumerate(precopies, start=1):
        precopy = _dict(precopy)
        start, end = _ts(precopy.get("start")), _ts(precopy.get("end"))
        elapsed = duration_ms(start, end) if start and end else None
        disks = ", ".join(
            d.get("disk") for d in _list(precopy.get("deltas"))
            if isinstance(d, dict) and d.get("disk")
        )
        message = f"Precopy {iteration}/{total}: {precopy.get('snapshot') or 'snapshot'}"
        if elapsed:
            message += f" ({format_duration(elapsed)})"
        if disks:
            message += f" - {disks}"
        stamp = start or EPOCH
        last_ts = max(last_ts, end or stamp)
        logs.append(RawLogEntry(
            timestamp=isoformat_z(stamp),
            level="info",
            message=message,
            phase=name,
            raw_line=_dump({
                "precopyIteration": iteration,
                "totalPrecopies": total,
                "snapshot": precopy.get("snapshot"),
                "start": precopy.get("start"),
                "end": precopy.get("end"),
                "duration": format_duration(elapsed) if elapsed else None,
                "createTaskId": precopy.get("createTaskId"),
                "removeTaskId": precopy.get("removeTaskId"),
                "deltas": precopy.get("deltas"),
            }),
        ))

    logs.append(RawLogEntry(
        timestamp=isoformat_z(last_ts),
        level="warning" if warm.get("failures") else "info",
        message=(
            f"Precopy summary: {warm.get('successes') or 0} successes, "
            f"{warm.get('failures') or 0} failures"
        ),
        phase=name,
        raw_line=_dump({
            "successes": warm.get("successes"),
            "failures": warm.get("failures"),
            "consecutiveFailures": warm.get("consecutiveFailures"),
            "nextPrecopyAt": warm.get("nextPrecopyAt"),
        }),
    ))
    return logs


def convert_vm(raw: Dict[str, Any], plan_migration_type: str) -> Optional[VM]:
    """Convert one ``status.migration.vms[]`` entry; entries with no id or name are dropped."""
    vm_id = raw.get("id") or ""
    name = raw.get("name") or ""
    if not vm_id and not name:
        return None

    is_warm = plan_migration_type == MigrationTypes.WARM
    warm = _dict(raw.get("warm"))
    precopies = _list(warm.get("precopies")) if is_warm else []

    vm_started = parse_timestamp(raw.get("started"))
    vm_completed = _ts(raw.get("completed"))
    vm = VM(
        id=str(vm_id or name),
        name=name,
        first_seen=vm_started,
        last_seen=vm_completed or vm_started,
        migration_type=plan_migration_type,
        phase_log_summaries={},
        from_yaml=True,
        operating_system=raw.get("operatingSystem"),
        restore_power_state=raw.get("restorePowerState"),
    )

    for step in _list(raw.get("pipeline")):
        step = _dict(step)
        if step_is_pending(step):
            continue
        name_ = str(step.get("name") or PipelineSteps.UNKNOWN)
        started, completed = _ts(step.get("started")), _ts(step.get("completed"))
        vm.phase_history.append(PhaseInfo(
            name=name_,
            step=YAML_STEP_NAMES.get(name_, name_),
            started_at=started or EPOCH,
            ended_at=completed,
        ))

        logs = step_logs(step, name_, started, completed)
        with_precopies = name_ == DISK_TRANSFER_STEP and bool(precopies)
        if with_precopies:
            logs.extend(precopy_logs(precopies, warm, name_))
        vm.phase_logs[name_] = logs

        summary = PhaseLogSummary(
            phase=name_,
            total_logs=len(logs),
            grouped_logs=group_logs(logs),
            start_time=isoformat_z(started) if started else None,
            end_time=isoformat_z(completed) if completed else None,
        )
        if started and completed:
            summary.duration_ms = duration_ms(started, completed)
            summary.duration = format_duration(summary.duration_ms) if summary.duration_ms else None
        if with_precopies:
            summary.summary_items = [
                PhaseSummaryItem("Precopies", str(len(precopies)), "info"),
                PhaseSummaryItem("Successes", str(warm.get("successes") or 0), "info"),
            ]
            if warm.get("failures"):
                summary.summary_items.append(
                    PhaseSummaryItem("Failures", str(warm["failures"]), "error")
                )
        vm.phase_log_summaries[name_] = summary

    if isinstance(raw.get("error"), dict):
        vm.error = VMError(
            phase=raw["error"].get("phase") or "",
            reasons=[str(r) for r in _list(raw["error"].get("reasons"))],
        )
    conditions = convert_conditions(raw.get("conditions"))
    if conditions:
        vm.conditions = conditions
    if raw.get("newName") and raw.get("newName") != name:
        vm.new_name = raw["newName"]

    vm.current_phase = str(raw.get("phase") or (vm.phase_history[-1].name if vm.phase_history else ""))
    if vm.current_phase:
        vm.current_step = phase_to_step(vm.current_phase, is_warm)

    if precopies:
        rebuilt = warm_info_from_checkpoint(precopies)
        vm.warm_info = WarmInfo(
            precopies=rebuilt.precopies,
            successes=warm.get("successes") or 0,
            failures=warm.get("failures") or 0,
            consecutive_failures=warm.get("consecutiveFailures") or 0,
            next_precopy_at=warm.get("nextPrecopyAt"),
        )
        vm.precopy_count = len(precopies)
    return vm


def convert_map(resource: Dict[str, Any]) -> MapResource:
    """NetworkMap/StorageMap digest; entries render as ``source → destination``."""
    metadata = _dict(resource.get("metadata"))
    spec = _dict(resource.get("spec"))
    provider = _dict(spec.get("provider"))
    entries = []
    for pair in _list(spec.get("map")):
        pair = _dict(pair)
        entries.append(MapEntry(
            source=_ref_label(pair.get("source")),
            destination=_ref_label(pair.get("destination")),
        ))
    return MapResource(
        kind=resource.get("kind"),
        name=metadata.get("name") or "unknown",
        namespace=metadata.get("namespace") or "default",
        source_provider=_dict(provider.get("source")).get("name"),
        destination_provider=_dict(provider.get("destination")).get("name"),
        entries=entries,
        conditions=convert_conditions(_dict(resource.get("status")).get("conditions")),
    )


def _ref_label(ref: Any) -> str:
    """Readable label for a map endpoint (name, id, storage class or type)."""
    ref = _dict(ref)
    for key in ("name", "id", "storageClass", "type", "path"):
        if ref.get(key):
            if key == "name" and ref.get("namespace"):
                return f"{ref['namespace']}/{ref['name']}"
            return str(ref[key])
    return "unknown"


def load_documents(content: str) -> List[Any]:
    """Load every YAML document in ``content``, keeping timestamps as strings."""
    try:
        return list(yaml.load_all(content, Loader=StringTimestampLoader))
    except yaml.YAMLError as e:
        raise YamlParseError(f"Invalid YAML document: {e}")


def iter_resources(documents: List[Any]):
    """Flatten ``List`` and ``*List`` wrappers into their items."""
    for doc in documents:
        if not isinstance(doc, dict):
            continue
        kind = doc.get("kind")
        if isinstance(kind, str) and kind.endswith("List"):
            for item in _list(doc.get("items")):
                if isinstance(item, dict):
                    yield item
            continue
        yield doc


def parse_plan_yaml(content: str, api_group: Optional[str] = None) -> ParsedData:
    """
    Parse YAML text holding Plan, NetworkMap and StorageMap resources.

    A document-level YAML error yields an empty result.
    """
    api_group = api_group or config.get_api_group()
    try:
        documents = load_documents(content)
    except YamlParseError as e:
        logger.error(str(e))
        return ParsedData.empty()

    result = ParsedData.empty()
    for resource in iter_resources(documents):
        if not is_platform_api_version(resource.get("apiVersion"), api_group):
            continue
        kind = resource.get("kind")
        if kind == "Plan":
            result.plans.append(convert_plan(resource))
        elif kind == "NetworkMap":
            result.network_maps.append(convert_map(resource))
        elif kind == "StorageMap":
            result.storage_maps.append(convert_map(resource))

    line_count = len(content.split("\n"))
    result.stats = ParseStats(
        total_lines=line_count,
        parsed_lines=line_count,
        plans_found=len(result.plans),
        vms_found=sum(len(plan.vms) for plan in result.plans),
    )
    result.summary = Summary.from_plans(result.plans)
    logger.debug(
        f"YAML: {len(result.plans)} plans, {len(result.network_maps)} network maps, "
        f"{len(result.storage_maps)} storage maps"
    )
    return result
