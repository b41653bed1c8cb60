"""
Plan/VM event processing for plan-controller records.

Each record is classified into a ``PlanMessage`` and routed through a
handler table. Handlers mutate the Plan and VM entities held by the
``EntityStore`` and append timeline events.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .constants import (
    ConditionStatus,
    MigrationTypes,
    Phases,
    PlanStatuses,
    CREATED_RESOURCE_FIELDS,
    GENERIC_CREATED_RE,
    MSG_MIGRATION_STARTED,
    MSG_RECONCILE_FAILED,
    TRANSIENT_ERROR_MARKER,
)
from .entity_store import EntityStore, reset_plan_for_rerun
from .models import (
    Condition,
    CreatedResource,
    EPOCH,
    DataVolume,
    ErrorEntry,
    Event,
    PhaseInfo,
    Plan,
    RawLogEntry,
    ScheduleSnapshot,
    VM,
    isoformat_z,
)
from .precopy import next_iteration, warm_info_from_checkpoint
from .records import PlanMessage, classify_plan_message, message_of, plan_ref
from .utils import get_vm_info, timestamp_string, truncate
from ..utils.logger import LoggerMixin
from ..utils.validators import get_string_from_map


class PlanContext:
    """One plan record together with what it resolved to."""

    def __init__(self, record: Dict[str, Any], ts: datetime, raw_line: str,
                 plan: Plan, vm: Optional[VM]):
        self.record = record
        self.ts = ts
        self.raw_line = raw_line
        self.plan = plan
        self.vm = vm
        self.msg = message_of(record)

    @property
    def event_ts(self) -> str:
        return timestamp_string(self.record.get("ts"), self.ts)

    @property
    def vm_name(self) -> Optional[str]:
        _, name = get_vm_info(self.record)
        return name or None


class PlanEventProcessor(LoggerMixin):
    """Applies plan-controller records to the entity store."""

    def __init__(self, store: EntityStore, description_max: int = 150):
        self.store = store
        self.description_max = description_max
        self._handlers: Dict[PlanMessage, Callable[[PlanContext], None]] = {
            PlanMessage.ARCHIVED: self._on_archived,
            PlanMessage.SUCCEEDED_SKIP: self._on_succeeded_skip,
            PlanMessage.MIGRATION_STARTED: self._on_migration_started,
            PlanMessage.MIGRATION_SUCCEEDED: self._on_migration_succeeded,
            PlanMessage.MIGRATION_RUN: self._on_migration_run,
            PlanMessage.SET_CHECKPOINT: self._on_set_checkpoint,
            PlanMessage.ITINERARY_TRANSITION: self._on_itinerary_transition,
            PlanMessage.CONDITION_ADDED: self._on_condition_added,
            PlanMessage.CONDITION_DELETED: self._on_condition_deleted,
            PlanMessage.DATAVOLUME_CREATED: self._on_datavolume_created,
            PlanMessage.RESOURCE_CREATED: self._on_resource_created,
            PlanMessage.ERROR: self._on_error,
            PlanMessage.ACTIVE_MIGRATION: self._on_active_migration,
            PlanMessage.OTHER: self._on_other,
        }

    def process(self, record: Dict[str, Any], ts: datetime, raw_line: str = "") -> None:
        """Apply one plan record; records without a complete plan reference are ignored."""
        ref = plan_ref(record)
        if ref is None:
            return
        namespace, name = ref
        plan = self.store.get_or_create_plan(namespace, name)

        msg = message_of(record)
        migration = record.get("migration")
        if migration and plan.migration and migration != plan.migration \
                and msg != MSG_MIGRATION_STARTED:
            self.logger.debug(f"Skipping record from previous run {migration} of {plan.key}")
            return

        if plan.first_seen == EPOCH:
            plan.first_seen = ts
        plan.last_seen = ts

        vm = self.ensure_vm(plan, record, ts)
        kind = classify_plan_message(record, vm is not None)
        self._handlers[kind](PlanContext(record, ts, raw_line, plan, vm))

    def ensure_vm(self, plan: Plan, record: Dict[str, Any], ts: datetime) -> Optional[VM]:
        """Create the referenced VM lazily, seeding its first phase from the record."""
        vm_id, vm_name = get_vm_info(record)
        if not vm_id:
            return None

        vm = plan.vms.get(vm_id)
        if vm is None:
            vm = VM(id=vm_id, name=vm_name, first_seen=ts, last_seen=ts)
            plan.vms[vm_id] = vm
        vm.last_seen = ts

        phase = get_string_from_map(record, "phase")
        if phase and not vm.current_phase:
            vm.current_phase = phase
            vm.phase_history.append(PhaseInfo(
                name=phase,
                started_at=ts,
                iteration=next_iteration(vm.phase_history, phase),
            ))
        return vm

    def store_vm_log(self, ctx: PlanContext) -> None:
        """File the record under the VM's phase (the record's own, else current)."""
        vm = ctx.vm
        if vm is None or not vm.current_phase:
            return
        phase = get_string_from_map(ctx.record, "phase") or vm.current_phase
        vm.add_phase_log(phase, RawLogEntry(
            timestamp=ctx.event_ts,
            level=get_string_from_map(ctx.record, "level"),
            message=ctx.msg,
            raw_line=ctx.raw_line,
            phase=phase,
        ))

    def _add_event(self, ctx: PlanContext, event_type: str, description: str,
                   vm_name: Optional[str] = None, phase: Optional[str] = None) -> None:
        self.store.add_event(Event(
            timestamp=ctx.event_ts,
            type=event_type,
            plan_name=ctx.plan.name,
            namespace=ctx.plan.namespace,
            description=description,
            vm_name=vm_name,
            phase=phase,
        ))

    def _complete_plan(self, plan: Plan, ts: datetime) -> None:
        """Close every VM with a synthetic Completed phase and mark the plan succeeded."""
        for vm in plan.vms.values():
            if vm.current_phase == Phases.COMPLETED:
                continue
            vm.close_open_phase(ts)
            vm.current_phase = Phases.COMPLETED
            vm.phase_history.append(PhaseInfo(
                name=Phases.COMPLETED, started_at=ts, ended_at=ts,
            ))
        plan.status = PlanStatuses.SUCCEEDED

    def _on_archived(self, ctx: PlanContext) -> None:
        ctx.plan.archived = True

    def _on_succeeded_skip(self, ctx: PlanContext) -> None:
        ctx.plan.status = PlanStatuses.SUCCEEDED

    def _on_migration_started(self, ctx: PlanContext) -> None:
        plan = ctx.plan
        migration = ctx.record.get("migration")
        if migration and plan.migration and migration != plan.migration:
            self.logger.info(f"New migration run {migration} for {plan.key}, resetting plan state")
            reset_plan_for_rerun(plan, ctx.ts)
        plan.status = PlanStatuses.RUNNING
        if migration:
            plan.migration = migration
        self._add_event(ctx, "migration_start", "Migration started")

    def _on_migration_succeeded(self, ctx: PlanContext) -> None:
        self._complete_plan(ctx.plan, ctx.ts)
        self._add_event(ctx, "migration_succeeded", "Migration succeeded")

    def _on_migration_run(self, ctx: PlanContext) -> None:
        vm = ctx.vm
        phase = get_string_from_map(ctx.record, "phase")
        if phase and phase != vm.current_phase:
            vm.close_open_phase(ctx.ts)
            iteration = next_iteration(vm.phase_history, phase)
            vm.current_phase = phase
            vm.phase_history.append(PhaseInfo(name=phase, started_at=ctx.ts, iteration=iteration))

            suffix = f" (iteration {iteration})" if iteration else ""
            self._add_event(
                ctx, "phase_change", f"VM entered phase: {phase}{suffix}",
                vm_name=vm.name or None, phase=phase,
            )
        if phase == Phases.COMPLETED:
            ctx.plan.status = PlanStatuses.SUCCEEDED
        self.store_vm_log(ctx)

    def _on_set_checkpoint(self, ctx: PlanContext) -> None:
        vm = ctx.vm
        precopies = ctx.record.get("precopies")
        warm_info = warm_info_from_checkpoint(precopies if isinstance(precopies, list) else [])
        if warm_info is not None:
            vm.warm_info = warm_info
            vm.precopy_count = len(warm_info.precopies)
            if vm.migration_type == MigrationTypes.UNKNOWN:
                vm.migration_type = MigrationTypes.WARM
        self.store_vm_log(ctx)

    def _on_itinerary_transition(self, ctx: PlanContext) -> None:
        current = get_string_from_map(ctx.record, "current phase")
        upcoming = get_string_from_map(ctx.record, "next phase")
        if not current or not upcoming:
            return
        self._add_event(ctx, "phase_transition", f"{current} → {upcoming}", phase=upcoming)
        if upcoming == Phases.COMPLETED:
            self._complete_plan(ctx.plan, ctx.ts)

    def _on_condition_added(self, ctx: PlanContext) -> None:
        raw = ctx.record.get("condition")
        if not isinstance(raw, dict):
            return
        plan = ctx.plan
        condition = Condition(
            type=get_string_from_map(raw, "type"),
            status=get_string_from_map(raw, "status"),
            message=get_string_from_map(raw, "message"),
            timestamp=ctx.ts,
            category=get_string_from_map(raw, "category") or None,
        )
        apply_condition_status(plan, condition)

        for index, existing in enumerate(plan.conditions):
            if existing.type == condition.type:
                plan.conditions[index] = condition
                break
        else:
            plan.conditions.append(condition)

        self._add_event(ctx, "condition", f"{condition.type}: {condition.message}")

    def _on_condition_deleted(self, ctx: PlanContext) -> None:
        raw = ctx.record.get("condition")
        if not isinstance(raw, dict):
            return
        cond_type = get_string_from_map(raw, "type")
        ctx.plan.conditions = [c for c in ctx.plan.conditions if c.type != cond_type]

    def _on_datavolume_created(self, ctx: PlanContext) -> None:
        vm = ctx.vm
        if vm is None:
            return
        dv = str(ctx.record.get("dv"))
        vm.data_volumes.append(DataVolume(name=dv, created_at=ctx.ts))
        vm.add_phase_log(Phases.CREATE_DATA_VOLUMES, RawLogEntry(
            timestamp=ctx.event_ts,
            level=get_string_from_map(ctx.record, "level"),
            message=f"{ctx.msg} ({dv})",
            raw_line=ctx.raw_line,
            phase=Phases.CREATE_DATA_VOLUMES,
        ))

    def _on_resource_created(self, ctx: PlanContext) -> None:
        vm = ctx.vm
        if vm is None:
            return
        resource = created_resource(ctx.record, ctx.msg)
        if resource is None:
            return
        resource_type, resource_name = resource
        if any(r.type == resource_type and r.name == resource_name for r in vm.created_resources):
            return
        vm.created_resources.append(CreatedResource(
            type=resource_type, name=resource_name, created_at=ctx.ts,
        ))

    def _on_error(self, ctx: PlanContext) -> None:
        plan = ctx.plan
        error = str(ctx.record.get("error"))
        if TRANSIENT_ERROR_MARKER in error:
            return
        if MSG_RECONCILE_FAILED in ctx.msg:
            plan.status = PlanStatuses.FAILED

        vm_name = ctx.vm_name
        message = f"[{vm_name}] {ctx.msg}" if vm_name else ctx.msg
        existing = next(
            (e for e in plan.errors if e.error == error and e.message == message), None
        )
        if existing is not None:
            existing.count += 1
            existing.timestamp = ctx.ts
        else:
            plan.errors.append(ErrorEntry(
                timestamp=ctx.ts,
                message=message,
                error=error,
                stacktrace=get_string_from_map(ctx.record, "stacktrace") or None,
                raw_line=ctx.raw_line or None,
            ))

        self._add_event(
            ctx, "error", truncate(f"{message}: {error}", self.description_max), vm_name=vm_name,
        )

    def _on_active_migration(self, ctx: PlanContext) -> None:
        ctx.plan.status = PlanStatuses.RUNNING
        migration = ctx.record.get("migration")
        if migration:
            ctx.plan.migration = migration

    def _on_other(self, ctx: PlanContext) -> None:
        if ctx.record.get("err"):
            self._record_warning(ctx)
        if ctx.vm is not None:
            self.store_vm_log(ctx)

    def _record_warning(self, ctx: PlanContext) -> None:
        plan = ctx.plan
        error = str(ctx.record.get("err"))
        vm_name = ctx.vm_name
        message = f"[{vm_name}] {ctx.msg}" if vm_name else ctx.msg

        existing = next((e for e in plan.errors if e.error == error), None)
        if existing is not None:
            existing.count += 1
            existing.timestamp = ctx.ts
        else:
            plan.errors.append(ErrorEntry(
                timestamp=ctx.ts,
                message=message,
                error=error,
                level="warning",
                raw_line=ctx.raw_line or None,
            ))

        self._add_event(
            ctx, "warning", truncate(f"{message}: {error}", self.description_max), vm_name=vm_name,
        )

    def process_scheduler(self, record: Dict[str, Any], ts: datetime) -> None:
        """Append an in-flight/pending snapshot to the plan named by the logger."""
        inflight = record.get("inflight")
        pending = record.get("pending")
        if inflight is None and pending is None:
            return

        parts = get_string_from_map(record, "logger").split("|")
        if len(parts) < 2:
            return
        plan = self.store.find_plan(parts[1])
        if plan is None:
            return

        next_vm = record.get("next")
        snapshot = ScheduleSnapshot(
            timestamp=isoformat_z(ts),
            inflight=inflight if isinstance(inflight, dict) else {},
            pending=pending if isinstance(pending, dict) else {},
            next_vm=next_vm if isinstance(next_vm, dict) else None,
        )
        if plan.schedule_history is None:
            plan.schedule_history = []
        plan.schedule_history.append(snapshot)


def apply_condition_status(plan: Plan, condition: Condition) -> None:
    """Move the plan status according to a True condition."""
    if condition.status != ConditionStatus.TRUE:
        return
    if condition.type == "Executing":
        plan.status = PlanStatuses.RUNNING
    elif condition.type == "Ready" and plan.status == PlanStatuses.PENDING:
        plan.status = PlanStatuses.READY
    elif condition.type == "Succeeded":
        plan.status = PlanStatuses.SUCCEEDED
    elif condition.type == "Failed":
        plan.status = PlanStatuses.FAILED


def created_resource(record: Dict[str, Any], msg: str):
    """(type, name) of a created resource, or None when it is not tracked."""
    mapped = CREATED_RESOURCE_FIELDS.get(msg)
    if mapped is not None:
        resource_type, field_name = mapped
        name = record.get(field_name)
        if name:
            return resource_type, str(name)

    match = GENERIC_CREATED_RE.match(msg)
    if not match:
        return None
    resource_type = match.group(1)
    if resource_type == "DataVolume":
        return None

    name = ""
    obj = record.get("object")
    if isinstance(obj, dict) and obj.get("name"):
        name = f"{obj['namespace']}/{obj['name']}" if obj.get("namespace") else str(obj["name"])
    return resource_type, name
