"""
Deterministic merge of two normalized results.

Plans are matched on (namespace, name). The plan holding controller-log VMs
is the base; the other side only fills fields the base lacks.
"""

from dataclasses import replace
from typing import Dict, List, Optional

from .constants import INCONCLUSIVE_STATUSES
from .models import MapResource, ParsedData, ParseStats, Plan, Summary, VM


def merge_results(a: Optional[ParsedData], b: Optional[ParsedData]) -> ParsedData:
    """Merge two results; either side may be None."""
    if a is None and b is None:
        return ParsedData.empty()
    if a is None:
        return b
    if b is None:
        return a

    merged: Dict[str, Plan] = {}
    for plan in a.plans:
        merged[plan.key] = plan
    for plan in b.plans:
        existing = merged.get(plan.key)
        merged[plan.key] = plan if existing is None else merge_plans(existing, plan)
    plans = list(merged.values())

    events = sorted(a.events + b.events, key=lambda event: event.timestamp)

    stats = ParseStats(
        total_lines=a.stats.total_lines + b.stats.total_lines,
        parsed_lines=a.stats.parsed_lines + b.stats.parsed_lines,
        error_lines=a.stats.error_lines + b.stats.error_lines,
        duplicate_lines=a.stats.duplicate_lines + b.stats.duplicate_lines,
        plans_found=len(plans),
        vms_found=sum(len(plan.vms) for plan in plans),
    )

    return ParsedData(
        plans=plans,
        events=events,
        stats=stats,
        summary=Summary.from_plans(plans),
        network_maps=dedup_maps(a.network_maps + b.network_maps),
        storage_maps=dedup_maps(a.storage_maps + b.storage_maps),
    )


def merge_plans(first: Plan, second: Plan) -> Plan:
    """Combine two views of the same plan without overwriting populated fields."""
    if second.has_logged_vm() and not first.has_logged_vm():
        base, other = second, first
    else:
        base, other = first, second

    plan = replace(base, vms=dict(base.vms))
    if plan.spec is None:
        plan.spec = other.spec
    if not plan.conditions:
        plan.conditions = list(other.conditions)
    if not plan.errors:
        plan.errors = list(other.errors)
    if not plan.panics:
        plan.panics = list(other.panics)
    if not plan.migration:
        plan.migration = other.migration
    if plan.schedule_history is None and other.schedule_history:
        plan.schedule_history = list(other.schedule_history)

    plan.archived = base.archived or other.archived
    if plan.status in INCONCLUSIVE_STATUSES and other.status not in INCONCLUSIVE_STATUSES:
        plan.status = other.status

    for vm_id, vm in other.vms.items():
        existing = plan.vms.get(vm_id)
        plan.vms[vm_id] = vm if existing is None else enrich_vm(existing, vm)
    return plan


def enrich_vm(base: VM, other: VM) -> VM:
    """Fill metadata the base VM lacks; phase history and logs stay the base's."""
    vm = replace(base)
    if not vm.operating_system:
        vm.operating_system = other.operating_system
    if not vm.restore_power_state:
        vm.restore_power_state = other.restore_power_state
    if not vm.new_name:
        vm.new_name = other.new_name
    if vm.error is None:
        vm.error = other.error
    if not vm.conditions:
        vm.conditions = other.conditions
    if vm.warm_info is None and other.warm_info is not None:
        vm.warm_info = other.warm_info
        vm.precopy_count = other.precopy_count
    return vm


def dedup_maps(maps: List[MapResource]) -> List[MapResource]:
    """First occurrence of each (namespace, name) wins."""
    seen = {}
    for resource in maps:
        seen.setdefault(resource.key, resource)
    return list(seen.values())
