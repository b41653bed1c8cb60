"""In-memory store of plans, events and counters for one parse invocation."""

from typing import Dict, List, Optional

from .constants import MigrationTypes, phase_to_step
from .models import (
    EPOCH,
    Event,
    ParsedData,
    ParseStats,
    Plan,
    Summary,
)
from .precopy import warm_info_from_phase_history
from .utils import compute_phase_log_summaries, detect_vm_migration_type


class EntityStore:
    """
    Keyed collection of Plans plus the global event log.

    Plans are created lazily on first reference and keep insertion order.
    """

    def __init__(self):
        self.plans: Dict[str, Plan] = {}
        self.events: List[Event] = []
        self.stats = ParseStats()

    def get_or_create_plan(self, namespace: str, name: str) -> Plan:
        key = f"{namespace}/{name}"
        plan = self.plans.get(key)
        if plan is None:
            plan = Plan(name=name, namespace=namespace)
            self.plans[key] = plan
        return plan

    def find_plan(self, key: str) -> Optional[Plan]:
        """Look up a plan by ``namespace/name``."""
        return self.plans.get(key)

    def most_recent_plan(self) -> Optional[Plan]:
        """The plan with the latest last-seen timestamp (first one wins ties)."""
        recent = None
        for plan in self.plans.values():
            if recent is None or plan.last_seen > recent.last_seen:
                recent = plan
        return recent

    def add_event(self, event: Event) -> None:
        self.events.append(event)

    def increment_stat(self, name: str, amount: int = 1) -> None:
        setattr(self.stats, name, getattr(self.stats, name) + amount)

    def finalize_plans(self) -> List[Plan]:
        """Derive per-VM summaries, steps and migration types."""
        plans = []
        for plan in self.plans.values():
            for vm in plan.vms.values():
                vm.phase_log_summaries = compute_phase_log_summaries(vm)
                detected = detect_vm_migration_type(vm.phase_history)
                if vm.warm_info is not None and detected != MigrationTypes.WARM:
                    detected = MigrationTypes.WARM
                vm.migration_type = detected

                is_warm = detected == MigrationTypes.WARM
                if vm.current_phase:
                    vm.current_step = phase_to_step(vm.current_phase, is_warm)
                if is_warm and vm.warm_info is None:
                    warm_info = warm_info_from_phase_history(vm.phase_history)
                    if warm_info is not None:
                        vm.warm_info = warm_info
                        vm.precopy_count = len(warm_info.precopies)
                for ph in vm.phase_history:
                    ph.step = phase_to_step(ph.name, is_warm)

            plan.migration_type = plan_migration_type(plan)
            plans.append(plan)
        return plans

    def summary(self) -> Summary:
        return Summary.from_plans(list(self.plans.values()))

    def final_stats(self) -> ParseStats:
        self.stats.plans_found = len(self.plans)
        self.stats.vms_found = sum(len(plan.vms) for plan in self.plans.values())
        return self.stats

    def get_result(self) -> ParsedData:
        return ParsedData(
            plans=self.finalize_plans(),
            events=self.events,
            stats=self.final_stats(),
            summary=self.summary(),
        )


def plan_migration_type(plan: Plan) -> str:
    """Warm beats Cold beats OnlyConversion across the plan's VMs."""
    types = {vm.migration_type for vm in plan.vms.values()}
    for candidate in (MigrationTypes.WARM, MigrationTypes.COLD, MigrationTypes.ONLY_CONVERSION):
        if candidate in types:
            return candidate
    return MigrationTypes.UNKNOWN


def reset_plan_for_rerun(plan: Plan, first_seen=EPOCH) -> None:
    """Drop per-run state when a new migration run starts."""
    plan.vms = {}
    plan.errors = []
    plan.panics = []
    plan.conditions = []
    plan.first_seen = first_seen
