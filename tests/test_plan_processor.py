"""Test plan and VM event processing."""

from datetime import datetime, timedelta, timezone

import pytest

from plan_inspector.core.entity_store import EntityStore
from plan_inspector.core.models import Condition
from plan_inspector.core.plan_processor import (
    PlanEventProcessor,
    apply_condition_status,
    created_resource,
)
from plan_inspector.core.records import (
    PlanMessage,
    RecordKind,
    classify_plan_message,
    classify_record,
)
from plan_inspector.core.models import Plan


T0 = datetime(2026, 2, 5, 10, 0, 0, tzinfo=timezone.utc)
PLAN = {"name": "p1", "namespace": "ns"}
VM_REF = {"id": "vm-7", "name": "db"}


@pytest.fixture
def store():
    return EntityStore()


@pytest.fixture
def processor(store):
    return PlanEventProcessor(store)


def rec(msg, **extra):
    data = {"level": "info", "logger": "plan|ns/p1", "msg": msg, "plan": PLAN}
    data.update(extra)
    return data


def feed(processor, *records):
    for offset, record in enumerate(records):
        processor.process(record, T0 + timedelta(seconds=offset), "raw")


def test_classify_record():
    """Test top-level record routing."""
    assert classify_record({"msg": "Observed a panic: x"}) is RecordKind.PANIC_OBSERVED
    assert classify_record({"msg": "Reconciler error", "controller": "plan"}) is RecordKind.RECONCILER_ERROR
    assert classify_record({"msg": "Reconciler error"}) is RecordKind.IGNORED
    assert classify_record({"msg": "x", "logger": "plan|ns/p"}) is RecordKind.PLAN
    assert classify_record({"msg": "x", "plan": PLAN}) is RecordKind.PLAN
    assert classify_record({"msg": "x", "logger": "scheduler|ns/p"}) is RecordKind.SCHEDULER
    assert classify_record({"msg": "x", "logger": "provider|v"}) is RecordKind.IGNORED


def test_classify_plan_message_precedence():
    """Test that the first matching message kind wins."""
    assert classify_plan_message({"msg": "Aborting reconcile of archived plan"}, False) is PlanMessage.ARCHIVED
    assert classify_plan_message({"msg": "Migration [RUN]"}, False) is PlanMessage.OTHER
    assert classify_plan_message({"msg": "Migration [RUN]"}, True) is PlanMessage.MIGRATION_RUN
    assert classify_plan_message({"msg": "Created DataVolume.", "dv": "d"}, True) is PlanMessage.DATAVOLUME_CREATED
    assert classify_plan_message({"msg": "Created DataVolume."}, True) is PlanMessage.RESOURCE_CREATED
    assert classify_plan_message(
        {"msg": "Pod created.", "level": "error", "error": "x"}, True
    ) is PlanMessage.RESOURCE_CREATED
    assert classify_plan_message({"msg": "oops", "level": "error", "error": "x"}, False) is PlanMessage.ERROR


def test_record_without_plan_is_ignored(store, processor):
    """Test that incomplete plan references create nothing."""
    processor.process({"msg": "Migration [STARTED]", "plan": {"name": "p1"}}, T0)
    assert store.plans == {}


def test_phase_transitions(store, processor):
    """Test phase history, closing and events."""
    feed(processor,
         rec("Migration [RUN]", vmRef=VM_REF, phase="Started"),
         rec("Migration [RUN]", vmRef=VM_REF, phase="AllocateDisks"),
         rec("Migration [RUN]", vmRef=VM_REF, phase="AllocateDisks"),
         rec("Migration [RUN]", vmRef=VM_REF, phase="CopyDisksVirtV2V"))

    vm = store.find_plan("ns/p1").vms["vm-7"]
    assert [ph.name for ph in vm.phase_history] == ["Started", "AllocateDisks", "CopyDisksVirtV2V"]
    assert vm.phase_history[0].ended_at == T0 + timedelta(seconds=1)
    assert vm.phase_history[1].ended_at == T0 + timedelta(seconds=3)
    assert vm.phase_history[1].iteration is None
    assert [e.phase for e in store.events] == ["AllocateDisks", "CopyDisksVirtV2V"]
    assert len(vm.phase_logs["AllocateDisks"]) == 2


def test_completed_phase_marks_plan_succeeded(store, processor):
    """Test a VM reaching Completed."""
    feed(processor, rec("Migration [RUN]", vmRef=VM_REF, phase="Completed"))
    assert store.find_plan("ns/p1").status == "Succeeded"


def test_itinerary_transition_to_completed(store, processor):
    """Test that the final itinerary transition completes every VM."""
    feed(processor,
         rec("Migration [RUN]", vmRef=VM_REF, phase="CreateVM"),
         rec("Itinerary transition", **{"current phase": "CreateVM", "next phase": "Completed"}))

    plan = store.find_plan("ns/p1")
    assert plan.status == "Succeeded"
    assert plan.vms["vm-7"].current_phase == "Completed"
    assert store.events[-1].description == "CreateVM → Completed"


def test_conditions_replace_by_type(store, processor):
    """Test condition upsert, deletion and status effects."""
    feed(processor,
         rec("Condition added", condition={"type": "Ready", "status": "True", "message": "ready"}),
         rec("Condition added", condition={"type": "Ready", "status": "True", "message": "again"}),
         rec("Condition added", condition={"type": "Failed", "status": "True", "message": "bad"}))

    plan = store.find_plan("ns/p1")
    assert [(c.type, c.message) for c in plan.conditions] == [("Ready", "again"), ("Failed", "bad")]
    assert plan.status == "Failed"

    feed(processor, rec("Condition deleted", condition={"type": "Ready"}))
    assert [c.type for c in plan.conditions] == ["Failed"]


def test_apply_condition_status():
    """Test status transitions from True conditions."""
    plan = Plan(name="p", namespace="ns")
    apply_condition_status(plan, Condition("Ready", "True", "", T0))
    assert plan.status == "Ready"
    apply_condition_status(plan, Condition("Succeeded", "False", "", T0))
    assert plan.status == "Ready"
    apply_condition_status(plan, Condition("Executing", "True", "", T0))
    assert plan.status == "Running"
    apply_condition_status(plan, Condition("Ready", "True", "", T0))
    assert plan.status == "Running"


def test_created_resources(store, processor):
    """Test tracked resource creation messages."""
    feed(processor,
         rec("Secret created.", vmRef=VM_REF, secret="s1"),
         rec("Secret created.", vmRef=VM_REF, secret="s1"),
         rec("Created VirtualMachineInstance", vmRef=VM_REF, object={"name": "vmi", "namespace": "t"}))

    vm = store.find_plan("ns/p1").vms["vm-7"]
    assert [(r.type, r.name) for r in vm.created_resources] == [
        ("Secret", "s1"), ("VirtualMachineInstance", "t/vmi"),
    ]


def test_created_resource_helper():
    """Test resource extraction rules."""
    assert created_resource({"pod": "p"}, "Pod created.") == ("Pod", "p")
    assert created_resource({}, "Created DataVolume") is None
    assert created_resource({}, "Something else") is None
    assert created_resource({}, "Created Job.") == ("Job", "")


def test_errors_are_grouped(store, processor):
    """Test error grouping and transient error filtering."""
    feed(processor,
         rec("Failed to create", level="error", error="quota exceeded", vmRef=VM_REF),
         rec("Failed to create", level="error", error="quota exceeded", vmRef=VM_REF),
         rec("Failed to connect", level="error", error="dial tcp: connection refused"),
         rec("Reconcile failed", level="error", error="fatal"))

    plan = store.find_plan("ns/p1")
    assert [(e.message, e.count) for e in plan.errors] == [
        ("[db] Failed to create", 2), ("Reconcile failed", 1),
    ]
    assert plan.status == "Failed"
    assert [e.type for e in store.events] == ["error", "error", "error"]


def test_warnings_from_err_field(store, processor):
    """Test that records with an err field become warnings."""
    feed(processor,
         rec("Retrying", err="transient"),
         rec("Retrying again", err="transient"))

    errors = store.find_plan("ns/p1").errors
    assert len(errors) == 1
    assert errors[0].level == "warning"
    assert errors[0].count == 2
    assert store.events[0].type == "warning"


def test_archived_and_skip(store, processor):
    """Test archived flag and succeeded-skip status."""
    feed(processor,
         rec("Skipping reconcile of succeeded plan"),
         rec("Aborting reconcile of archived plan"))

    plan = store.find_plan("ns/p1")
    assert plan.archived
    assert plan.status == "Succeeded"
    assert store.summary().archived == 1
    assert store.summary().succeeded == 1


def test_active_migration(store, processor):
    """Test that an active migration marks the plan running."""
    feed(processor, rec("Found (active) migration", migration="m9"))
    plan = store.find_plan("ns/p1")
    assert plan.status == "Running"
    assert plan.migration == "m9"


def test_scheduler_snapshot(store, processor):
    """Test schedule history on a known plan."""
    feed(processor, rec("Migration [STARTED]"))
    processor.process_scheduler(
        {"logger": "scheduler|ns/p1", "msg": "scheduler", "inflight": {}, "pending": {"h": [1]},
         "next": {"id": "vm-1"}},
        T0,
    )
    processor.process_scheduler({"logger": "scheduler|ns/other", "pending": {"h": [1]}}, T0)
    processor.process_scheduler({"logger": "scheduler|ns/p1"}, T0)

    history = store.find_plan("ns/p1").schedule_history
    assert len(history) == 1
    assert history[0].next_vm == {"id": "vm-1"}
    assert store.find_plan("ns/other") is None


def test_numeric_ts_is_rendered_iso(store, processor):
    """Test event timestamps for epoch-second records."""
    processor.process(rec("Migration [STARTED]", ts=1770285600), T0)
    assert store.events[0].timestamp == "2026-02-05T10:00:00.000Z"


def test_scheduler_snapshot_with_drained_queues(store, processor):
    """Test that empty in-flight and pending queues are still recorded."""
    feed(processor, rec("Migration [STARTED]"))
    processor.process_scheduler(
        {"logger": "scheduler|ns/p1", "msg": "scheduler", "inflight": {}, "pending": {}}, T0,
    )

    history = store.find_plan("ns/p1").schedule_history
    assert len(history) == 1
    assert history[0].inflight == {}
    assert history[0].pending == {}
