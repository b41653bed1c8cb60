"""Test Plan, NetworkMap and StorageMap YAML conversion."""

from pathlib import Path

import pytest

from plan_inspector.core.yaml_converter import (
    infer_status,
    is_yaml_content,
    load_documents,
    migration_type_from_spec,
    parse_plan_yaml,
)
from plan_inspector.utils.exceptions import YamlParseError


SAMPLE_YAML = Path(__file__).parent / "sample_logs" / "warm-plan.yaml"
API_GROUP = "forklift.konveyor.io"


@pytest.fixture
def sample_result():
    """Fixture converting the sample Plan YAML."""
    return parse_plan_yaml(SAMPLE_YAML.read_text(), api_group=API_GROUP)


def test_sample_plan(sample_result):
    """Test plan identity, status and spec."""
    assert len(sample_result.plans) == 1
    plan = sample_result.plans[0]

    assert plan.key == "demo/warm-plan"
    assert plan.status == "Succeeded"
    assert plan.migration_type == "Warm"
    assert plan.spec.description == "Nightly warm migration"
    assert plan.spec.target_namespace == "demo-target"
    assert plan.spec.preserve_static_ips is True
    assert plan.spec.source_provider == "vsphere"
    assert plan.spec.destination_provider == "host"
    assert plan.spec.network_map == "warm-plan-net"
    assert plan.spec.storage_map == "warm-plan-storage"
    assert plan.conditions[0].category == "Advisory"
    assert sample_result.summary.succeeded == 1


def test_sample_vm_pipeline(sample_result):
    """Test that pending steps are excluded and precopies are logged."""
    vm = sample_result.plans[0].vms["vm-1001"]

    assert vm.from_yaml
    assert vm.operating_system == "rhel9_64Guest"
    assert vm.restore_power_state == "On"
    assert vm.current_phase == "Completed"
    assert [ph.name for ph in vm.phase_history] == ["Initialize", "DiskTransfer"]
    assert "Cutover" not in vm.phase_logs

    messages = [entry.message for entry in vm.phase_logs["DiskTransfer"]]
    assert messages[0] == "Transfer disks. - Phase: Completed"
    assert messages[1] == "Progress: 2048/2048 MB"
    assert messages[2] == "Task: [datastore1] rhel9/rhel9.vmdk (Precopy #1)"
    assert messages[3].startswith("Precopy 1/1: snapshot-1 (4m 50s)")
    assert messages[4] == "Precopy summary: 1 successes, 0 failures"
    assert vm.phase_logs["DiskTransfer"][4].timestamp == "2026-02-05T10:05:00.000Z"

    summary = vm.phase_log_summaries["DiskTransfer"]
    assert summary.duration == "19m 50s"
    assert [(i.label, i.value) for i in summary.summary_items] == [("Precopies", "1"), ("Successes", "1")]


def test_sample_warm_info(sample_result):
    """Test warm info taken from the YAML counters."""
    vm = sample_result.plans[0].vms["vm-1001"]
    assert vm.warm_info.successes == 1
    assert vm.warm_info.failures == 0
    assert vm.precopy_count == 1
    assert vm.warm_info.precopies[0].snapshot == "snapshot-1"


def test_sample_network_map(sample_result):
    """Test map digests."""
    assert len(sample_result.network_maps) == 1
    network_map = sample_result.network_maps[0]
    assert network_map.key == "demo/warm-plan-net"
    assert network_map.source_provider == "vsphere"
    assert [(e.source, e.destination) for e in network_map.entries] == [("VM Network", "pod")]
    assert sample_result.storage_maps == []


def test_timestamps_stay_strings():
    """Test that YAML timestamps are not converted by the loader."""
    docs = load_documents('started: 2026-02-05T10:00:00Z\n')
    assert docs == [{"started": "2026-02-05T10:00:00Z"}]


def test_invalid_yaml_yields_empty_result():
    """Test that a broken document does not raise."""
    with pytest.raises(YamlParseError):
        load_documents("kind: [unclosed")
    result = parse_plan_yaml("kind: [unclosed", api_group=API_GROUP)
    assert result.plans == []
    assert result.stats.total_lines == 0


def test_foreign_api_group_is_ignored():
    """Test that resources outside the platform group are skipped."""
    content = "apiVersion: v1\nkind: Plan\nmetadata:\n  name: x\n"
    assert parse_plan_yaml(content, api_group=API_GROUP).plans == []


def test_list_wrapper():
    """Test that List documents are flattened."""
    content = """
apiVersion: v1
kind: List
items:
  - apiVersion: forklift.konveyor.io/v1beta1
    kind: StorageMap
    metadata:
      name: sm
    spec:
      map:
        - source:
            name: datastore1
          destination:
            storageClass: standard
"""
    result = parse_plan_yaml(content, api_group=API_GROUP)
    assert result.storage_maps[0].namespace == "default"
    assert result.storage_maps[0].entries[0].destination == "standard"


def test_plan_without_status():
    """Test a freshly created plan."""
    content = """
apiVersion: forklift.konveyor.io/v1beta1
kind: Plan
metadata:
  name: fresh
  namespace: ns
  creationTimestamp: "2026-02-05T09:00:00Z"
spec:
  type: conversion
"""
    plan = parse_plan_yaml(content, api_group=API_GROUP).plans[0]
    assert plan.status == "Pending"
    assert plan.migration_type == "OnlyConversion"
    assert plan.vms == {}
    assert plan.first_seen.hour == 9


def test_vm_error_and_failed_step():
    """Test VM error reasons and failed step logs."""
    content = """
apiVersion: forklift.konveyor.io/v1beta1
kind: Plan
metadata:
  name: broken
  namespace: ns
spec: {}
status:
  migration:
    vms:
      - id: vm-5
        name: app
        started: "2026-02-05T10:00:00Z"
        error:
          phase: AllocateDisks
          reasons:
            - no storage class
        pipeline:
          - name: DiskAllocation
            started: "2026-02-05T10:00:00Z"
            error:
              phase: AllocateDisks
              reasons:
                - no storage class
"""
    plan = parse_plan_yaml(content, api_group=API_GROUP).plans[0]
    assert plan.status == "Failed"
    assert plan.migration_type == "Cold"

    vm = plan.vms["vm-5"]
    assert vm.error.reasons == ["no storage class"]
    assert vm.current_phase == "DiskAllocation"
    logs = vm.phase_logs["DiskAllocation"]
    assert logs[-1].level == "error"
    assert logs[-1].message == "DiskAllocation failed: no storage class"



def test_non_string_step_name():
    """Test that a malformed step name is kept as text."""
    content = """
apiVersion: forklift.konveyor.io/v1beta1
kind: Plan
metadata:
  name: odd
  namespace: ns
spec: {}
status:
  migration:
    vms:
      - id: vm-7
        name: odd-vm
        started: "2026-02-05T10:00:00Z"
        pipeline:
          - name: [Disk, Copy]
            started: "2026-02-05T10:00:00Z"
"""
    vm = parse_plan_yaml(content, api_group=API_GROUP).plans[0].vms["vm-7"]
    assert vm.phase_history[0].name == "['Disk', 'Copy']"
    assert vm.phase_history[0].step == vm.phase_history[0].name
    assert vm.current_phase == vm.phase_history[0].name


@pytest.mark.parametrize("spec,expected", [
    ({"type": "warm"}, "Warm"),
    ({"type": "Cold"}, "Cold"),
    ({"warm": True}, "Warm"),
    ({}, "Cold"),
    ({"type": "live"}, "Unknown"),
])
def test_migration_type_from_spec(spec, expected):
    """Test migration type selection."""
    assert migration_type_from_spec(spec) == expected


def test_infer_status():
    """Test inference from the VM list when conditions are inconclusive."""
    assert infer_status("Pending", [{"completed": "t"}], {}) == "Succeeded"
    assert infer_status("Ready", [{"started": "t"}], {}) == "Running"
    assert infer_status("Pending", [{}], {"started": "t"}) == "Running"
    assert infer_status("Pending", [{}], {}) == "Pending"
    assert infer_status("Running", [{"error": {}}], {}) == "Running"


def test_is_yaml_content():
    """Test YAML versus JSON-lines detection."""
    assert is_yaml_content(SAMPLE_YAML.read_text())
    assert is_yaml_content("---\nfoo: bar")
    assert not is_yaml_content('{"apiVersion": "x", "kind": "Plan"}')
    assert not is_yaml_content("plain text")
