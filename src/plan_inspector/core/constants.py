"""Migration vocabulary: statuses, types, phases, pipeline steps and patterns."""

import re
from typing import Dict, Tuple


class MigrationTypes:
    UNKNOWN = "Unknown"
    WARM = "Warm"
    COLD = "Cold"
    ONLY_CONVERSION = "OnlyConversion"


class PlanStatuses:
    PENDING = "Pending"
    READY = "Ready"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


# Statuses a merge may upgrade from
INCONCLUSIVE_STATUSES = frozenset({PlanStatuses.PENDING, PlanStatuses.READY})


class PipelineSteps:
    UNKNOWN = "Unknown"
    INITIALIZE = "Initialize"
    PREFLIGHT_INSPECTION = "PreflightInspection"
    DISK_ALLOCATION = "DiskAllocation"
    DISK_TRANSFER = "DiskTransfer"
    DISK_TRANSFER_V2V = "DiskTransferV2v"
    CUTOVER = "Cutover"
    IMAGE_CONVERSION = "ImageConversion"
    VM_CREATION = "VMCreation"


class Phases:
    STARTED = "Started"
    PRE_HOOK = "PreHook"
    POST_HOOK = "PostHook"
    COMPLETED = "Completed"
    ADD_CHECKPOINT = "AddCheckpoint"
    ADD_FINAL_CHECKPOINT = "AddFinalCheckpoint"
    ALLOCATE_DISKS = "AllocateDisks"
    CONVERT_GUEST = "ConvertGuest"
    CONVERT_OPENSTACK_SNAPSHOT = "ConvertOpenstackSnapshot"
    COPY_DISKS = "CopyDisks"
    COPY_DISKS_VIRT_V2V = "CopyDisksVirtV2V"
    COPYING_PAUSED = "CopyingPaused"
    CREATE_DATA_VOLUMES = "CreateDataVolumes"
    CREATE_FINAL_SNAPSHOT = "CreateFinalSnapshot"
    CREATE_GUEST_CONVERSION_POD = "CreateGuestConversionPod"
    CREATE_INITIAL_SNAPSHOT = "CreateInitialSnapshot"
    CREATE_SNAPSHOT = "CreateSnapshot"
    CREATE_VM = "CreateVM"
    FINALIZE = "Finalize"
    PREFLIGHT_INSPECTION = "PreflightInspection"
    POWER_OFF_SOURCE = "PowerOffSource"
    REMOVE_FINAL_SNAPSHOT = "RemoveFinalSnapshot"
    REMOVE_PENULTIMATE_SNAPSHOT = "RemovePenultimateSnapshot"
    REMOVE_PREVIOUS_SNAPSHOT = "RemovePreviousSnapshot"
    STORE_INITIAL_SNAPSHOT_DELTAS = "StoreInitialSnapshotDeltas"
    STORE_POWER_STATE = "StorePowerState"
    STORE_SNAPSHOT_DELTAS = "StoreSnapshotDeltas"
    WAIT_FOR_DATA_VOLUMES_STATUS = "WaitForDataVolumesStatus"
    WAIT_FOR_FINAL_DATA_VOLUMES_STATUS = "WaitForFinalDataVolumesStatus"
    WAIT_FOR_FINAL_SNAPSHOT = "WaitForFinalSnapshot"
    WAIT_FOR_FINAL_SNAPSHOT_REMOVAL = "WaitForFinalSnapshotRemoval"
    WAIT_FOR_INITIAL_SNAPSHOT = "WaitForInitialSnapshot"
    WAIT_FOR_PENULTIMATE_SNAPSHOT_REMOVAL = "WaitForPenultimateSnapshotRemoval"
    WAIT_FOR_POWER_OFF = "WaitForPowerOff"
    WAIT_FOR_PREVIOUS_SNAPSHOT_REMOVAL = "WaitForPreviousSnapshotRemoval"
    WAIT_FOR_SNAPSHOT = "WaitForSnapshot"


WARM_ONLY_PHASES = frozenset({
    Phases.CREATE_INITIAL_SNAPSHOT,
    Phases.WAIT_FOR_INITIAL_SNAPSHOT,
    Phases.STORE_INITIAL_SNAPSHOT_DELTAS,
    Phases.WAIT_FOR_DATA_VOLUMES_STATUS,
    Phases.COPYING_PAUSED,
    Phases.REMOVE_PREVIOUS_SNAPSHOT,
    Phases.WAIT_FOR_PREVIOUS_SNAPSHOT_REMOVAL,
    Phases.CREATE_SNAPSHOT,
    Phases.WAIT_FOR_SNAPSHOT,
    Phases.STORE_SNAPSHOT_DELTAS,
    Phases.ADD_CHECKPOINT,
    Phases.REMOVE_PENULTIMATE_SNAPSHOT,
    Phases.WAIT_FOR_PENULTIMATE_SNAPSHOT_REMOVAL,
    Phases.CREATE_FINAL_SNAPSHOT,
    Phases.WAIT_FOR_FINAL_SNAPSHOT,
    Phases.WAIT_FOR_FINAL_DATA_VOLUMES_STATUS,
    Phases.ADD_FINAL_CHECKPOINT,
    Phases.FINALIZE,
    Phases.REMOVE_FINAL_SNAPSHOT,
    Phases.WAIT_FOR_FINAL_SNAPSHOT_REMOVAL,
})

COLD_DISK_PHASES = frozenset({
    Phases.COPY_DISKS,
    Phases.ALLOCATE_DISKS,
    Phases.COPY_DISKS_VIRT_V2V,
})

CONVERSION_PHASES = frozenset({
    Phases.CREATE_GUEST_CONVERSION_POD,
    Phases.CONVERT_GUEST,
})

# One warm precopy cycle; CopyDisks opens a new iteration
PRECOPY_LOOP_PHASES = frozenset({
    Phases.COPY_DISKS,
    Phases.COPYING_PAUSED,
    Phases.REMOVE_PREVIOUS_SNAPSHOT,
    Phases.WAIT_FOR_PREVIOUS_SNAPSHOT_REMOVAL,
    Phases.CREATE_SNAPSHOT,
    Phases.WAIT_FOR_SNAPSHOT,
    Phases.STORE_SNAPSHOT_DELTAS,
    Phases.ADD_CHECKPOINT,
})
PRECOPY_LOOP_START_PHASE = Phases.COPY_DISKS
PRECOPY_LOOP_END_PHASE = Phases.ADD_CHECKPOINT


_PHASE_STEPS: Dict[str, str] = {
    Phases.STARTED: PipelineSteps.INITIALIZE,
    Phases.CREATE_INITIAL_SNAPSHOT: PipelineSteps.INITIALIZE,
    Phases.WAIT_FOR_INITIAL_SNAPSHOT: PipelineSteps.INITIALIZE,
    Phases.STORE_INITIAL_SNAPSHOT_DELTAS: PipelineSteps.INITIALIZE,
    Phases.CREATE_DATA_VOLUMES: PipelineSteps.INITIALIZE,
    Phases.WAIT_FOR_DATA_VOLUMES_STATUS: PipelineSteps.INITIALIZE,
    Phases.ALLOCATE_DISKS: PipelineSteps.DISK_ALLOCATION,
    Phases.COPY_DISKS: PipelineSteps.DISK_TRANSFER,
    Phases.COPYING_PAUSED: PipelineSteps.DISK_TRANSFER,
    Phases.REMOVE_PREVIOUS_SNAPSHOT: PipelineSteps.DISK_TRANSFER,
    Phases.WAIT_FOR_PREVIOUS_SNAPSHOT_REMOVAL: PipelineSteps.DISK_TRANSFER,
    Phases.CREATE_SNAPSHOT: PipelineSteps.DISK_TRANSFER,
    Phases.WAIT_FOR_SNAPSHOT: PipelineSteps.DISK_TRANSFER,
    Phases.STORE_SNAPSHOT_DELTAS: PipelineSteps.DISK_TRANSFER,
    Phases.ADD_CHECKPOINT: PipelineSteps.DISK_TRANSFER,
    Phases.CONVERT_OPENSTACK_SNAPSHOT: PipelineSteps.DISK_TRANSFER,
    Phases.REMOVE_PENULTIMATE_SNAPSHOT: PipelineSteps.CUTOVER,
    Phases.WAIT_FOR_PENULTIMATE_SNAPSHOT_REMOVAL: PipelineSteps.CUTOVER,
    Phases.CREATE_FINAL_SNAPSHOT: PipelineSteps.CUTOVER,
    Phases.WAIT_FOR_FINAL_SNAPSHOT: PipelineSteps.CUTOVER,
    Phases.WAIT_FOR_FINAL_DATA_VOLUMES_STATUS: PipelineSteps.CUTOVER,
    Phases.ADD_FINAL_CHECKPOINT: PipelineSteps.CUTOVER,
    Phases.FINALIZE: PipelineSteps.CUTOVER,
    Phases.REMOVE_FINAL_SNAPSHOT: PipelineSteps.CUTOVER,
    Phases.WAIT_FOR_FINAL_SNAPSHOT_REMOVAL: PipelineSteps.CUTOVER,
    Phases.CREATE_GUEST_CONVERSION_POD: PipelineSteps.IMAGE_CONVERSION,
    Phases.CONVERT_GUEST: PipelineSteps.IMAGE_CONVERSION,
    Phases.COPY_DISKS_VIRT_V2V: PipelineSteps.DISK_TRANSFER_V2V,
    Phases.CREATE_VM: PipelineSteps.VM_CREATION,
    Phases.COMPLETED: PipelineSteps.VM_CREATION,
    Phases.PREFLIGHT_INSPECTION: PipelineSteps.PREFLIGHT_INSPECTION,
}

# Power-off phases belong to cutover in warm migrations, to initialization otherwise
_POWER_PHASES = frozenset({
    Phases.STORE_POWER_STATE,
    Phases.POWER_OFF_SOURCE,
    Phases.WAIT_FOR_POWER_OFF,
})


def phase_to_step(phase: str, is_warm: bool) -> str:
    """Map a controller phase to the pipeline step it belongs to."""
    if phase in (Phases.PRE_HOOK, Phases.POST_HOOK):
        return phase
    if phase in _POWER_PHASES:
        return PipelineSteps.CUTOVER if is_warm else PipelineSteps.INITIALIZE
    return _PHASE_STEPS.get(phase, PipelineSteps.UNKNOWN)


# Pipeline step names as written in Plan YAML status
YAML_STEP_NAMES: Dict[str, str] = {
    "Initialize": PipelineSteps.INITIALIZE,
    "PreflightInspection": PipelineSteps.PREFLIGHT_INSPECTION,
    "DiskAllocation": PipelineSteps.DISK_ALLOCATION,
    "DiskTransfer": PipelineSteps.DISK_TRANSFER,
    "DiskTransferV2v": PipelineSteps.DISK_TRANSFER_V2V,
    "Cutover": PipelineSteps.CUTOVER,
    "ImageConversion": PipelineSteps.IMAGE_CONVERSION,
    "VirtualMachineCreation": PipelineSteps.VM_CREATION,
}


class ConditionStatus:
    TRUE = "True"
    FALSE = "False"


# Plan-controller message markers
MSG_ARCHIVED = "Aborting reconcile of archived plan"
MSG_SUCCEEDED_SKIP = "Skipping reconcile of succeeded plan"
MSG_MIGRATION_STARTED = "Migration [STARTED]"
MSG_MIGRATION_SUCCEEDED = "Migration [SUCCEEDED]"
MSG_MIGRATION_RUN = "Migration [RUN]"
MSG_SET_CHECKPOINT = "SetCheckpoint"
MSG_ITINERARY_TRANSITION = "Itinerary transition"
MSG_CONDITION_ADDED = "Condition added"
MSG_CONDITION_DELETED = "Condition deleted"
MSG_DATAVOLUME_CREATED = "Created DataVolume."
MSG_ACTIVE_MIGRATION = "Found (active) migration"
MSG_RECONCILE_FAILED = "Reconcile failed"
MSG_OBSERVED_PANIC = "Observed a panic"
MSG_RECONCILER_ERROR = "Reconciler error"
TRANSIENT_ERROR_MARKER = "connection refused"

PLAN_LOGGER_PREFIX = "plan|"
SCHEDULER_MARKER = "scheduler"

# Panic trace markers
PANIC_PREFIX = "panic:"
GOROUTINE_PREFIX = "goroutine "
RECOVERED_SUFFIX = " [recovered]"
RECOVERY_STACKTRACE_HEADER = "--- Recovery Stacktrace ---"

# Leading container-runtime timestamp, e.g. "2026-02-05T12:00:00.123Z {...}"
CONTAINER_PREFIX_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2}))\s+(.*)$"
)

# VM reference rendered as a string: "id:vm-1002 name:'rhel9'"
VM_REF_RE = re.compile(r"id:(\S+)\s+name:'([^']*)'")

# Single-resource creation messages and the record field carrying the name
CREATED_RESOURCE_FIELDS: Dict[str, Tuple[str, str]] = {
    "Secret created.": ("Secret", "secret"),
    "ConfigMap created.": ("ConfigMap", "configMap"),
    "Pod created.": ("Pod", "pod"),
    "VirtualMachine created.": ("VirtualMachine", "virtualMachine"),
    "PVC created.": ("PVC", "pvc"),
}
GENERIC_CREATED_RE = re.compile(r"^Created (\w+)\.?$")

# Tool-log members: namespaces/<ns>/pods/<plan>-vm-<n>-<suffix>/...
TOOL_LOG_PATH_RE = re.compile(r"pods/([a-z0-9][a-z0-9.-]*?)-(vm-\d+)-[a-z0-9]+/")

YAML_KIND_RE_TEMPLATE = r"kind:\s*{kind}\b"
