"""Classification of decoded controller log records."""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .constants import (
    MSG_ARCHIVED,
    MSG_SUCCEEDED_SKIP,
    MSG_MIGRATION_STARTED,
    MSG_MIGRATION_SUCCEEDED,
    MSG_MIGRATION_RUN,
    MSG_SET_CHECKPOINT,
    MSG_ITINERARY_TRANSITION,
    MSG_CONDITION_ADDED,
    MSG_CONDITION_DELETED,
    MSG_DATAVOLUME_CREATED,
    MSG_ACTIVE_MIGRATION,
    MSG_OBSERVED_PANIC,
    MSG_RECONCILER_ERROR,
    PLAN_LOGGER_PREFIX,
    SCHEDULER_MARKER,
)
from ..utils.validators import get_string_from_map, validate_resource_ref


class RecordKind(Enum):
    """Top-level route for a decoded record."""
    PANIC_OBSERVED = "panic_observed"
    RECONCILER_ERROR = "reconciler_error"
    PLAN = "plan"
    SCHEDULER = "scheduler"
    IGNORED = "ignored"


class PlanMessage(Enum):
    """What a plan-controller record means for its Plan or VM."""
    ARCHIVED = "archived"
    SUCCEEDED_SKIP = "succeeded_skip"
    MIGRATION_STARTED = "migration_started"
    MIGRATION_SUCCEEDED = "migration_succeeded"
    MIGRATION_RUN = "migration_run"
    SET_CHECKPOINT = "set_checkpoint"
    ITINERARY_TRANSITION = "itinerary_transition"
    CONDITION_ADDED = "condition_added"
    CONDITION_DELETED = "condition_deleted"
    DATAVOLUME_CREATED = "datavolume_created"
    RESOURCE_CREATED = "resource_created"
    ERROR = "error"
    ACTIVE_MIGRATION = "active_migration"
    OTHER = "other"


def message_of(record: Dict[str, Any]) -> str:
    return get_string_from_map(record, "msg")


def plan_ref(record: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    """(namespace, name) from the record's ``plan`` object, if complete."""
    return validate_resource_ref(record.get("plan"))


def classify_record(record: Dict[str, Any]) -> RecordKind:
    msg = message_of(record)
    logger_name = get_string_from_map(record, "logger")

    if MSG_OBSERVED_PANIC in msg:
        return RecordKind.PANIC_OBSERVED
    if msg == MSG_RECONCILER_ERROR and record.get("controller"):
        return RecordKind.RECONCILER_ERROR
    if logger_name.startswith(PLAN_LOGGER_PREFIX):
        return RecordKind.PLAN
    if not logger_name and plan_ref(record) is not None:
        return RecordKind.PLAN
    if SCHEDULER_MARKER in msg or SCHEDULER_MARKER in logger_name:
        return RecordKind.SCHEDULER
    return RecordKind.IGNORED


def classify_plan_message(record: Dict[str, Any], has_vm: bool) -> PlanMessage:
    """Pick the first matching message kind, in precedence order."""
    msg = message_of(record)

    if MSG_ARCHIVED in msg:
        return PlanMessage.ARCHIVED
    if MSG_SUCCEEDED_SKIP in msg:
        return PlanMessage.SUCCEEDED_SKIP
    if msg == MSG_MIGRATION_STARTED:
        return PlanMessage.MIGRATION_STARTED
    if msg == MSG_MIGRATION_SUCCEEDED:
        return PlanMessage.MIGRATION_SUCCEEDED
    if msg == MSG_MIGRATION_RUN and has_vm:
        return PlanMessage.MIGRATION_RUN
    if msg == MSG_SET_CHECKPOINT and has_vm:
        return PlanMessage.SET_CHECKPOINT
    if msg == MSG_ITINERARY_TRANSITION:
        return PlanMessage.ITINERARY_TRANSITION
    if msg.startswith(MSG_CONDITION_ADDED):
        return PlanMessage.CONDITION_ADDED
    if msg.startswith(MSG_CONDITION_DELETED):
        return PlanMessage.CONDITION_DELETED
    if msg == MSG_DATAVOLUME_CREATED and record.get("dv"):
        return PlanMessage.DATAVOLUME_CREATED
    if "created." in msg or msg.startswith("Created "):
        return PlanMessage.RESOURCE_CREATED
    if record.get("level") == "error" and record.get("error"):
        return PlanMessage.ERROR
    if MSG_ACTIVE_MIGRATION in msg:
        return PlanMessage.ACTIVE_MIGRATION
    return PlanMessage.OTHER
