"""Panic capture from structured records and free-text stack traces."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import (
    PlanStatuses,
    PANIC_PREFIX,
    RECOVERED_SUFFIX,
    RECOVERY_STACKTRACE_HEADER,
)
from .entity_store import EntityStore
from .models import Event, PanicEntry, Plan
from .records import message_of
from .utils import timestamp_string, truncate
from ..utils.logger import get_logger
from ..utils.validators import get_string_from_map, validate_resource_ref

logger = get_logger("panics")


def panic_message(record: Dict[str, Any]) -> str:
    """The ``panic`` field, else the text after the first ': ' of ``msg``."""
    message = get_string_from_map(record, "panic")
    if message:
        return message
    msg = message_of(record)
    idx = msg.find(": ")
    return msg[idx + 2:] if idx > 0 else msg


def recovered_panic_message(error: str) -> str:
    """Extract the inner message of a ``panic: ... [recovered]`` error text."""
    idx = error.find(PANIC_PREFIX + " ")
    if idx < 0:
        return error
    message = error[idx + len(PANIC_PREFIX) + 1:]
    end = message.find(RECOVERED_SUFFIX)
    return message[:end] if end > 0 else message


class PanicProcessor:
    """Groups panics per plan across the three capture paths."""

    def __init__(self, store: EntityStore, description_max: int = 100):
        self.store = store
        self.description_max = description_max

    def _object_plan(self, record: Dict[str, Any]) -> Optional[Plan]:
        ref = validate_resource_ref(record.get("object"))
        if ref is None:
            return None
        namespace, name = ref
        return self.store.get_or_create_plan(namespace, name)

    def process_panic_observed(self, record: Dict[str, Any], ts: datetime, raw_line: str) -> None:
        plan = self._object_plan(record)
        if plan is None:
            return
        plan.status = PlanStatuses.FAILED

        message = panic_message(record)
        stacktrace = get_string_from_map(record, "stacktrace")
        existing = next((p for p in plan.panics if p.message == message), None)

        if existing is not None:
            existing.count += 1
            existing.timestamp = ts
            existing.raw_lines.append(raw_line)
            if stacktrace and len(stacktrace) > len(existing.stacktrace or ""):
                existing.stacktrace = stacktrace
        else:
            plan.panics.append(PanicEntry(
                timestamp=ts,
                message=message,
                controller=record.get("controller") or None,
                reconcile_id=record.get("reconcileID") or None,
                stacktrace=stacktrace or None,
                raw_lines=[raw_line] if raw_line else [],
            ))

        self.store.add_event(Event(
            timestamp=timestamp_string(record.get("ts"), ts),
            type="panic",
            plan_name=plan.name,
            namespace=plan.namespace,
            description=f"Panic: {truncate(message, self.description_max)}",
        ))

    def process_reconciler_error(self, record: Dict[str, Any], ts: datetime, raw_line: str) -> None:
        plan = self._object_plan(record)
        if plan is None:
            return
        error = get_string_from_map(record, "error")
        if PANIC_PREFIX not in error:
            return
        plan.status = PlanStatuses.FAILED

        message = recovered_panic_message(error)
        stacktrace = get_string_from_map(record, "stacktrace")

        for existing in plan.panics:
            if message in existing.message or existing.message in message:
                existing.raw_lines.append(raw_line)
                if stacktrace and stacktrace != existing.stacktrace:
                    if existing.stacktrace:
                        existing.stacktrace = (
                            f"{existing.stacktrace}\n\n{RECOVERY_STACKTRACE_HEADER}\n{stacktrace}"
                        )
                    else:
                        existing.stacktrace = stacktrace
                return

        plan.panics.append(PanicEntry(
            timestamp=ts,
            message=message,
            controller=record.get("controller") or None,
            reconcile_id=record.get("reconcileID") or None,
            stacktrace=stacktrace or None,
            raw_lines=[raw_line] if raw_line else [],
        ))

    def attach_stacktrace(self, plan: Optional[Plan], lines: List[str]) -> None:
        """Attach free-text trace lines to the plan's latest panic."""
        if plan is None or not lines:
            if lines:
                logger.debug(f"Dropping {len(lines)} panic trace lines with no plan to own them")
            return

        stacktrace = "\n".join(lines)
        if plan.panics:
            last = plan.panics[-1]
            last.stacktrace = stacktrace
            last.raw_lines.extend(lines)
            return

        message = "Unknown panic"
        if lines[0].startswith(PANIC_PREFIX + " "):
            message = lines[0][len(PANIC_PREFIX) + 1:]
        plan.panics.append(PanicEntry(
            timestamp=plan.last_seen,
            message=message,
            stacktrace=stacktrace,
            raw_lines=list(lines),
        ))
        plan.status = PlanStatuses.FAILED
