"""Warm-migration precopy tracking."""

from typing import Any, Dict, List, Optional

from .constants import (
    PRECOPY_LOOP_PHASES,
    PRECOPY_LOOP_START_PHASE,
    PRECOPY_LOOP_END_PHASE,
)
from .models import PhaseInfo, PrecopyInfo, WarmInfo
from .utils import parse_timestamp, duration_ms


def next_iteration(phase_history: List[PhaseInfo], phase: str) -> Optional[int]:
    """
    Iteration number for a new PhaseInfo, or None outside the precopy loop.

    The loop start phase opens a new iteration; the others continue the
    current one, defaulting to 1.
    """
    if phase not in PRECOPY_LOOP_PHASES:
        return None
    current = max(
        (ph.iteration for ph in phase_history
         if ph.name in PRECOPY_LOOP_PHASES and ph.iteration),
        default=0,
    )
    if phase == PRECOPY_LOOP_START_PHASE:
        return current + 1
    return current or 1


def count_failures(precopies: List[PrecopyInfo]) -> int:
    """Attempts without an end, excluding a trailing one still in progress."""
    successes = sum(1 for p in precopies if p.ended_at is not None)
    in_progress = 1 if precopies and precopies[-1].ended_at is None else 0
    return max(0, len(precopies) - successes - in_progress)


def warm_info_from_checkpoint(precopies: List[Dict[str, Any]]) -> Optional[WarmInfo]:
    """Rebuild warm info from the full precopy list of a SetCheckpoint record."""
    if not precopies:
        return None

    infos: List[PrecopyInfo] = []
    for index, raw in enumerate(precopies, start=1):
        if not isinstance(raw, dict):
            raw = {}
        started = parse_timestamp(raw["start"]) if raw.get("start") else None
        ended = parse_timestamp(raw["end"]) if raw.get("end") else None
        disks = [
            delta.get("disk") for delta in raw.get("deltas") or []
            if isinstance(delta, dict) and delta.get("disk")
        ]
        infos.append(PrecopyInfo(
            iteration=index,
            snapshot=raw.get("snapshot") or "unknown",
            disks=disks,
            started_at=started,
            ended_at=ended,
            duration_ms=duration_ms(started, ended) if started and ended else None,
        ))

    return WarmInfo(
        precopies=infos,
        successes=sum(1 for p in infos if p.ended_at is not None),
        failures=count_failures(infos),
    )


def warm_info_from_phase_history(phase_history: List[PhaseInfo]) -> Optional[WarmInfo]:
    """Derive warm info by grouping loop phases on their iteration number."""
    iterations: Dict[int, List[PhaseInfo]] = {}
    for ph in phase_history:
        if ph.name in PRECOPY_LOOP_PHASES and ph.iteration:
            iterations.setdefault(ph.iteration, []).append(ph)
    if not iterations:
        return None

    ordered = sorted(iterations)
    last_iteration = ordered[-1]
    precopies: List[PrecopyInfo] = []
    successes = failures = 0

    for iteration in ordered:
        phases = iterations[iteration]
        started = min(ph.started_at for ph in phases)
        ends = [ph.ended_at for ph in phases if ph.ended_at is not None]
        ended = max(ends) if ends else None
        all_closed = len(ends) == len(phases)

        if any(ph.name == PRECOPY_LOOP_END_PHASE and ph.ended_at for ph in phases):
            successes += 1
        elif (any(ph.name == PRECOPY_LOOP_START_PHASE for ph in phases)
              and not all_closed and iteration < last_iteration):
            failures += 1

        precopies.append(PrecopyInfo(
            iteration=iteration,
            snapshot=f"iteration-{iteration}",
            started_at=started,
            ended_at=ended,
            duration_ms=duration_ms(started, ended) if ended else None,
        ))

    return WarmInfo(precopies=precopies, successes=successes, failures=failures)
