"""
Traveler Work Progress Aggregator: binder progress roll-up.

A work item caches two fractions of its value:
    finished    : share of the child that is completed
    in_progress : share of the child that is under way

Child status 2 (completed) → (1, 0); status 0 (new / initialized) → (0, 0).
Otherwise a traveler child counts only as in progress (finished inputs over
total inputs) and a binder child contributes its own finished / in-progress
ratios. A child with nothing to measure (zero inputs or zero value) counts as
fully in progress, so it reads differently from "not started" and "done".
"""

from __future__ import annotations

from typing import Optional

from traveler.documents.models import Binder, ProgressSnapshot, WorkItem, WorkRefType

COMPLETED = 2.0
NOT_STARTED = 0.0

# Relative tolerance for deciding a recomputed total differs from the stored one
_EPSILON = 1e-9


def _fraction(numerator: float, denominator: float) -> float:
    return min(max(numerator / denominator, 0.0), 1.0)


def update_work_progress(work: WorkItem, snapshot: ProgressSnapshot) -> bool:
    """
    Refresh ``work`` from the child's current state. Mutates in place.

    Returns:
        True if status, finished or in_progress changed.
    """
    if snapshot.status == COMPLETED:
        finished, in_progress = 1.0, 0.0
    elif snapshot.status == NOT_STARTED:
        finished, in_progress = 0.0, 0.0
    elif work.ref_type is WorkRefType.TRAVELER:
        finished = 0.0
        if snapshot.total_input == 0:
            in_progress = 1.0
        else:
            in_progress = _fraction(snapshot.finished_input, snapshot.total_input)
    else:
        if snapshot.total_value == 0:
            finished, in_progress = 0.0, 1.0
        else:
            finished = _fraction(snapshot.finished_value, snapshot.total_value)
            in_progress = _fraction(snapshot.in_progress_value, snapshot.total_value)
            # Keep finished + in_progress <= 1 under rounding
            in_progress = min(in_progress, 1.0 - finished)

    changed = (
        work.status != snapshot.status
        or work.finished != finished
        or work.in_progress != in_progress
    )
    if changed:
        work.status = snapshot.status
        work.finished = finished
        work.in_progress = in_progress
    return changed


def recompute_binder_totals(binder: Binder) -> bool:
    """
    total_value       = Σ value
    finished_value    = Σ value × finished
    in_progress_value = Σ value × in_progress

    Returns:
        True if any total changed, so callers persist only on change.
    """
    total_value = 0.0
    finished_value = 0.0
    in_progress_value = 0.0
    for work in binder.works:
        total_value += work.value
        finished_value += work.value * work.finished
        in_progress_value += work.value * work.in_progress

    changed = (
        not _close(binder.total_value, total_value)
        or not _close(binder.finished_value, finished_value)
        or not _close(binder.in_progress_value, in_progress_value)
    )
    if changed:
        binder.total_value = total_value
        binder.finished_value = finished_value
        binder.in_progress_value = in_progress_value
    return changed


def _close(a: float, b: float) -> bool:
    return abs(a - b) <= _EPSILON * max(1.0, abs(a), abs(b))


def initial_work(snapshot: ProgressSnapshot, added_by: Optional[str], value: float = 10.0) -> WorkItem:
    """A new work item for an attached child, with its current progress."""
    work = WorkItem(
        id=snapshot.id,
        ref_type=snapshot.ref_type,
        added_by=added_by,
        value=value,
    )
    update_work_progress(work, snapshot)
    return work
