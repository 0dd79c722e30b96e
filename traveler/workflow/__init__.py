"""Traveler Workflow: status lifecycles, guards, binder works and progress roll-up."""

from traveler.workflow.binder import BinderService
from traveler.workflow.guards import require_archived, require_status, set_archived
from traveler.workflow.progress import initial_work, recompute_binder_totals, update_work_progress
from traveler.workflow.status import (
    set_binder_status,
    set_form_status,
    set_status,
    set_traveler_status,
)

__all__ = [
    "BinderService",
    "initial_work",
    "recompute_binder_totals",
    "require_archived",
    "require_status",
    "set_archived",
    "set_binder_status",
    "set_form_status",
    "set_status",
    "set_traveler_status",
    "update_work_progress",
]
