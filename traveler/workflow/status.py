"""
Traveler Status Lifecycle Validator: legal status changes per document kind.

    Form:     0 → 0.5 → 1 → 2,  0.5 → 0
    Traveler: 0 → 1 → 1.5 → 2,  1 → 3,  {0, 1.5, 3} → 1
    Binder:   0 → 1 → 2,  2 → 1

Each table maps a requestable target status to the statuses it may be
reached from. A target outside the table is an invalid status; a target
inside it reached from elsewhere is an invalid transition. Requesting the
current status succeeds without touching the document.

Forms and binders are changed by their owner. Travelers can be submitted
for completion (1.5) by any writer; every other traveler change is owner
only, and archived travelers are frozen.

The functions mutate the document in memory; callers save it when they
return True.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional, Union

from traveler.documents.models import (
    Binder,
    BinderStatus,
    DocumentKind,
    Form,
    FormStatus,
    ShareableDocument,
    Traveler,
    TravelerStatus,
)
from traveler.engine.context import Principal
from traveler.engine.errors import BadRequestError, InvalidStatusError, InvalidTransitionError
from traveler.engine.logging import log, log_status_change
from traveler.security.access import require_owner, require_write

logger = logging.getLogger("traveler.workflow.status")

# target → allowed current statuses
FORM_TRANSITIONS: Dict[float, FrozenSet[float]] = {
    FormStatus.EDITABLE.value: frozenset({FormStatus.READY.value}),
    FormStatus.READY.value: frozenset({FormStatus.EDITABLE.value}),
    FormStatus.PUBLISHED.value: frozenset({FormStatus.READY.value}),
    FormStatus.OBSOLETE.value: frozenset({FormStatus.PUBLISHED.value}),
}

TRAVELER_TRANSITIONS: Dict[float, FrozenSet[float]] = {
    TravelerStatus.ACTIVE.value: frozenset({
        TravelerStatus.INITIALIZED.value,
        TravelerStatus.SUBMITTED.value,
        TravelerStatus.FROZEN.value,
    }),
    TravelerStatus.SUBMITTED.value: frozenset({TravelerStatus.ACTIVE.value}),
    TravelerStatus.COMPLETED.value: frozenset({TravelerStatus.SUBMITTED.value}),
    TravelerStatus.FROZEN.value: frozenset({TravelerStatus.ACTIVE.value}),
}

BINDER_TRANSITIONS: Dict[float, FrozenSet[float]] = {
    BinderStatus.ACTIVE.value: frozenset({BinderStatus.NEW.value, BinderStatus.COMPLETED.value}),
    BinderStatus.COMPLETED.value: frozenset({BinderStatus.ACTIVE.value}),
}

TRANSITIONS: Dict[DocumentKind, Dict[float, FrozenSet[float]]] = {
    DocumentKind.FORM: FORM_TRANSITIONS,
    DocumentKind.TRAVELER: TRAVELER_TRANSITIONS,
    DocumentKind.BINDER: BINDER_TRANSITIONS,
}


def _coerce_status(status: Union[float, int, str]) -> float:
    if isinstance(status, bool):
        raise InvalidStatusError("invalid status")
    try:
        return float(status)
    except (TypeError, ValueError):
        raise InvalidStatusError("invalid status") from None


def is_legal_transition(kind: DocumentKind, current: float, target: float) -> bool:
    return current in TRANSITIONS[kind].get(target, frozenset())


def _apply(
    doc: ShareableDocument,
    target: float,
    principal: Principal,
    check_owner: bool,
) -> bool:
    table = TRANSITIONS[doc.kind]
    if target not in table:
        raise InvalidStatusError(
            "invalid status", doc_id=doc.id, doc_kind=doc.kind.value, target=target
        )
    if doc.status == target:
        return False
    if check_owner:
        require_owner(doc, principal)
    if doc.status not in table[target]:
        raise InvalidTransitionError(
            f"invalid status change from {doc.status:g} to {target:g}",
            doc_id=doc.id, doc_kind=doc.kind.value,
            current=doc.status, target=target,
        )

    previous = doc.status
    doc.status = target
    doc.touch(principal.id)
    log(log_status_change(doc.kind.value, doc.id, previous, target, user_id=principal.id))
    logger.info(f"{doc.kind.value} {doc.id} status {previous:g} -> {target:g} by {principal.id}")
    return True


def set_form_status(form: Form, status: Union[float, str], principal: Optional[Principal] = None) -> bool:
    """Owner-only. Returns True if the status changed."""
    principal = require_owner(form, principal)
    return _apply(form, _coerce_status(status), principal, check_owner=False)


def set_traveler_status(
    traveler: Traveler,
    status: Union[float, str],
    principal: Optional[Principal] = None,
) -> bool:
    """
    Writers may submit (1.5); everything else needs the owner.

    Raises:
        BadRequestError if the traveler is archived.
    """
    principal = require_write(traveler, principal)
    if traveler.archived:
        raise BadRequestError(
            "the traveler is archived.", doc_id=traveler.id, doc_kind=traveler.kind.value
        )
    target = _coerce_status(status)
    return _apply(
        traveler, target, principal,
        check_owner=target != TravelerStatus.SUBMITTED.value,
    )


def set_binder_status(binder: Binder, status: Union[float, str], principal: Optional[Principal] = None) -> bool:
    """Owner-only. Returns True if the status changed."""
    principal = require_owner(binder, principal)
    return _apply(binder, _coerce_status(status), principal, check_owner=False)


def set_status(
    doc: ShareableDocument,
    status: Union[float, str],
    principal: Optional[Principal] = None,
) -> bool:
    """Dispatch on the document kind."""
    if doc.kind is DocumentKind.FORM:
        return set_form_status(doc, status, principal)
    if doc.kind is DocumentKind.TRAVELER:
        return set_traveler_status(doc, status, principal)
    return set_binder_status(doc, status, principal)
