"""
Traveler Binder Service: work items of a binder and progress propagation.

Works are added / removed / edited only while the binder is new or active
(status 0 or 1) and by principals with write access. Every change to a
work's progress or value is followed by a totals recompute, and the binder
is saved only when something actually changed.

When a traveler or binder changes, ``propagate`` walks up through every
binder that holds it as a work so the roll-up stays current.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from traveler.documents.models import (
    Binder,
    BinderStatus,
    DocumentKind,
    ProgressSnapshot,
    Traveler,
    WorkItem,
    WorkRefType,
)
from traveler.documents.store import DocumentStore
from traveler.engine.context import Principal
from traveler.engine.dispatch import BestEffortDispatcher
from traveler.engine.errors import BadRequestError, NotFoundError
from traveler.security.access import require_write
from traveler.workflow.guards import require_status
from traveler.workflow.progress import initial_work, recompute_binder_totals

logger = logging.getLogger("traveler.workflow.binder")

EDITABLE_WORK_PROPERTIES = ("alias", "priority", "sequence", "value", "color")

_EDITABLE_BINDER_STATUSES = (BinderStatus.NEW.value, BinderStatus.ACTIVE.value)

_REF_KINDS = {
    WorkRefType.TRAVELER: DocumentKind.TRAVELER,
    WorkRefType.BINDER: DocumentKind.BINDER,
}


def _ref_type(ref_type: Union[str, WorkRefType]) -> WorkRefType:
    try:
        return WorkRefType(ref_type)
    except ValueError:
        raise BadRequestError(f"unknown work type '{ref_type}'") from None


class BinderService:
    """
    Usage:
        binders = BinderService(documents, dispatcher)
        added = await binders.add_works(binder, "traveler", [t1.id, t2.id], principal)
        await binders.propagate(traveler)
    """

    def __init__(self, documents: DocumentStore, dispatcher: BestEffortDispatcher):
        self._documents = documents
        self._dispatcher = dispatcher

    # -------------------------------------------------------------------
    # Work management
    # -------------------------------------------------------------------

    async def add_works(
        self,
        binder: Binder,
        ref_type: Union[str, WorkRefType],
        ids: Iterable[str],
        principal: Optional[Principal] = None,
    ) -> List[str]:
        """
        Attach travelers or binders as works.

        The binder itself and already attached ids are skipped; unknown ids
        are ignored.

        Returns:
            The ids that were added (empty → nothing saved).
        """
        principal = require_write(binder, principal)
        require_status(binder, _EDITABLE_BINDER_STATUSES)
        work_type = _ref_type(ref_type)
        ids = list(ids)
        if not ids:
            return []

        items = await self._documents.find_many(_REF_KINDS[work_type], ids)
        added: List[str] = []
        for item in items:
            if work_type is WorkRefType.BINDER and item.id == binder.id:
                continue
            if binder.find_work(item.id) is not None or item.id in added:
                continue
            work = initial_work(ProgressSnapshot.from_document(item), principal.id)
            work.alias = item.title
            binder.works.append(work)
            added.append(item.id)

        if not added:
            return []

        binder.touch(principal.id)
        recompute_binder_totals(binder)
        await self._documents.save(binder)
        logger.info(f"Added {len(added)} {work_type.value} work(s) to binder {binder.id}")
        return added

    async def remove_work(
        self,
        binder: Binder,
        work_id: str,
        principal: Optional[Principal] = None,
    ) -> Binder:
        principal = require_write(binder, principal)
        require_status(binder, _EDITABLE_BINDER_STATUSES)
        work = binder.find_work(work_id)
        if work is None:
            raise NotFoundError(
                f"Work {work_id} not found in the binder.",
                doc_id=binder.id, doc_kind=binder.kind.value, identifier=work_id,
            )
        binder.works.remove(work)
        binder.touch(principal.id)
        recompute_binder_totals(binder)
        await self._documents.save(binder)
        return binder

    async def update_works(
        self,
        binder: Binder,
        updates: Dict[str, Dict[str, Any]],
        principal: Optional[Principal] = None,
    ) -> bool:
        """
        Apply ``{work_id: {property: value}}`` updates.

        Only alias, priority, sequence, value and color can be edited.
        Unknown work ids are skipped.

        Returns:
            True if anything changed (and the binder was saved).
        """
        principal = require_write(binder, principal)
        require_status(binder, _EDITABLE_BINDER_STATUSES)

        # Validate every update before touching the binder
        pending: List[tuple] = []
        for work_id, props in updates.items():
            work = binder.find_work(work_id)
            if work is None:
                continue
            for prop in props:
                if prop not in EDITABLE_WORK_PROPERTIES:
                    raise BadRequestError(
                        f"work property '{prop}' cannot be updated",
                        doc_id=binder.id, doc_kind=binder.kind.value,
                    )
            try:
                candidate = WorkItem.model_validate({**work.model_dump(), **props})
            except ValidationError as e:
                raise BadRequestError(
                    f"invalid update for work {work_id}: {e.errors()[0]['msg']}",
                    doc_id=binder.id, doc_kind=binder.kind.value,
                ) from e
            pending.append((work, candidate, list(props)))

        changed = False
        value_changed = False
        for work, candidate, props in pending:
            for prop in props:
                new_value = getattr(candidate, prop)
                if getattr(work, prop) == new_value:
                    continue
                setattr(work, prop, new_value)
                changed = True
                if prop == "value":
                    value_changed = True

        if not changed:
            return False
        if value_changed:
            recompute_binder_totals(binder)
        binder.touch(principal.id)
        await self._documents.save(binder)
        return True

    # -------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------

    async def refresh_works(self, binder: Binder) -> List[WorkItem]:
        """Reload every child, update the cached progress, save on change."""
        changed = False
        for work_type, kind in _REF_KINDS.items():
            ids = [w.id for w in binder.works if w.ref_type is work_type]
            if not ids:
                continue
            for child in await self._documents.find_many(kind, ids):
                if binder.update_work_progress(ProgressSnapshot.from_document(child)):
                    changed = True

        if recompute_binder_totals(binder):
            changed = True
        if changed:
            await self._documents.save(binder)
        return binder.works

    async def propagate(
        self,
        child: Union[Traveler, Binder],
        _visited: Optional[Set[Tuple[str, str]]] = None,
        _updated: Optional[List[str]] = None,
        _origin: Optional[str] = None,
    ) -> List[str]:
        """
        Push ``child``'s progress into every binder holding it, then into
        their parents in turn.

        Each (binder, work) edge is applied at most once per call, so a binder
        reached along several paths still picks up every child that changed,
        and cycles terminate. The document ``propagate`` starts from is never
        rewritten.

        Returns:
            Ids of the binders that were saved, in first-saved order.
        """
        visited: Set[Tuple[str, str]] = _visited if _visited is not None else set()
        updated: List[str] = _updated if _updated is not None else []
        origin = _origin if _origin is not None else child.id
        snapshot = ProgressSnapshot.from_document(child)

        for parent in await self._documents.binders_containing(child.id):
            if parent.id == origin or (parent.id, child.id) in visited:
                continue
            if any(parent.id == holder for holder, _ in visited):
                # Saved earlier along another path
                parent = await self._documents.get(DocumentKind.BINDER, parent.id)
            visited.add((parent.id, child.id))

            work_changed = parent.update_work_progress(snapshot)
            totals_changed = recompute_binder_totals(parent)
            if not (work_changed or totals_changed):
                continue
            await self._documents.save(parent)
            if parent.id not in updated:
                updated.append(parent.id)
            if totals_changed:
                await self.propagate(parent, visited, updated, origin)
        return updated

    def propagate_later(self, child: Union[Traveler, Binder]) -> bool:
        """Queue ``propagate`` on the best-effort dispatcher."""
        return self._dispatcher.submit(
            f"propagate progress of {child.kind.value} {child.id}", self.propagate, child
        )

