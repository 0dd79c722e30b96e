"""
Traveler Document Guards: preconditions checked before a document is changed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from traveler.documents.models import ShareableDocument
from traveler.engine.context import Principal
from traveler.engine.errors import BadRequestError
from traveler.security.access import require_owner

logger = logging.getLogger("traveler.workflow.guards")


def require_status(doc: ShareableDocument, allowed: Iterable[float]) -> None:
    """Raise BadRequestError unless the document's status is one of ``allowed``."""
    allowed = {float(s) for s in allowed}
    if doc.status not in allowed:
        raise BadRequestError(
            f"request is not allowed for item {doc.id} status {doc.status:g}",
            doc_id=doc.id, doc_kind=doc.kind.value,
        )


def require_archived(doc: ShareableDocument, archived: bool) -> None:
    """Raise BadRequestError unless ``doc.archived`` equals ``archived``."""
    if doc.archived != archived:
        raise BadRequestError(
            f"request is not allowed for item {doc.id} archived {str(doc.archived).lower()}",
            doc_id=doc.id, doc_kind=doc.kind.value,
        )


def set_archived(doc: ShareableDocument, archived: bool, principal: Optional[Principal] = None) -> bool:
    """
    Owner-only archive toggle. Stamps archived_on when archiving.

    Returns:
        False when the flag is unchanged.
    """
    principal = require_owner(doc, principal)
    if doc.archived == archived:
        return False
    doc.archived = archived
    if archived:
        doc.archived_on = datetime.now(timezone.utc)
    doc.touch(principal.id)
    logger.info(f"{doc.kind.value} {doc.id} archived={archived} by {principal.id}")
    return True
