"""
Traveler Access Resolver: per-document access-control decisions.

Resolution order (first match wins):
    1. public_access == WRITE                           → WRITE
    2. principal is creator and no owner is set         → WRITE
    3. principal is owner                               → WRITE
    4. principal has an entry in shared_with            → entry access
    5. principal is in a shared group with WRITE        → WRITE
    6. principal is in any shared group                 → READ
    7. public_access == READ                            → READ
    8. otherwise                                        → NO_ACCESS

The resolver is pure; the ``require_*`` helpers add the raise-and-audit
behaviour route handlers need.
"""

from __future__ import annotations

import logging
from typing import Optional

from traveler.documents.models import AccessLevel, ShareableDocument, ShareListKind
from traveler.engine.context import Principal, get_current_principal
from traveler.engine.errors import UnauthorizedError
from traveler.engine.logging import log, log_access_denied

logger = logging.getLogger("traveler.security.access")


def resolve_access(principal: Principal, doc: ShareableDocument) -> AccessLevel:
    """Return the effective access of ``principal`` on ``doc``."""
    if doc.public_access == AccessLevel.WRITE:
        return AccessLevel.WRITE
    if doc.created_by == principal.id and not doc.owner:
        return AccessLevel.WRITE
    if doc.owner and doc.owner == principal.id:
        return AccessLevel.WRITE

    entry = doc.find_shared(ShareListKind.USERS, principal.id)
    if entry is not None:
        return entry.access

    groups = {g.lower() for g in principal.groups}
    if groups and doc.shared_group:
        member_entries = [e for e in doc.shared_group if e.id.lower() in groups]
        if any(e.access == AccessLevel.WRITE for e in member_entries):
            return AccessLevel.WRITE
        if member_entries:
            return AccessLevel.READ

    if doc.public_access == AccessLevel.READ:
        return AccessLevel.READ
    return AccessLevel.NO_ACCESS


def can_write(principal: Principal, doc: ShareableDocument) -> bool:
    return resolve_access(principal, doc) == AccessLevel.WRITE


def can_read(principal: Principal, doc: ShareableDocument) -> bool:
    return resolve_access(principal, doc) != AccessLevel.NO_ACCESS


def is_owner(principal: Principal, doc: ShareableDocument) -> bool:
    if doc.created_by == principal.id and not doc.owner:
        return True
    return bool(doc.owner) and doc.owner == principal.id


# ---------------------------------------------------------------------------
# Enforcement
# ---------------------------------------------------------------------------

def _principal_or_current(principal: Optional[Principal], doc: ShareableDocument) -> Principal:
    if principal is not None:
        return principal
    current = get_current_principal()
    if current is None:
        raise UnauthorizedError(
            "No authenticated principal",
            doc_id=doc.id, doc_kind=doc.kind.value,
        )
    return current


def _deny(principal: Principal, doc: ShareableDocument, required: str) -> UnauthorizedError:
    granted = resolve_access(principal, doc)
    log(log_access_denied(
        doc_kind=doc.kind.value,
        doc_id=doc.id,
        user_id=principal.id,
        user_groups=sorted(principal.groups),
        required=required,
        granted=granted.name,
    ))
    logger.info(f"{principal.id} denied {required} on {doc.kind.value} {doc.id}")
    return UnauthorizedError(
        f"You are not authorized to access this {doc.kind.value}",
        doc_id=doc.id,
        doc_kind=doc.kind.value,
        principal_id=principal.id,
        required=required,
    )


def require_read(doc: ShareableDocument, principal: Optional[Principal] = None) -> Principal:
    """Raise UnauthorizedError unless the principal can read ``doc``."""
    principal = _principal_or_current(principal, doc)
    if not can_read(principal, doc):
        raise _deny(principal, doc, "READ")
    return principal


def require_write(doc: ShareableDocument, principal: Optional[Principal] = None) -> Principal:
    """Raise UnauthorizedError unless the principal can write ``doc``."""
    principal = _principal_or_current(principal, doc)
    if not can_write(principal, doc):
        raise _deny(principal, doc, "WRITE")
    return principal


def require_owner(doc: ShareableDocument, principal: Optional[Principal] = None) -> Principal:
    """Raise UnauthorizedError unless the principal owns ``doc``."""
    principal = _principal_or_current(principal, doc)
    if not is_owner(principal, doc):
        raise _deny(principal, doc, "OWNER")
    return principal
