"""
Traveler Ownership Transfer: reassign a document to another user.

The target is resolved by display name in the directory (exactly one entry
expected); the document is only mutated once resolution succeeds.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from traveler.directory.client import Directory, entry_value
from traveler.documents.models import ShareableDocument
from traveler.documents.store import DocumentStore
from traveler.engine.context import Principal
from traveler.engine.errors import BadRequestError
from traveler.engine.logging import log, log_owner_change
from traveler.security.access import require_owner

logger = logging.getLogger("traveler.security.ownership")


class OwnershipService:
    def __init__(self, documents: DocumentStore, directory: Directory):
        self._documents = documents
        self._directory = directory

    async def change_owner(
        self,
        doc: ShareableDocument,
        target_name: str,
        principal: Optional[Principal] = None,
    ) -> str:
        """
        Transfer ownership of ``doc`` to the user named ``target_name``.

        When ``principal`` is given it must be the current owner.

        Returns:
            The owner id (unchanged when the target already owns the document).

        Raises:
            NotFoundError / AmbiguousError from the directory lookup,
            UnauthorizedError when ``principal`` is not the owner.
        """
        if principal is not None:
            require_owner(doc, principal)
        if not target_name:
            raise BadRequestError("owner name is empty.", doc_id=doc.id, doc_kind=doc.kind.value)

        entry = await self._directory.find_user_by_name(target_name)
        owner_id = (entry_value(entry, "sAMAccountName") or "").lower()
        if not owner_id:
            raise BadRequestError(f"directory entry for {target_name} has no account name.")

        if doc.owner == owner_id:
            return owner_id

        previous = doc.effective_owner
        doc.owner = owner_id
        doc.transferred_on = datetime.now(timezone.utc)
        await self._documents.save(doc)

        log(log_owner_change(
            doc.kind.value, doc.id, previous, owner_id,
            user_id=principal.id if principal else None,
        ))
        logger.info(f"Owner of {doc.kind.value} {doc.id} changed to {owner_id}")
        return owner_id
