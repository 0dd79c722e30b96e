"""
Traveler Share List Manager: add / remove / update sharedWith & sharedGroup.

Lookup order for a new share target:
    users:  local store by display name → directory by name filter
    groups: local store by lower-cased id → directory by group id filter

The document save is the primary write. Updating the principal's
back-reference set (``user.forms`` etc.) is a secondary write submitted to
the best-effort dispatcher: it never fails the share operation, a failure
is only logged.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from traveler.directory.client import Directory, entry_value
from traveler.documents.models import AccessLevel, ShareableDocument, SharedEntry, ShareListKind
from traveler.documents.store import DocumentStore, PrincipalStore
from traveler.engine.context import get_current_principal
from traveler.engine.dispatch import BestEffortDispatcher
from traveler.engine.errors import BadRequestError
from traveler.engine.logging import log, log_share_event

logger = logging.getLogger("traveler.security.share")


def parse_list_kind(kind: Union[str, ShareListKind]) -> ShareListKind:
    """'users' / 'groups' → ShareListKind; anything else is a bad request."""
    try:
        return ShareListKind(kind)
    except ValueError:
        raise BadRequestError(f"unknown share list '{kind}'.") from None


def find_share_index(
    doc: ShareableDocument,
    kind: Union[str, ShareListKind],
    identifier: str,
) -> int:
    """
    Position of an existing entry, -1 when absent.

    Users are matched on the entry's display name, groups on the lower-cased
    group id (the identifiers the share form submits).
    """
    list_kind = parse_list_kind(kind)
    entries = doc.shared_list(list_kind)
    if list_kind is ShareListKind.USERS:
        for i, entry in enumerate(entries):
            if entry.name == identifier:
                return i
        return -1
    group_id = identifier.lower()
    for i, entry in enumerate(entries):
        if entry.id == group_id:
            return i
    return -1


def _requested_access(access: Optional[str]) -> AccessLevel:
    return AccessLevel.WRITE if access == "write" else AccessLevel.READ


def _current_user_id() -> Optional[str]:
    principal = get_current_principal()
    return principal.id if principal else None


class ShareManager:
    """
    Share list operations over the document and principal stores.

    Usage:
        shares = ShareManager(documents, principals, directory, dispatcher)
        entry = await shares.add_share(form, "users", "Alice Smith", access="write")
        removed = await shares.remove_share(form, "users", [entry.id])
    """

    def __init__(
        self,
        documents: DocumentStore,
        principals: PrincipalStore,
        directory: Directory,
        dispatcher: BestEffortDispatcher,
    ):
        self._documents = documents
        self._principals = principals
        self._directory = directory
        self._dispatcher = dispatcher

    # -------------------------------------------------------------------
    # Add
    # -------------------------------------------------------------------

    async def add_share(
        self,
        doc: ShareableDocument,
        kind: Union[str, ShareListKind],
        identifier: str,
        access: Optional[str] = None,
    ) -> SharedEntry:
        """
        Share ``doc`` with a user (by display name) or a group (by id).

        Raises:
            BadRequestError: unknown list, empty identifier or already shared
            NotFoundError / AmbiguousError: directory lookup did not yield one entry
        """
        list_kind = parse_list_kind(kind)
        if not identifier:
            what = "user name" if list_kind is ShareListKind.USERS else "group id"
            raise BadRequestError(f"{what} is empty.", doc_id=doc.id, doc_kind=doc.kind.value)
        if find_share_index(doc, list_kind, identifier) >= 0:
            raise BadRequestError(
                f"{identifier} is already in the {list_kind.value} list.",
                doc_id=doc.id, doc_kind=doc.kind.value,
            )

        if list_kind is ShareListKind.USERS:
            principal_id, name, profile = await self._resolve_user(identifier)
        else:
            principal_id, name, profile = await self._resolve_group(identifier)

        if doc.find_shared(list_kind, principal_id) is not None:
            raise BadRequestError(
                f"{principal_id} is already in the {list_kind.value} list.",
                doc_id=doc.id, doc_kind=doc.kind.value,
            )

        entry = SharedEntry(id=principal_id, name=name, access=_requested_access(access))
        doc.shared_list(list_kind).append(entry)
        await self._documents.save(doc)

        self._dispatcher.submit(
            f"add {doc.kind.value} {doc.id} to {list_kind.value} {principal_id}",
            self._principals.add_reference,
            list_kind, principal_id, doc.kind, doc.id, profile,
        )
        log(log_share_event(
            "share_added", doc.kind.value, doc.id, list_kind.value,
            [principal_id], access=entry.access.name, user_id=_current_user_id(),
        ))
        logger.info(f"{doc.kind.value} {doc.id} shared with {list_kind.value} {principal_id}")
        return entry

    async def _resolve_user(self, name: str):
        local = await self._principals.find_users_by_name(name)
        if local:
            return local[0].id, name, None
        entry = await self._directory.find_user_by_name(name)
        principal_id = (entry_value(entry, "sAMAccountName") or "").lower()
        if not principal_id:
            raise BadRequestError(f"directory entry for {name} has no account name.")
        return principal_id, name, entry

    async def _resolve_group(self, identifier: str):
        group_id = identifier.lower()
        group = await self._principals.get_group(group_id)
        if group is not None:
            return group_id, group.name, None
        entry: Dict[str, Any] = await self._directory.find_group_by_id(group_id)
        return group_id, entry_value(entry, "displayName") or group_id, entry

    # -------------------------------------------------------------------
    # Remove / update
    # -------------------------------------------------------------------

    async def remove_share(
        self,
        doc: ShareableDocument,
        kind: Union[str, ShareListKind],
        ids: Union[str, Iterable[str]],
    ) -> List[str]:
        """
        Remove entries by principal id (a list, or a comma-separated string).

        Returns:
            The ids that were actually removed.

        Raises:
            BadRequestError if none of the ids is in the list.
        """
        list_kind = parse_list_kind(kind)
        if isinstance(ids, str):
            ids = [i for i in ids.split(",") if i]
        ids = list(ids)

        entries = doc.shared_list(list_kind)
        removed: List[str] = []
        for principal_id in ids:
            entry = doc.find_shared(list_kind, principal_id)
            if entry is not None:
                entries.remove(entry)
                removed.append(principal_id)

        if not removed:
            raise BadRequestError(
                f"cannot find {','.join(ids)} in list.",
                doc_id=doc.id, doc_kind=doc.kind.value,
            )

        await self._documents.save(doc)

        for principal_id in removed:
            self._dispatcher.submit(
                f"remove {doc.kind.value} {doc.id} from {list_kind.value} {principal_id}",
                self._principals.remove_reference,
                list_kind, principal_id, doc.kind, doc.id,
            )
        log(log_share_event(
            "share_removed", doc.kind.value, doc.id, list_kind.value,
            removed, user_id=_current_user_id(),
        ))
        return removed

    async def set_share_access(
        self,
        doc: ShareableDocument,
        kind: Union[str, ShareListKind],
        share_id: str,
        access: str,
    ) -> SharedEntry:
        """Change an existing entry to 'read' or 'write'."""
        list_kind = parse_list_kind(kind)
        entry = doc.find_shared(list_kind, share_id)
        if entry is None:
            raise BadRequestError(
                f"cannot find {share_id} in the list.",
                doc_id=doc.id, doc_kind=doc.kind.value,
            )
        if access == "write":
            entry.access = AccessLevel.WRITE
        elif access == "read":
            entry.access = AccessLevel.READ
        else:
            raise BadRequestError(
                f"cannot take the access {access}",
                doc_id=doc.id, doc_kind=doc.kind.value,
            )

        await self._documents.save(doc)

        # Re-add the back-reference in case an earlier best-effort write was lost
        self._dispatcher.submit(
            f"add {doc.kind.value} {doc.id} to {list_kind.value} {share_id}",
            self._principals.add_reference,
            list_kind, share_id, doc.kind, doc.id,
        )
        log(log_share_event(
            "share_access_changed", doc.kind.value, doc.id, list_kind.value,
            [share_id], access=entry.access.name, user_id=_current_user_id(),
        ))
        return entry

    async def set_public_access(self, doc: ShareableDocument, access: Union[int, str]) -> bool:
        """
        Set the public access level from -1 / 0 / 1 (int or string).

        Returns:
            False when the level is unchanged (nothing saved).
        """
        level = _parse_public_access(access)
        if doc.public_access == level:
            return False
        doc.public_access = level
        await self._documents.save(doc)
        log(log_share_event(
            "public_access_changed", doc.kind.value, doc.id, "public",
            [], access=level.name, user_id=_current_user_id(),
        ))
        return True

    @staticmethod
    def list_shares(doc: ShareableDocument, kind: Union[str, ShareListKind]) -> List[SharedEntry]:
        return list(doc.shared_list(parse_list_kind(kind)))


def _parse_public_access(access: Union[int, str]) -> AccessLevel:
    if isinstance(access, bool):
        raise BadRequestError("not valid value")
    if isinstance(access, str):
        if access.strip() not in ("-1", "0", "1"):
            raise BadRequestError("not valid value")
        return AccessLevel(int(access.strip()))
    if isinstance(access, int) and access in (-1, 0, 1):
        return AccessLevel(access)
    raise BadRequestError("not valid value")
