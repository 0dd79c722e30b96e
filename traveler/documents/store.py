"""
Traveler Document Store: async persistence for documents and principals.

DocumentStore:  forms / travelers / binders (whole-document save, last write wins)
PrincipalStore: users / groups and their document back-references

Both run their SQLAlchemy work in a worker thread (``asyncio.to_thread``) so
callers on the event loop never block on the database. Each document is
stored as its full JSON body plus a few promoted columns for filtering.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from traveler.db.models import BinderRow, BinderWorkRow, FormRow, GroupRow, TravelerRow, UserRow
from traveler.db.session import Database
from traveler.directory.client import entry_value
from traveler.documents.models import (
    DOCUMENT_CLASSES,
    AnyDocument,
    Binder,
    DocumentKind,
    Group,
    ShareListKind,
    User,
)
from traveler.engine.errors import NotFoundError, PersistenceError

logger = logging.getLogger("traveler.documents.store")

T = TypeVar("T")

_ROW_CLASSES: Dict[DocumentKind, type] = {
    DocumentKind.FORM: FormRow,
    DocumentKind.TRAVELER: TravelerRow,
    DocumentKind.BINDER: BinderRow,
}


class _SyncRunner:
    """Shared thread offloading + SQLAlchemy error translation."""

    def __init__(self, database: Database):
        self._db = database

    async def _run(self, description: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error(f"Store operation failed ({description}): {e}")
            raise PersistenceError(f"Cannot {description}: {e}") from e


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentStore(_SyncRunner):
    """
    Load and save shareable documents.

    Usage:
        store = DocumentStore(db)
        form = await store.get(DocumentKind.FORM, form_id)
        await store.save(form)
    """

    async def get(self, kind: DocumentKind, doc_id: str) -> AnyDocument:
        doc = await self.find(kind, doc_id)
        if doc is None:
            raise NotFoundError(
                f"{kind.value} {doc_id} not found",
                doc_kind=kind.value, doc_id=doc_id, identifier=doc_id,
            )
        return doc

    async def find(self, kind: DocumentKind, doc_id: str) -> Optional[AnyDocument]:
        return await self._run(f"load {kind.value} {doc_id}", self._find_sync, kind, doc_id)

    async def find_many(self, kind: DocumentKind, ids: List[str]) -> List[AnyDocument]:
        """Load the documents that exist among ``ids``, in the order given."""
        return await self._run(f"load {len(ids)} {kind.value}(s)", self._find_many_sync, kind, ids)

    async def save(self, doc: AnyDocument) -> AnyDocument:
        await self._run(f"save {doc.kind.value} {doc.id}", self._save_sync, doc)
        return doc

    async def binders_containing(self, child_id: str) -> List[Binder]:
        """All binders holding ``child_id`` as a work item."""
        return await self._run(f"find binders of {child_id}", self._binders_containing_sync, child_id)

    # -- sync helpers (worker thread) ---------------------------------------

    def _find_sync(self, kind: DocumentKind, doc_id: str) -> Optional[AnyDocument]:
        with self._db.session_scope() as session:
            row = session.get(_ROW_CLASSES[kind], doc_id)
            if row is None:
                return None
            return DOCUMENT_CLASSES[kind].model_validate(row.body)

    def _find_many_sync(self, kind: DocumentKind, ids: List[str]) -> List[AnyDocument]:
        if not ids:
            return []
        row_cls = _ROW_CLASSES[kind]
        with self._db.session_scope() as session:
            rows = session.execute(select(row_cls).where(row_cls.id.in_(ids))).scalars().all()
            by_id = {row.id: row.body for row in rows}
        doc_cls = DOCUMENT_CLASSES[kind]
        return [doc_cls.model_validate(by_id[i]) for i in ids if i in by_id]

    def _save_sync(self, doc: AnyDocument) -> None:
        row_cls = _ROW_CLASSES[doc.kind]
        values = {
            "id": doc.id,
            "title": doc.title,
            "status": float(doc.status),
            "created_by": doc.created_by,
            "owner": doc.owner,
            "public_access": int(doc.public_access),
            "archived": doc.archived,
            "created_on": doc.created_on,
            "updated_on": doc.updated_on,
            "body": doc.model_dump(mode="json"),
        }
        if doc.kind is DocumentKind.TRAVELER:
            values["reference_form"] = doc.reference_form
        elif doc.kind is DocumentKind.BINDER:
            values["total_value"] = doc.total_value

        with self._db.session_scope() as session:
            session.merge(row_cls(**values))
            if doc.kind is DocumentKind.BINDER:
                session.flush()
                session.execute(delete(BinderWorkRow).where(BinderWorkRow.binder_id == doc.id))
                session.add_all(
                    BinderWorkRow(binder_id=doc.id, work_id=work_id)
                    for work_id in dict.fromkeys(w.id for w in doc.works)
                )

    def _binders_containing_sync(self, child_id: str) -> List[Binder]:
        with self._db.session_scope() as session:
            rows = session.execute(
                select(BinderRow)
                .join(BinderWorkRow, BinderWorkRow.binder_id == BinderRow.id)
                .where(BinderWorkRow.work_id == child_id)
                .order_by(BinderRow.created_on, BinderRow.id)
            ).scalars().all()
            bodies = [row.body for row in rows]
        return [Binder.model_validate(body) for body in bodies]


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------

class PrincipalStore(_SyncRunner):
    """
    Users and groups, created lazily, never deleted.

    ``add_reference`` / ``remove_reference`` are the back-reference writes
    that the share and binder services submit to the best-effort dispatcher.
    """

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self._run(f"load user {user_id}", self._get_sync, UserRow, User, user_id)

    async def find_users_by_name(self, name: str) -> List[User]:
        return await self._run(f"find user '{name}'", self._find_users_by_name_sync, name)

    async def get_group(self, group_id: str) -> Optional[Group]:
        return await self._run(
            f"load group {group_id}", self._get_sync, GroupRow, Group, group_id.lower()
        )

    async def get_principal(self, list_kind: ShareListKind, principal_id: str):
        if list_kind is ShareListKind.USERS:
            return await self.get_user(principal_id)
        return await self.get_group(principal_id)

    async def save_user(self, user: User) -> User:
        await self._run(f"save user {user.id}", self._save_user_sync, user)
        return user

    async def save_group(self, group: Group) -> Group:
        group.id = group.id.lower()
        await self._run(f"save group {group.id}", self._save_group_sync, group)
        return group

    async def touch_user(self, user_id: str) -> None:
        """Stamp last_visited_on; missing users are ignored."""
        user = await self.get_user(user_id)
        if user is None:
            logger.warning(f"Cannot update last visit of unknown user {user_id}")
            return
        user.last_visited_on = datetime.now(timezone.utc)
        await self.save_user(user)

    async def add_reference(
        self,
        list_kind: ShareListKind,
        principal_id: str,
        doc_kind: DocumentKind,
        doc_id: str,
        profile: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Add ``doc_id`` to the principal's back-reference set (idempotent).

        A missing principal is created from ``profile`` when one is given,
        otherwise NotFoundError is raised.

        Returns:
            True if the set changed.
        """
        principal = await self.get_principal(list_kind, principal_id)
        if principal is None:
            if profile is None:
                raise NotFoundError(
                    f"{list_kind.value} {principal_id} not found",
                    identifier=principal_id, doc_id=doc_id, doc_kind=doc_kind.value,
                )
            principal = _principal_from_profile(list_kind, principal_id, profile)
            logger.info(f"Created {list_kind.value} {principal_id} from directory profile")

        changed = principal.add_reference(doc_kind, doc_id)
        if changed or profile is not None:
            await self._save_principal(list_kind, principal)
        return changed

    async def remove_reference(
        self,
        list_kind: ShareListKind,
        principal_id: str,
        doc_kind: DocumentKind,
        doc_id: str,
    ) -> bool:
        """Pull ``doc_id`` from the principal's back-reference set."""
        principal = await self.get_principal(list_kind, principal_id)
        if principal is None:
            raise NotFoundError(
                f"{list_kind.value} {principal_id} not found",
                identifier=principal_id, doc_id=doc_id, doc_kind=doc_kind.value,
            )
        changed = principal.remove_reference(doc_kind, doc_id)
        if changed:
            await self._save_principal(list_kind, principal)
        return changed

    async def _save_principal(self, list_kind: ShareListKind, principal) -> None:
        if list_kind is ShareListKind.USERS:
            await self.save_user(principal)
        else:
            await self.save_group(principal)

    # -- sync helpers (worker thread) ---------------------------------------

    def _get_sync(self, row_cls: type, model_cls: Type[T], principal_id: str) -> Optional[T]:
        with self._db.session_scope() as session:
            row = session.get(row_cls, principal_id)
            if row is None:
                return None
            return model_cls.model_validate(row.body)

    def _find_users_by_name_sync(self, name: str) -> List[User]:
        with self._db.session_scope() as session:
            rows = session.execute(select(UserRow).where(UserRow.name == name)).scalars().all()
            bodies = [row.body for row in rows]
        return [User.model_validate(body) for body in bodies]

    def _save_user_sync(self, user: User) -> None:
        with self._db.session_scope() as session:
            session.merge(UserRow(
                id=user.id,
                name=user.name,
                email=user.email,
                last_visited_on=user.last_visited_on,
                body=user.model_dump(mode="json"),
            ))

    def _save_group_sync(self, group: Group) -> None:
        with self._db.session_scope() as session:
            session.merge(GroupRow(
                id=group.id,
                name=group.name,
                body=group.model_dump(mode="json"),
            ))


def _principal_from_profile(list_kind: ShareListKind, principal_id: str, profile: Dict[str, Any]):
    """Build a new User / Group from a directory entry."""
    if list_kind is ShareListKind.USERS:
        return User(
            id=principal_id,
            name=entry_value(profile, "displayName") or principal_id,
            email=entry_value(profile, "mail"),
            office=entry_value(profile, "physicalDeliveryOfficeName"),
            phone=entry_value(profile, "telephoneNumber"),
            mobile=entry_value(profile, "mobile"),
        )
    return Group(
        id=principal_id.lower(),
        name=entry_value(profile, "displayName") or principal_id,
        email=entry_value(profile, "mail"),
    )
