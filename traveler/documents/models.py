"""
Traveler Document & Principal Models: Pydantic definitions.

Form: Reusable HTML field template.
Traveler: Per-task work record instantiated from a form.
Binder: Work package aggregating travelers and nested binders.
User / Group: Share targets, holding back-references to shared documents.

Status values and access codes keep their canonical numeric codes
(0 / 0.5 / 1 / 1.5 / 2 / 3 and -1 / 0 / 1) so stored data stays compatible.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import ClassVar, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class AccessLevel(IntEnum):
    """NoAccess < ReadAccess < WriteAccess."""
    NO_ACCESS = -1
    READ = 0
    WRITE = 1


class DocumentKind(str, Enum):
    """Tag of a shareable document; selects the principal back-reference set."""
    FORM = "form"
    TRAVELER = "traveler"
    BINDER = "binder"

    @property
    def reference_field(self) -> str:
        if self is DocumentKind.FORM:
            return "forms"
        if self is DocumentKind.TRAVELER:
            return "travelers"
        return "binders"


class ShareListKind(str, Enum):
    USERS = "users"
    GROUPS = "groups"


class FormStatus(float, Enum):
    EDITABLE = 0.0
    READY = 0.5
    PUBLISHED = 1.0
    OBSOLETE = 2.0


class TravelerStatus(float, Enum):
    INITIALIZED = 0.0
    ACTIVE = 1.0
    SUBMITTED = 1.5
    COMPLETED = 2.0
    FROZEN = 3.0


class BinderStatus(float, Enum):
    NEW = 0.0
    ACTIVE = 1.0
    COMPLETED = 2.0


class WorkRefType(str, Enum):
    TRAVELER = "traveler"
    BINDER = "binder"


class WorkColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    BLUE = "blue"
    BLACK = "black"


# ---------------------------------------------------------------------------
# Share entries
# ---------------------------------------------------------------------------

class SharedEntry(BaseModel):
    """One principal in a document's sharedWith / sharedGroup list."""

    id: str = Field(description="User id or lower-cased group id")
    name: str = Field(default="", description="Display name snapshot")
    access: AccessLevel = AccessLevel.READ


# ---------------------------------------------------------------------------
# Shareable documents
# ---------------------------------------------------------------------------

class ShareableDocument(BaseModel):
    """
    Common ACL and audit fields of forms, travelers and binders.

    If ``owner`` is unset, ``created_by`` is the de-facto owner.
    """

    kind: ClassVar[DocumentKind]

    id: str = Field(default_factory=_new_id)
    title: str = ""
    status: float = 0.0
    created_by: Optional[str] = None
    created_on: datetime = Field(default_factory=_now)
    updated_by: Optional[str] = None
    updated_on: Optional[datetime] = None
    owner: Optional[str] = None
    transferred_on: Optional[datetime] = None
    public_access: AccessLevel = AccessLevel.READ
    shared_with: List[SharedEntry] = Field(default_factory=list)
    shared_group: List[SharedEntry] = Field(default_factory=list)
    archived: bool = False
    archived_on: Optional[datetime] = None

    @property
    def effective_owner(self) -> Optional[str]:
        return self.owner or self.created_by

    def shared_list(self, list_kind: ShareListKind) -> List[SharedEntry]:
        if list_kind is ShareListKind.USERS:
            return self.shared_with
        return self.shared_group

    def find_shared(self, list_kind: ShareListKind, principal_id: str) -> Optional[SharedEntry]:
        """Find the entry for a principal id (the embedded-list ``id()`` lookup)."""
        for entry in self.shared_list(list_kind):
            if entry.id == principal_id:
                return entry
        return None

    def touch(self, user_id: Optional[str]) -> None:
        """Stamp updated_by / updated_on."""
        self.updated_by = user_id
        self.updated_on = _now()


class Form(ShareableDocument):
    """
    status := 0 (editable) | 0.5 (ready to publish) | 1 (published) | 2 (obsolete)
    """

    kind: ClassVar[DocumentKind] = DocumentKind.FORM

    html: str = ""
    public_access: AccessLevel = AccessLevel.NO_ACCESS


class Traveler(ShareableDocument):
    """
    status := 0 (initialized) | 1 (active) | 1.5 (submitted for completion)
            | 2 (completed) | 3 (frozen)

    total_input counts the input fields of the active form, finished_input
    the fields that have received data.
    """

    kind: ClassVar[DocumentKind] = DocumentKind.TRAVELER

    description: str = ""
    devices: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    reference_form: Optional[str] = None
    total_input: int = Field(default=0, ge=0)
    finished_input: int = Field(default=0, ge=0)


class WorkItem(BaseModel):
    """
    A binder's reference to a child traveler or binder with a cached progress
    snapshot. ``finished`` / ``in_progress`` are fractions of the item's value.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(description="Id of the referenced traveler or binder")
    ref_type: WorkRefType
    alias: str = ""
    added_on: datetime = Field(default_factory=_now)
    added_by: Optional[str] = None
    status: float = 0.0
    finished: float = Field(default=0.0, ge=0, le=1)
    in_progress: float = Field(default=0.0, ge=0, le=1)
    priority: int = Field(default=5, ge=1, le=10)
    sequence: int = Field(default=1, ge=1)
    value: float = Field(default=10.0, ge=0)
    color: WorkColor = WorkColor.BLUE


class ProgressSnapshot(BaseModel):
    """The progress-relevant fields of a child traveler or binder."""

    id: str
    ref_type: WorkRefType
    status: float = 0.0
    total_input: int = 0
    finished_input: int = 0
    total_value: float = 0.0
    finished_value: float = 0.0
    in_progress_value: float = 0.0

    @classmethod
    def from_document(cls, doc: Union["Traveler", "Binder"]) -> "ProgressSnapshot":
        if isinstance(doc, Traveler):
            return cls(
                id=doc.id,
                ref_type=WorkRefType.TRAVELER,
                status=doc.status,
                total_input=doc.total_input,
                finished_input=doc.finished_input,
            )
        return cls(
            id=doc.id,
            ref_type=WorkRefType.BINDER,
            status=doc.status,
            total_value=doc.total_value,
            finished_value=doc.finished_value,
            in_progress_value=doc.in_progress_value,
        )


class Binder(ShareableDocument):
    """
    status := 0 (new) | 1 (active) | 2 (completed)

    total_value = sum(work value)
    finished_value = sum(work value x finished)
    in_progress_value = sum(work value x in_progress)
    """

    kind: ClassVar[DocumentKind] = DocumentKind.BINDER

    description: str = ""
    tags: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    works: List[WorkItem] = Field(default_factory=list)
    total_value: float = Field(default=0.0, ge=0)
    finished_value: float = Field(default=0.0, ge=0)
    in_progress_value: float = Field(default=0.0, ge=0)

    def find_work(self, work_id: str) -> Optional[WorkItem]:
        for work in self.works:
            if work.id == work_id:
                return work
        return None

    def update_work_progress(self, snapshot: ProgressSnapshot) -> bool:
        """Refresh the work item for ``snapshot``; unknown ids are ignored."""
        from traveler.workflow.progress import update_work_progress

        work = self.find_work(snapshot.id)
        if work is None:
            return False
        return update_work_progress(work, snapshot)


AnyDocument = Union[Form, Traveler, Binder]

DOCUMENT_CLASSES: Dict[DocumentKind, Type[ShareableDocument]] = {
    DocumentKind.FORM: Form,
    DocumentKind.TRAVELER: Traveler,
    DocumentKind.BINDER: Binder,
}


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------

class _PrincipalRecord(BaseModel):
    """Back-reference sets shared by users and groups."""

    id: str
    name: str = ""
    email: Optional[str] = None
    forms: List[str] = Field(default_factory=list)
    travelers: List[str] = Field(default_factory=list)
    binders: List[str] = Field(default_factory=list)

    def references(self, kind: DocumentKind) -> List[str]:
        return getattr(self, kind.reference_field)

    def add_reference(self, kind: DocumentKind, doc_id: str) -> bool:
        """Set-add; returns False when already present."""
        refs = self.references(kind)
        if doc_id in refs:
            return False
        refs.append(doc_id)
        return True

    def remove_reference(self, kind: DocumentKind, doc_id: str) -> bool:
        refs = self.references(kind)
        if doc_id not in refs:
            return False
        refs.remove(doc_id)
        return True


class User(_PrincipalRecord):
    """A user, created on first login or first directory-resolved share."""

    office: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    last_visited_on: Optional[datetime] = None
    subscribe: bool = False


class Group(_PrincipalRecord):
    """A directory group referenced by id (lower-cased sAMAccountName)."""
    pass
