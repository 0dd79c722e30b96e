"""
Traveler Documents: forms, travelers, binders and the principals they are
shared with, plus their async persistence.
"""

from traveler.documents.models import (
    AccessLevel,
    Binder,
    BinderStatus,
    DocumentKind,
    Form,
    FormStatus,
    Group,
    ProgressSnapshot,
    SharedEntry,
    ShareListKind,
    Traveler,
    TravelerStatus,
    User,
    WorkItem,
    WorkRefType,
)
from traveler.documents.store import DocumentStore, PrincipalStore

__all__ = [
    "AccessLevel",
    "Binder",
    "BinderStatus",
    "DocumentKind",
    "DocumentStore",
    "Form",
    "FormStatus",
    "Group",
    "PrincipalStore",
    "ProgressSnapshot",
    "SharedEntry",
    "ShareListKind",
    "Traveler",
    "TravelerStatus",
    "User",
    "WorkItem",
    "WorkRefType",
]
