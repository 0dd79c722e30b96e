"""Traveler Security: access resolution, sharing, ownership and authentication."""

from traveler.security.access import (
    can_read,
    can_write,
    is_owner,
    require_owner,
    require_read,
    require_write,
    resolve_access,
)
from traveler.security.auth import (
    AuthOutcome,
    TicketAuthenticator,
    check_api_user,
    filter_groups,
    principal_from_session,
    verify_role,
)
from traveler.security.ownership import OwnershipService
from traveler.security.share import ShareManager, find_share_index

__all__ = [
    "AuthOutcome",
    "OwnershipService",
    "ShareManager",
    "TicketAuthenticator",
    "can_read",
    "can_write",
    "check_api_user",
    "filter_groups",
    "find_share_index",
    "is_owner",
    "principal_from_session",
    "require_owner",
    "require_read",
    "require_write",
    "resolve_access",
    "verify_role",
]
