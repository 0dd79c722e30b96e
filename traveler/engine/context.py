"""
Traveler Request Context: the requesting principal, carried per task.

The authentication layer resolves a ``Principal`` from the session and binds
it with ``set_current_principal``; access checks fall back to it when no
principal is passed explicitly.

Usage:
    from traveler.engine.context import Principal, get_current_principal
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

current_principal: ContextVar[Optional["Principal"]] = ContextVar(
    "current_principal", default=None
)


@dataclass
class Principal:
    """
    The identity a request acts as: user id, display name, roles and the
    (already filtered) directory group memberships.
    """

    id: str
    display_name: str = ""
    roles: Set[str] = field(default_factory=set)
    groups: Set[str] = field(default_factory=set)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "roles": sorted(self.roles),
            "groups": sorted(self.groups),
        }


def set_current_principal(principal: Optional[Principal]) -> Token:
    """Bind the principal for the current task. Returns a reset token."""
    return current_principal.set(principal)


def get_current_principal() -> Optional[Principal]:
    return current_principal.get()


def clear_current_principal(token: Optional[Token] = None) -> None:
    if token is not None:
        current_principal.reset(token)
    else:
        current_principal.set(None)
