"""
Traveler Error Hierarchy: Structured exceptions raised by the access and
progress engine.

Every error carries a serializable context and an ``http_status`` so route
handlers can translate it into a response without inspecting messages.

Hierarchy:
    TravelerError
    ├── NotFoundError           : Directory/local lookup yields no match
    ├── AmbiguousError          : Lookup yields more than one match
    ├── InvalidStatusError      : Requested status is not in the lifecycle
    ├── InvalidTransitionError  : (current, target) is not a legal edge
    ├── UnauthorizedError       : Access resolver denies the principal
    ├── BadRequestError         : Malformed caller input
    ├── DirectoryError          : Directory service transport failure
    ├── SSOError                : Ticket validation transport failure
    ├── SessionError            : Missing or malformed session state
    ├── PersistenceError        : Document store failure
    └── ConfigError             : Invalid traveler.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class TravelerError(Exception):
    """
    Base error for all engine failures.
    All context is serializable to JSON for the structured logs.
    """

    http_status: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.doc_id: Optional[str] = context.get("doc_id")
        self.doc_kind: Optional[str] = context.get("doc_kind")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "http_status": self.http_status,
            "doc_id": self.doc_id,
            "doc_kind": self.doc_kind,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("doc_id", "doc_kind")
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.doc_id:
            parts.append(f"doc_id={self.doc_id}")
        return " | ".join(parts)


class NotFoundError(TravelerError):
    """A user, group, document or work item could not be found."""

    http_status = 404

    def __init__(self, message: str, **context: Any):
        self.identifier: Optional[str] = context.get("identifier")
        super().__init__(message, **context)


class AmbiguousError(TravelerError):
    """A lookup that expects a single entry returned several."""

    http_status = 400

    def __init__(self, message: str, **context: Any):
        self.identifier: Optional[str] = context.get("identifier")
        self.match_count: Optional[int] = context.get("match_count")
        super().__init__(message, **context)


class InvalidStatusError(TravelerError):
    """The requested status value is not part of the document's lifecycle."""

    http_status = 400


class InvalidTransitionError(TravelerError):
    """The requested status change is not a legal edge of the lifecycle."""

    http_status = 400

    def __init__(self, message: str, **context: Any):
        self.current: Optional[float] = context.get("current")
        self.target: Optional[float] = context.get("target")
        super().__init__(message, **context)


class UnauthorizedError(TravelerError):
    """
    Access denied. Includes the principal and the access level that was
    required so denials can be written to the security log.
    """

    http_status = 403

    def __init__(self, message: str, **context: Any):
        self.principal_id: Optional[str] = context.get("principal_id")
        self.required: Optional[str] = context.get("required")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["principal_id"] = self.principal_id
        d["required"] = self.required
        return d


class BadRequestError(TravelerError):
    """Malformed caller input (unknown list, missing share entry, bad value)."""

    http_status = 400


class DirectoryError(TravelerError):
    """The directory service could not be reached or rejected the search."""

    http_status = 500

    def __init__(self, message: str, **context: Any):
        self.search_base: Optional[str] = context.get("search_base")
        self.search_filter: Optional[str] = context.get("search_filter")
        super().__init__(message, **context)


class SSOError(TravelerError):
    """The SSO service could not validate a ticket."""

    http_status = 401

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)


class SessionError(TravelerError):
    """Session missing or lacking the state a check depends on."""

    http_status = 500


class PersistenceError(TravelerError):
    """Saving or loading a document failed."""

    http_status = 500


class ConfigError(TravelerError):
    """Configuration error: invalid traveler.yaml."""
    pass
