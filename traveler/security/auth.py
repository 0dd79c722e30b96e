"""
Traveler Authentication: CAS ticket login state machine and session checks.

Flow (one call per request, the caller persists the session afterwards):
1. Session already has a userid → proceed (a stray ?ticket= is stripped with a 301)
2. Request carries a ticket    → validate with CAS, load the directory profile,
                                 fill the session, create/refresh the local user,
                                 redirect to the landing page
3. Neither                     → XHR gets 401, browsers are sent to CAS login

Also provides role checks on the session, API user (basic auth) checks and
the Session → Principal conversion used by the access checks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import bcrypt

from traveler.directory.client import Directory, entry_value, entry_values
from traveler.directory.sso import CasClient
from traveler.documents.models import User
from traveler.documents.store import PrincipalStore
from traveler.engine.config import SecurityConfig
from traveler.engine.context import Principal
from traveler.engine.dispatch import BestEffortDispatcher
from traveler.engine.errors import (
    DirectoryError,
    PersistenceError,
    SessionError,
    SSOError,
    UnauthorizedError,
)
from traveler.engine.logging import log, log_auth_event

logger = logging.getLogger("traveler.security.auth")


@dataclass
class AuthOutcome:
    """What the route layer should do with the request."""

    action: str  # "proceed" | "redirect" | "error"
    status: int = 200
    location: Optional[str] = None
    message: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def proceed(cls) -> "AuthOutcome":
        return cls(action="proceed")

    @classmethod
    def redirect(cls, location: str, status: int = 302) -> "AuthOutcome":
        return cls(action="redirect", status=status, location=location)

    @classmethod
    def error(cls, status: int, message: str, headers: Optional[Dict[str, str]] = None) -> "AuthOutcome":
        return cls(action="error", status=status, message=message, headers=headers or {})

    @property
    def proceeds(self) -> bool:
        return self.action == "proceed"


# ---------------------------------------------------------------------------
# Group filtering
# ---------------------------------------------------------------------------

def _cn(dn: str) -> str:
    """'CN=LAB.FRIB.Ops,OU=Groups,...' → 'lab.frib.ops'."""
    return dn.split(",", 1)[0][3:].lower()


def filter_groups(dns: Iterable[str], prefix: str, aliases: Dict[str, str]) -> List[str]:
    """
    Keep the lower-cased CN of each group DN that starts with ``prefix``,
    followed by its configured alias (once).
    """
    output: List[str] = []
    for dn in dns:
        group = _cn(str(dn))
        if not group.startswith(prefix):
            continue
        output.append(group)
        alias = aliases.get(group)
        if alias and alias not in output:
            output.append(alias)
    return output


# ---------------------------------------------------------------------------
# Ticket authentication
# ---------------------------------------------------------------------------

def _strip_ticket(url: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "ticket"]
    return urlunsplit(("", "", parts.path, urlencode(query), ""))


def _ticket_of(url: str) -> Optional[str]:
    for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        if key == "ticket" and value:
            return value
    return None


class TicketAuthenticator:
    """
    CAS + directory login for a session dict.

    Usage:
        session = sessions.load(session_id)
        outcome = await authenticator.authenticate(session, request_url, is_xhr)
        sessions.save(session_id, session)
    """

    def __init__(
        self,
        cas: CasClient,
        directory: Directory,
        principals: PrincipalStore,
        dispatcher: BestEffortDispatcher,
        security: SecurityConfig,
    ):
        self._cas = cas
        self._directory = directory
        self._principals = principals
        self._dispatcher = dispatcher
        self._security = security

    async def authenticate(self, session: Dict[str, Any], url: str, is_xhr: bool = False) -> AuthOutcome:
        if session is None:
            raise SessionError("Session not found")

        ticket = _ticket_of(url)
        if session.get("userid"):
            if ticket:
                return AuthOutcome.redirect(_strip_ticket(url), status=301)
            return AuthOutcome.proceed()

        if ticket:
            return await self._login_with_ticket(session, ticket)

        if is_xhr:
            return AuthOutcome.error(
                401,
                "xhr cannot be authenticated",
                headers={"WWW-Authenticate": f'CAS realm="{self._cas.service_url}"'},
            )
        session["landing"] = url
        return AuthOutcome.redirect(self._cas.login_url())

    async def _login_with_ticket(self, session: Dict[str, Any], ticket: str) -> AuthOutcome:
        try:
            validation = await self._cas.validate(ticket)
        except SSOError as e:
            log(log_auth_event("ticket_validation_failed", success=False, reason=e.message))
            return AuthOutcome.error(401, e.message)

        if not validation.validated:
            logger.error("CAS rejected the ticket")
            log(log_auth_event("ticket_rejected", success=False))
            return AuthOutcome.redirect(self._cas.service_url)

        user_id = validation.username
        session["userid"] = user_id

        try:
            entries = await self._directory.search_users_by_id(user_id)
        except DirectoryError as e:
            logger.error(f"Directory lookup for {user_id} failed: {e.message}")
            return AuthOutcome.error(500, "something wrong with ad")
        if not entries:
            logger.warning(f"cannot find {user_id}")
            return AuthOutcome.error(500, f"{user_id} is not found!")
        if len(entries) > 1:
            return AuthOutcome.error(500, f"{user_id} is not unique!")

        entry = entries[0]
        session["username"] = entry_value(entry, "displayName")
        session["memberOf"] = filter_groups(
            entry_values(entry, "memberOf"),
            self._security.group_prefix,
            self._security.aliases,
        )

        try:
            user = await self._principals.get_user(user_id)
        except PersistenceError as e:
            logger.error(f"Cannot load user {user_id}: {e.message}")
            user = None

        if user is not None:
            session["roles"] = list(user.roles)
            self._dispatcher.submit(
                f"touch last visit of {user_id}", self._principals.touch_user, user_id
            )
        else:
            session["roles"] = []
            first = User(
                id=user_id,
                name=entry_value(entry, "displayName") or user_id,
                email=entry_value(entry, "mail"),
                office=entry_value(entry, "physicalDeliveryOfficeName"),
                phone=entry_value(entry, "telephoneNumber"),
                mobile=entry_value(entry, "mobile"),
                roles=[],
                last_visited_on=datetime.now(timezone.utc),
            )
            try:
                await self._principals.save_user(first)
            except PersistenceError as e:
                logger.error(f"Cannot create user {user_id}: {e.message}")
                log(log_auth_event("user_create_failed", user_id=user_id, success=False, reason=e.message))
                return AuthOutcome.error(500, "cannot log in. Please contact admin.")
            logger.info(f"A new user created : {user_id}")
            log(log_auth_event("user_created", user_id=user_id))

        log(log_auth_event("login", user_id=user_id))
        landing = session.get("landing")
        if landing and landing != "/login":
            return AuthOutcome.redirect(landing)
        return AuthOutcome.redirect("/")


# ---------------------------------------------------------------------------
# Session checks
# ---------------------------------------------------------------------------

def verify_role(session: Optional[Dict[str, Any]], role: str) -> None:
    """
    Raises:
        SessionError if the session has no roles, UnauthorizedError if the
        role is missing.
    """
    if session is None:
        raise SessionError("session not found")
    roles = session.get("roles")
    if roles is None:
        logger.warning("Cannot find the user's role.")
        raise SessionError("something wrong for the user's session")
    if role not in roles:
        raise UnauthorizedError(
            "You are not authorized to access this resource.",
            principal_id=session.get("userid"),
            required=role,
        )


def check_api_user(name: Optional[str], password: Optional[str], api_users: Dict[str, str]) -> bool:
    """Basic-auth check for API clients against configured bcrypt hashes."""
    if not name or password is None:
        return False
    hashed = api_users.get(name)
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError as e:
        logger.warning(f"Invalid password hash configured for API user '{name}': {e}")
        return False


def principal_from_session(session: Optional[Dict[str, Any]]) -> Principal:
    """Build the request principal from an authenticated session."""
    if not session or not session.get("userid"):
        raise SessionError("session is not authenticated")
    return Principal(
        id=session["userid"],
        display_name=session.get("username") or "",
        roles=set(session.get("roles") or []),
        groups=set(session.get("memberOf") or []),
    )
