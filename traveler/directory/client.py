"""
Traveler Directory Client: LDAP / Active Directory lookups.

DirectoryClient: async search interface (one method)
LdapDirectoryClient: ldap3 implementation, blocking calls run in a worker thread
Directory: configured user / group lookups with the single-entry expectation

Lookup results are plain dicts of attribute name -> value (multi-valued
attributes such as ``memberOf`` come back as lists).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ldap3 import BASE, LEVEL, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from traveler.engine.config import DirectoryConfig
from traveler.engine.errors import AmbiguousError, DirectoryError, NotFoundError

logger = logging.getLogger("traveler.directory.client")

DirectoryEntry = Dict[str, Any]

_SCOPES = {"base": BASE, "one": LEVEL, "sub": SUBTREE}


class DirectoryClient(ABC):
    """Search the directory; implementations raise DirectoryError on transport failure."""

    @abstractmethod
    async def search(
        self,
        base: str,
        search_filter: str,
        attributes: List[str],
        scope: str = "sub",
    ) -> List[DirectoryEntry]:
        ...

    async def close(self) -> None:
        return None


class LdapDirectoryClient(DirectoryClient):
    """
    ldap3-backed client. A connection is bound per search and unbound after,
    so there is no long-lived socket to go stale between requests.
    """

    def __init__(self, config: DirectoryConfig):
        self._config = config
        self._server = Server(config.url, connect_timeout=config.timeout)

    async def search(
        self,
        base: str,
        search_filter: str,
        attributes: List[str],
        scope: str = "sub",
    ) -> List[DirectoryEntry]:
        if scope not in _SCOPES:
            raise ValueError(f"Unknown search scope '{scope}' (expected base/one/sub)")
        return await asyncio.to_thread(self._search_sync, base, search_filter, attributes, scope)

    def _search_sync(
        self,
        base: str,
        search_filter: str,
        attributes: List[str],
        scope: str,
    ) -> List[DirectoryEntry]:
        conn: Optional[Connection] = None
        try:
            conn = Connection(
                self._server,
                user=self._config.bind_dn,
                password=self._config.password,
                receive_timeout=self._config.timeout,
                auto_bind=True,
                read_only=True,
            )
            conn.search(
                search_base=base,
                search_filter=search_filter,
                search_scope=_SCOPES[scope],
                attributes=attributes,
            )
            return [
                dict(item.get("attributes", {}))
                for item in conn.response or []
                if item.get("type") == "searchResEntry"
            ]
        except LDAPException as e:
            logger.error(f"Directory search failed (base={base}, filter={search_filter}): {e}")
            raise DirectoryError(
                f"Directory search failed: {e}",
                search_base=base,
                search_filter=search_filter,
            ) from e
        finally:
            if conn is not None and conn.bound:
                conn.unbind()


class Directory:
    """
    Configured lookups on top of a DirectoryClient.

    The ``find_*`` methods expect exactly one entry: zero raises
    NotFoundError, several raise AmbiguousError. The ``search_*`` methods
    return every match for callers that report counts themselves.
    """

    def __init__(self, client: DirectoryClient, config: DirectoryConfig):
        self._client = client
        self._config = config

    @property
    def client(self) -> DirectoryClient:
        return self._client

    async def search_users_by_id(self, user_id: str) -> List[DirectoryEntry]:
        search_filter = self._config.search_filter.replace("_id", escape_filter_chars(user_id))
        return await self._client.search(
            self._config.search_base, search_filter, self._config.member_attributes
        )

    async def search_users_by_name(self, name: str) -> List[DirectoryEntry]:
        search_filter = self._config.name_filter.replace("_name", escape_filter_chars(name))
        return await self._client.search(
            self._config.search_base, search_filter, self._config.object_attributes
        )

    async def search_groups_by_id(self, group_id: str) -> List[DirectoryEntry]:
        search_filter = self._config.group_search_filter.replace(
            "_id", escape_filter_chars(group_id)
        )
        return await self._client.search(
            self._config.group_search_base, search_filter, self._config.group_attributes
        )

    async def find_user_by_id(self, user_id: str) -> DirectoryEntry:
        return _single(await self.search_users_by_id(user_id), "user id", user_id)

    async def find_user_by_name(self, name: str) -> DirectoryEntry:
        return _single(await self.search_users_by_name(name), "user name", name)

    async def find_group_by_id(self, group_id: str) -> DirectoryEntry:
        return _single(await self.search_groups_by_id(group_id), "group id", group_id)


def _single(entries: List[DirectoryEntry], what: str, identifier: str) -> DirectoryEntry:
    if not entries:
        raise NotFoundError(f"Cannot find {what} {identifier}", identifier=identifier)
    if len(entries) > 1:
        raise AmbiguousError(
            f"More than one match for {what} {identifier}",
            identifier=identifier,
            match_count=len(entries),
        )
    return entries[0]


def entry_value(entry: DirectoryEntry, attribute: str) -> Optional[str]:
    """First value of a (possibly multi-valued) attribute, as a string."""
    value = entry.get(attribute)
    if isinstance(value, (list, tuple)):
        return str(value[0]) if value else None
    return str(value) if value is not None else None


def entry_values(entry: DirectoryEntry, attribute: str) -> List[str]:
    """All values of an attribute as strings (single values are wrapped)."""
    value = entry.get(attribute)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]
