"""
Traveler Test Suite: Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from traveler.db.session import Database
from traveler.directory.client import Directory, DirectoryClient
from traveler.documents.models import Binder, Form, Traveler
from traveler.documents.store import DocumentStore, PrincipalStore
from traveler.engine.config import DirectoryConfig, SecurityConfig
from traveler.engine.context import Principal, clear_current_principal
from traveler.engine.dispatch import BestEffortDispatcher
from traveler.engine.errors import DirectoryError


# ---------------------------------------------------------------------------
# Isolation: no principal leaks between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_context():
    clear_current_principal()
    yield
    clear_current_principal()


# ---------------------------------------------------------------------------
# Directory double
# ---------------------------------------------------------------------------

_ASSERTION = re.compile(r"\((sAMAccountName|displayName)=([^)]*)\)")


class FakeDirectoryClient(DirectoryClient):
    """
    In-memory directory. Understands the configured filters well enough to
    match ``sAMAccountName`` / ``displayName`` assertions against the stored
    user and group entries.
    """

    def __init__(self):
        self.users: List[Dict[str, Any]] = []
        self.groups: List[Dict[str, Any]] = []
        self.calls: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None
        self.closed = False

    def add_user(self, account: str, display_name: str, member_of=None, **attrs: Any) -> Dict[str, Any]:
        entry = {
            "sAMAccountName": account,
            "displayName": display_name,
            "mail": f"{account}@example.org",
            "memberOf": list(member_of or []),
            **attrs,
        }
        self.users.append(entry)
        return entry

    def add_group(self, account: str, display_name: str) -> Dict[str, Any]:
        entry = {"sAMAccountName": account, "displayName": display_name, "mail": None}
        self.groups.append(entry)
        return entry

    async def search(self, base: str, search_filter: str, attributes: List[str], scope: str = "sub"):
        self.calls.append({"base": base, "filter": search_filter, "attributes": attributes})
        if self.fail_with is not None:
            raise self.fail_with
        pool = self.groups if "objectClass=group" in search_filter else self.users
        matches = _ASSERTION.findall(search_filter)
        if not matches:
            return []
        attr, value = matches[-1]
        if attr == "sAMAccountName":
            found = [e for e in pool if str(e.get(attr, "")).lower() == value.lower()]
        else:
            found = [e for e in pool if e.get(attr) == value]
        return [dict(e) for e in found]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def directory_client() -> FakeDirectoryClient:
    return FakeDirectoryClient()


@pytest.fixture
def directory_config() -> DirectoryConfig:
    return DirectoryConfig(search_base="ou=people,dc=example,dc=org",
                           group_search_base="ou=groups,dc=example,dc=org")


@pytest.fixture
def directory(directory_client, directory_config) -> Directory:
    return Directory(directory_client, directory_config)


@pytest.fixture
def failing_directory_error() -> DirectoryError:
    return DirectoryError("connection refused", search_base="ou=people,dc=example,dc=org")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@pytest.fixture
def database():
    """Fresh in-memory SQLite database with all tables."""
    db = Database("sqlite:///:memory:", create_tables=True)
    yield db
    db.dispose()


@pytest.fixture
def documents(database) -> DocumentStore:
    return DocumentStore(database)


@pytest.fixture
def principals(database) -> PrincipalStore:
    return PrincipalStore(database)


@pytest.fixture
def dispatcher() -> BestEffortDispatcher:
    """Started lazily by the first submit inside the (async) test."""
    return BestEffortDispatcher(max_queue_size=100, name="test")


@pytest.fixture
def security_config() -> SecurityConfig:
    return SecurityConfig(
        group_prefix="lab.frib",
        aliases={"lab.frib.ops": "ops"},
    )


@pytest.fixture
def mock_redis():
    """Return a mock Redis client."""
    client = MagicMock()
    client.ping.return_value = True
    client.get.return_value = None
    client.set.return_value = True
    client.delete.return_value = 1
    return client


# ---------------------------------------------------------------------------
# Principals & documents
# ---------------------------------------------------------------------------

@pytest.fixture
def alice() -> Principal:
    return Principal(id="alice", display_name="Alice Smith", groups={"lab.frib.ops"})


@pytest.fixture
def bob() -> Principal:
    return Principal(id="bob", display_name="Bob Jones", groups={"lab.frib.cryo"})


@pytest.fixture
def carol() -> Principal:
    return Principal(id="carol", display_name="Carol White")


@pytest.fixture
def form(alice) -> Form:
    return Form(title="Leak check", created_by=alice.id, html="<input name='p1'>")


@pytest.fixture
def traveler_doc(alice) -> Traveler:
    return Traveler(title="Cavity 7", created_by=alice.id, status=1.0,
                    total_input=4, finished_input=1)


@pytest.fixture
def binder(alice) -> Binder:
    return Binder(title="Cryomodule 3", created_by=alice.id, status=1.0)
