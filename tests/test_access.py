"""Unit tests for traveler.security.access: access resolution and enforcement."""

from unittest.mock import patch

import pytest

from traveler.documents.models import AccessLevel, Binder, Form, SharedEntry, Traveler
from traveler.engine.context import Principal, set_current_principal
from traveler.engine.errors import UnauthorizedError
from traveler.security.access import (
    can_read,
    can_write,
    is_owner,
    require_owner,
    require_read,
    require_write,
    resolve_access,
)


class TestResolveAccess:
    """Resolution order, one rule at a time."""

    def setup_method(self):
        self.alice = Principal(id="alice", groups={"lab.frib.ops"})
        self.bob = Principal(id="bob", groups={"lab.frib.cryo", "lab.frib.rf"})
        self.eve = Principal(id="eve")

    def test_public_write_grants_everyone(self):
        doc = Traveler(created_by="alice", public_access=AccessLevel.WRITE)
        assert resolve_access(self.eve, doc) == AccessLevel.WRITE

    def test_public_write_wins_over_share_entries(self):
        doc = Traveler(
            created_by="alice",
            public_access=AccessLevel.WRITE,
            shared_with=[SharedEntry(id="eve", name="Eve", access=AccessLevel.READ)],
        )
        assert resolve_access(self.eve, doc) == AccessLevel.WRITE

    def test_creator_without_owner_writes(self):
        doc = Form(created_by="alice")
        assert resolve_access(self.alice, doc) == AccessLevel.WRITE

    def test_creator_loses_write_after_transfer(self):
        doc = Form(created_by="alice", owner="bob")
        assert resolve_access(self.alice, doc) == AccessLevel.NO_ACCESS

    def test_owner_writes(self):
        doc = Form(created_by="alice", owner="bob")
        assert resolve_access(self.bob, doc) == AccessLevel.WRITE

    def test_shared_user_entry_access(self):
        doc = Form(
            created_by="alice",
            shared_with=[SharedEntry(id="eve", name="Eve", access=AccessLevel.READ)],
        )
        assert resolve_access(self.eve, doc) == AccessLevel.READ

    def test_shared_user_entry_beats_group_write(self):
        doc = Form(
            created_by="alice",
            shared_with=[SharedEntry(id="bob", name="Bob", access=AccessLevel.READ)],
            shared_group=[SharedEntry(id="lab.frib.cryo", access=AccessLevel.WRITE)],
        )
        assert resolve_access(self.bob, doc) == AccessLevel.READ

    def test_group_write(self):
        doc = Form(
            created_by="alice",
            shared_group=[
                SharedEntry(id="lab.frib.rf", access=AccessLevel.READ),
                SharedEntry(id="lab.frib.cryo", access=AccessLevel.WRITE),
            ],
        )
        assert resolve_access(self.bob, doc) == AccessLevel.WRITE

    def test_group_read(self):
        doc = Form(
            created_by="alice",
            shared_group=[SharedEntry(id="lab.frib.rf", access=AccessLevel.READ)],
        )
        assert resolve_access(self.bob, doc) == AccessLevel.READ

    def test_group_match_is_case_insensitive(self):
        principal = Principal(id="dan", groups={"LAB.FRIB.RF"})
        doc = Form(created_by="alice", shared_group=[SharedEntry(id="lab.frib.rf")])
        assert resolve_access(principal, doc) == AccessLevel.READ

    def test_public_read(self):
        doc = Traveler(created_by="alice")
        assert doc.public_access == AccessLevel.READ
        assert resolve_access(self.eve, doc) == AccessLevel.READ

    def test_form_defaults_to_no_access(self):
        doc = Form(created_by="alice")
        assert resolve_access(self.eve, doc) == AccessLevel.NO_ACCESS

    def test_unrelated_group_gets_nothing(self):
        doc = Binder(
            created_by="alice",
            public_access=AccessLevel.NO_ACCESS,
            shared_group=[SharedEntry(id="lab.frib.ops", access=AccessLevel.WRITE)],
        )
        assert resolve_access(self.bob, doc) == AccessLevel.NO_ACCESS


class TestPredicates:

    def setup_method(self):
        self.alice = Principal(id="alice")
        self.bob = Principal(id="bob")

    @pytest.mark.parametrize("public", [AccessLevel.NO_ACCESS, AccessLevel.READ, AccessLevel.WRITE])
    @pytest.mark.parametrize("shared", [None, AccessLevel.READ, AccessLevel.WRITE])
    def test_write_implies_read(self, public, shared):
        shared_with = [SharedEntry(id="bob", access=shared)] if shared is not None else []
        doc = Form(created_by="alice", public_access=public, shared_with=shared_with)
        for principal in (self.alice, self.bob):
            if can_write(principal, doc):
                assert can_read(principal, doc)

    def test_is_owner_creator_without_owner(self):
        assert is_owner(self.alice, Form(created_by="alice")) is True

    def test_is_owner_explicit_owner(self):
        doc = Form(created_by="alice", owner="bob")
        assert is_owner(self.bob, doc) is True
        assert is_owner(self.alice, doc) is False

    def test_shared_write_is_not_owner(self):
        doc = Form(
            created_by="alice",
            shared_with=[SharedEntry(id="bob", access=AccessLevel.WRITE)],
        )
        assert can_write(self.bob, doc) is True
        assert is_owner(self.bob, doc) is False

    def test_public_write_is_not_owner(self):
        doc = Form(created_by="alice", public_access=AccessLevel.WRITE)
        assert can_write(self.bob, doc) is True
        assert is_owner(self.bob, doc) is False


class TestEnforcement:

    def setup_method(self):
        self.alice = Principal(id="alice", groups={"lab.frib.ops"})
        self.bob = Principal(id="bob")
        self.doc = Form(created_by="alice")

    def test_require_write_returns_principal(self):
        assert require_write(self.doc, self.alice) is self.alice

    def test_require_read_denied(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            require_read(self.doc, self.bob)
        err = exc_info.value
        assert err.principal_id == "bob"
        assert err.required == "READ"
        assert err.http_status == 403

    def test_require_owner_denied_for_writer(self):
        self.doc.shared_with.append(SharedEntry(id="bob", access=AccessLevel.WRITE))
        require_write(self.doc, self.bob)
        with pytest.raises(UnauthorizedError):
            require_owner(self.doc, self.bob)

    def test_falls_back_to_current_principal(self):
        set_current_principal(self.alice)
        assert require_owner(self.doc) is self.alice

    def test_no_principal_is_unauthorized(self):
        with pytest.raises(UnauthorizedError):
            require_read(self.doc)

    def test_denial_is_audited(self):
        with patch("traveler.security.access.log") as mock_log:
            with pytest.raises(UnauthorizedError):
                require_write(self.doc, self.bob)
        entry = mock_log.call_args[0][0]
        assert entry.object_type == "forms"
        assert entry.category == "security"
        assert entry.data["event"] == "access_denied"
        assert entry.data["required"] == "WRITE"
        assert entry.data["granted"] == "NO_ACCESS"
