"""Unit tests for traveler.security.ownership: owner transfer via directory lookup."""

from unittest.mock import patch

import pytest

from traveler.engine.errors import AmbiguousError, BadRequestError, NotFoundError, UnauthorizedError
from traveler.security.ownership import OwnershipService


@pytest.fixture
def ownership(documents, directory):
    return OwnershipService(documents, directory)


class TestChangeOwner:

    @pytest.mark.asyncio
    async def test_transfer(self, ownership, documents, directory_client, form, alice):
        directory_client.add_user("BJones", "Bob Jones")

        owner = await ownership.change_owner(form, "Bob Jones", alice)

        assert owner == "bjones"
        assert form.owner == "bjones"
        assert form.transferred_on is not None
        stored = await documents.get(form.kind, form.id)
        assert stored.owner == "bjones"

    @pytest.mark.asyncio
    async def test_ambiguous_name_leaves_owner(self, ownership, documents, directory_client, form, alice):
        directory_client.add_user("bjones", "Bob Jones")
        directory_client.add_user("bjones2", "Bob Jones")

        with pytest.raises(AmbiguousError):
            await ownership.change_owner(form, "Bob Jones", alice)

        assert form.owner is None
        assert await documents.find(form.kind, form.id) is None

    @pytest.mark.asyncio
    async def test_unknown_name(self, ownership, form, alice):
        with pytest.raises(NotFoundError):
            await ownership.change_owner(form, "Nobody", alice)
        assert form.owner is None

    @pytest.mark.asyncio
    async def test_already_owner_is_a_no_op(self, ownership, documents, directory_client, form, alice):
        directory_client.add_user("bob", "Bob Jones")
        form.owner = "bob"
        form.created_by = "bob"

        owner = await ownership.change_owner(form, "Bob Jones")

        assert owner == "bob"
        assert form.transferred_on is None
        assert await documents.find(form.kind, form.id) is None

    @pytest.mark.asyncio
    async def test_only_owner_may_transfer(self, ownership, directory_client, form, bob):
        directory_client.add_user("bob", "Bob Jones")
        with pytest.raises(UnauthorizedError):
            await ownership.change_owner(form, "Bob Jones", bob)
        assert directory_client.calls == []

    @pytest.mark.asyncio
    async def test_empty_name(self, ownership, form, alice):
        with pytest.raises(BadRequestError):
            await ownership.change_owner(form, "", alice)

    @pytest.mark.asyncio
    async def test_transfer_is_audited(self, ownership, directory_client, binder, alice):
        directory_client.add_user("carol", "Carol White")
        with patch("traveler.security.ownership.log") as mock_log:
            await ownership.change_owner(binder, "Carol White", alice)
        entry = mock_log.call_args[0][0]
        assert entry.object_type == "binders"
        assert entry.data["previous_owner"] == "alice"
        assert entry.data["owner"] == "carol"
        assert entry.data["user_id"] == "alice"

    @pytest.mark.asyncio
    async def test_previous_owner_loses_owner_rights(self, ownership, directory_client, form, alice):
        from traveler.security.access import is_owner

        directory_client.add_user("bob", "Bob Jones")
        await ownership.change_owner(form, "Bob Jones", alice)
        assert is_owner(alice, form) is False
