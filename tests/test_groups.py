"""Tests for GroupService."""

import pytest

from splitbook.activity import ACTIVITY_WARNING
from splitbook.groups import GroupService, NotGroupMemberError
from splitbook.models import ActivityActionType
from splitbook.services.storage import GROUPS, NotFoundError


def action_types(activity_storage):
    return [e.action_type for e in activity_storage.events]


class TestCreateGroup:
    """Tests for group creation."""

    async def test_creator_is_first_member(self, group_service, store):
        """The creator is always a member, listed first."""
        result = await group_service.create_group("alice", "Trip", ["bob", "alice", "carol"])
        group = result.group

        assert group.member_ids == ["alice", "bob", "carol"]
        assert group.created_by == "alice"
        assert [d.display_name for d in group.member_details] == ["Alice", "Bob", "Carol"]
        assert (await store.get(GROUPS, group.id))["memberIds"] == ["alice", "bob", "carol"]

    async def test_records_group_created(self, group_service, activity_storage):
        """Test the creation event."""
        result = await group_service.create_group("alice", "Trip")
        event = activity_storage.events[-1]
        assert event.action_type == ActivityActionType.GROUP_CREATED
        assert event.group_id == result.group.id
        assert event.data["member_count"] == 1

    async def test_unknown_member(self, group_service):
        """Members need a profile."""
        with pytest.raises(NotFoundError):
            await group_service.create_group("alice", "Trip", ["nobody"])

    async def test_name_required(self, group_service):
        """Test that blank names are rejected."""
        with pytest.raises(ValueError):
            await group_service.create_group("alice", "   ")


class TestMembership:
    """Tests for adding and removing members."""

    async def test_add_members_skips_existing(self, group_service, activity_storage):
        """Only new members are added and recorded."""
        group = (await group_service.create_group("alice", "Trip", ["bob"])).group
        result = await group_service.add_members(group.id, ["bob", "carol"], actor_id="alice")

        assert result.group.member_ids == ["alice", "bob", "carol"]
        added = [e for e in activity_storage.events if e.action_type == ActivityActionType.MEMBER_ADDED]
        assert [e.related_member_id for e in added] == ["carol"]

    async def test_add_by_email(self, group_service):
        """Test adding a member found by email."""
        group = (await group_service.create_group("alice", "Trip")).group
        result = await group_service.add_member_by_email(group.id, "Carol@Example.com", "alice")
        assert result.group.is_member("carol")

        with pytest.raises(NotFoundError):
            await group_service.add_member_by_email(group.id, "ghost@example.com", "alice")

    async def test_outsider_cannot_add(self, group_service):
        """Only members can change membership."""
        group = (await group_service.create_group("alice", "Trip")).group
        with pytest.raises(NotGroupMemberError):
            await group_service.add_members(group.id, ["carol"], actor_id="bob")

    async def test_remove_and_leave(self, group_service, activity_storage):
        """Removing someone else vs leaving are different events."""
        group = (await group_service.create_group("alice", "Trip", ["bob", "carol"])).group

        removed = await group_service.remove_member(group.id, "bob", actor_id="alice")
        assert removed.group.member_ids == ["alice", "carol"]
        assert removed.group.member_detail("bob") is None

        await group_service.remove_member(group.id, "carol", actor_id="carol")
        assert action_types(activity_storage)[-2:] == [
            ActivityActionType.MEMBER_REMOVED,
            ActivityActionType.MEMBER_LEFT,
        ]

    async def test_last_member_leaving_deletes_group(self, group_service, activity_storage, store):
        """The group goes away with its last member."""
        group = (await group_service.create_group("alice", "Trip")).group
        result = await group_service.remove_member(group.id, "alice", actor_id="alice")

        assert result.group_deleted is True
        assert result.group is None
        assert await store.get(GROUPS, group.id) is None
        assert action_types(activity_storage)[-2:] == [
            ActivityActionType.MEMBER_LEFT,
            ActivityActionType.GROUP_DELETED,
        ]

    async def test_remove_non_member(self, group_service):
        """Test removing someone who isn't in the group."""
        group = (await group_service.create_group("alice", "Trip")).group
        with pytest.raises(NotGroupMemberError):
            await group_service.remove_member(group.id, "bob", actor_id="alice")


class TestRenameAndQueries:
    """Tests for renaming and listing groups."""

    async def test_rename(self, group_service, activity_storage):
        """Renaming records the previous and new names."""
        group = (await group_service.create_group("alice", "Trip", ["bob"])).group
        result = await group_service.rename_group(group.id, "Ski trip", actor_id="bob")

        assert result.group.name == "Ski trip"
        event = activity_storage.events[-1]
        assert event.action_type == ActivityActionType.GROUP_NAME_UPDATED
        assert (event.previous_value, event.new_value) == ("Trip", "Ski trip")
        assert event.actor_display_name == "Bob"

    async def test_rename_missing_group(self, group_service):
        """Test renaming an unknown group."""
        with pytest.raises(NotFoundError):
            await group_service.rename_group("nope", "x", actor_id="alice")

    async def test_list_for_user_and_activity(self, group_service):
        """Test listing groups and reading their activity."""
        trip = (await group_service.create_group("alice", "Trip", ["bob"])).group
        await group_service.create_group("carol", "Flat")

        groups = await group_service.list_groups_for_user("bob")
        assert [g.id for g in groups] == [trip.id]
        assert (await group_service.get_group(trip.id)).name == "Trip"

        activity = await group_service.get_group_activity(trip.id)
        assert activity[0].action_type == ActivityActionType.GROUP_CREATED

    async def test_activity_failure_is_a_warning(self, store, profiles, failing_recorder):
        """Membership changes stand even if activity can't be written."""
        service = GroupService(store, failing_recorder, profiles)
        result = await service.create_group("alice", "Trip", ["bob", "carol"])
        assert result.warnings == [ACTIVITY_WARNING]
        assert await store.get(GROUPS, result.group.id) is not None
