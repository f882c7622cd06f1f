"""
Group Service

Groups are sets of users who share expenses. Each group document holds
the member ids and a snapshot of each member's profile taken when they
joined.

Membership changes are single-document transactions on the group. The
creator is always a member. When the last member leaves, the group is
deleted.
"""

from functools import partial
from typing import Optional

import structlog

from splitbook.activity import ACTIVITY_WARNING, ActivityRecorder
from splitbook.models.activity import ActivityEventBuilder
from splitbook.models.group import Group, GroupMemberDetail, GroupMutationResult, UserProfile
from splitbook.services.storage import (
    GROUPS,
    USERS,
    DocumentStoreInterface,
    FieldFilter,
    NotFoundError,
    ProfileDirectoryInterface,
    Transaction,
)


logger = structlog.get_logger(__name__)


class NotGroupMemberError(ValueError):
    """A user who is not a member tried to act on or be removed from a group."""

    def __init__(self, group_id: str, user_id: str):
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a member of group {group_id}")


class GroupService:
    """Creates groups and manages their membership."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        recorder: ActivityRecorder,
        profiles: ProfileDirectoryInterface,
    ):
        self._store = store
        self._recorder = recorder
        self._profiles = profiles

    async def _require_profile(self, uid: str) -> UserProfile:
        profile = await self._profiles.get_profile(uid)
        if profile is None:
            raise NotFoundError(USERS, uid)
        return profile

    async def _record_all(self, events: list[partial]) -> list[str]:
        warnings = []
        for build in events:
            if not await self._recorder.emit(build):
                warnings.append(ACTIVITY_WARNING)
        # One warning is enough however many events failed
        return warnings[:1]

    async def create_group(
        self,
        creator_id: str,
        name: str,
        member_ids: Optional[list[str]] = None,
    ) -> GroupMutationResult:
        """
        Create a group. The creator is always the first member.

        Raises:
            NotFoundError: If any member has no profile
        """
        ordered = [creator_id]
        for uid in member_ids or []:
            if uid not in ordered:
                ordered.append(uid)

        details = [
            GroupMemberDetail.from_profile(await self._require_profile(uid))
            for uid in ordered
        ]
        group = Group(
            name=name,
            created_by=creator_id,
            member_ids=ordered,
            member_details=details,
        )
        group_id = await self._store.create(GROUPS, group.to_document())
        group = group.model_copy(update={"id": group_id})

        logger.info("group_created", group_id=group_id, member_count=len(ordered))

        creator_name = details[0].display_name or details[0].email
        warnings = await self._record_all([
            partial(
                ActivityEventBuilder.group_created,
                actor_id=creator_id,
                actor_name=creator_name,
                group_id=group_id,
                group_name=group.name,
                member_count=len(ordered),
            )
        ])
        return GroupMutationResult(group=group, warnings=warnings)

    async def rename_group(
        self,
        group_id: str,
        new_name: str,
        actor_id: str,
    ) -> GroupMutationResult:
        """
        Rename a group. Only members may rename it.

        Raises:
            NotFoundError: If the group doesn't exist
            NotGroupMemberError: If the actor is not a member
        """
        previous_name = ""

        async def _rename(txn: Transaction) -> Group:
            nonlocal previous_name
            group = await self._load(txn, group_id)
            if not group.is_member(actor_id):
                raise NotGroupMemberError(group_id, actor_id)
            previous_name = group.name
            renamed = Group.model_validate({**group.model_dump(), "name": new_name})
            await txn.update(GROUPS, group_id, {"name": renamed.name})
            return renamed

        group = await self._store.run_transaction(_rename)
        logger.info("group_renamed", group_id=group_id)

        warnings = await self._record_all([
            partial(
                ActivityEventBuilder.group_renamed,
                actor_id=actor_id,
                actor_name=await self._recorder.resolve_name(actor_id),
                group_id=group_id,
                previous_name=previous_name,
                new_name=group.name,
            )
        ])
        return GroupMutationResult(group=group, warnings=warnings)

    async def add_members(
        self,
        group_id: str,
        member_ids: list[str],
        actor_id: str,
    ) -> GroupMutationResult:
        """
        Add users to a group. Users who are already members are ignored.

        Raises:
            NotFoundError: If the group or a new member's profile doesn't exist
            NotGroupMemberError: If the actor is not a member
        """
        profiles = {uid: await self._require_profile(uid) for uid in dict.fromkeys(member_ids)}
        added: list[GroupMemberDetail] = []

        async def _add(txn: Transaction) -> Group:
            added.clear()
            group = await self._load(txn, group_id)
            if not group.is_member(actor_id):
                raise NotGroupMemberError(group_id, actor_id)

            for uid, profile in profiles.items():
                if group.is_member(uid):
                    continue
                detail = GroupMemberDetail.from_profile(profile)
                group.member_ids.append(uid)
                group.member_details.append(detail)
                added.append(detail)

            if added:
                await txn.set(GROUPS, group_id, group.to_document())
            return group

        group = await self._store.run_transaction(_add)
        if added:
            logger.info("group_members_added", group_id=group_id, count=len(added))

        actor_name = await self._recorder.resolve_name(actor_id)
        warnings = await self._record_all([
            partial(
                ActivityEventBuilder.member_added,
                actor_id=actor_id,
                actor_name=actor_name,
                group_id=group_id,
                member_id=detail.uid,
                member_name=detail.display_name or detail.email,
            )
            for detail in added
        ])
        return GroupMutationResult(group=group, warnings=warnings)

    async def add_member_by_email(
        self,
        group_id: str,
        email: str,
        actor_id: str,
    ) -> GroupMutationResult:
        """
        Add a user found by email.

        Raises:
            NotFoundError: If no user has that email
        """
        profile = await self._profiles.get_profile_by_email(email)
        if profile is None:
            raise NotFoundError(USERS, email, message=f"No user with email {email}")
        return await self.add_members(group_id, [profile.uid], actor_id)

    async def remove_member(
        self,
        group_id: str,
        member_id: str,
        actor_id: str,
    ) -> GroupMutationResult:
        """
        Remove a member, or leave when member_id is the actor.

        Removing the last member deletes the group.

        Raises:
            NotFoundError: If the group doesn't exist
            NotGroupMemberError: If the actor or member_id is not a member
        """
        removed_detail: Optional[GroupMemberDetail] = None

        async def _remove(txn: Transaction) -> Group:
            nonlocal removed_detail
            group = await self._load(txn, group_id)
            if not group.is_member(actor_id):
                raise NotGroupMemberError(group_id, actor_id)
            if not group.is_member(member_id):
                raise NotGroupMemberError(group_id, member_id)

            removed_detail = group.member_detail(member_id)
            group.member_ids = [uid for uid in group.member_ids if uid != member_id]
            group.member_details = [d for d in group.member_details if d.uid != member_id]

            if group.member_ids:
                await txn.set(GROUPS, group_id, group.to_document())
            else:
                await txn.delete(GROUPS, group_id)
            return group

        group = await self._store.run_transaction(_remove)
        deleted = not group.member_ids

        logger.info(
            "group_member_removed",
            group_id=group_id,
            member_id=member_id,
            group_deleted=deleted,
        )

        actor_name = await self._recorder.resolve_name(actor_id)
        member_name = (
            (removed_detail.display_name or removed_detail.email)
            if removed_detail
            else member_id
        )
        events = [
            partial(
                ActivityEventBuilder.member_removed,
                actor_id=actor_id,
                actor_name=actor_name,
                group_id=group_id,
                member_id=member_id,
                member_name=member_name,
            )
        ]
        if deleted:
            events.append(partial(
                ActivityEventBuilder.group_deleted,
                actor_id=actor_id,
                actor_name=actor_name,
                group_id=group_id,
                group_name=group.name,
            ))
        warnings = await self._record_all(events)

        return GroupMutationResult(
            group=None if deleted else group,
            group_deleted=deleted,
            warnings=warnings,
        )

    async def get_group(self, group_id: str) -> Optional[Group]:
        data = await self._store.get(GROUPS, group_id)
        if data is None:
            return None
        return Group.from_document(group_id, data)

    async def list_groups_for_user(self, user_id: str) -> list[Group]:
        snapshots = await self._store.query(
            GROUPS,
            filters=[FieldFilter(field="memberIds", op="array_contains", value=user_id)],
            order_by="createdAt",
            descending=True,
        )
        return [Group.from_document(snap.id, snap.data) for snap in snapshots]

    async def get_group_activity(self, group_id: str, limit: int = 100) -> list:
        """Group activity, newest first."""
        return await self._recorder.get_group_activity(group_id, limit=limit)

    @staticmethod
    async def _load(txn: Transaction, group_id: str) -> Group:
        data = await txn.get(GROUPS, group_id)
        if data is None:
            raise NotFoundError(GROUPS, group_id)
        return Group.from_document(group_id, data)
