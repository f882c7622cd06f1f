"""
User and Group Models

Profiles come from the user directory collaborator. Groups store a
denormalized snapshot of each member's profile (member_details) taken
when the member was added.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from splitbook.models.money import CurrencyCode


class UserProfile(BaseModel):
    """A user as seen by the settlement core."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    uid: str = Field(..., min_length=1)
    email: str
    display_name: Optional[str] = None
    default_currency: CurrencyCode = CurrencyCode.USD
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def label(self) -> str:
        """Name to show in activity entries."""
        return self.display_name or self.email

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "UserProfile":
        return cls.model_validate({**data, "uid": doc_id})


class GroupMemberDetail(BaseModel):
    """Snapshot of a member's profile stored on the group."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    uid: str
    email: str
    display_name: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "GroupMemberDetail":
        return cls(uid=profile.uid, email=profile.email, display_name=profile.display_name)


class Group(BaseModel):
    """A set of users who share expenses."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    member_ids: list[str] = Field(default_factory=list)
    member_details: list[GroupMemberDetail] = Field(default_factory=list)

    def is_member(self, user_id: str) -> bool:
        return user_id in self.member_ids

    def member_detail(self, user_id: str) -> Optional[GroupMemberDetail]:
        for detail in self.member_details:
            if detail.uid == user_id:
                return detail
        return None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict) -> "Group":
        return cls.model_validate({**data, "id": doc_id})


class GroupMutationResult(BaseModel):
    """Outcome of a group change. group is None when the group was deleted."""

    group: Optional[Group] = None
    group_deleted: bool = False
    warnings: list[str] = Field(default_factory=list)
