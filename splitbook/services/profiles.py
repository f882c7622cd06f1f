"""
Profile directory backed by the document store.

Profiles live in the `users` collection keyed by uid. Emails are matched
case-insensitively.
"""

from typing import Optional

from splitbook.models.group import UserProfile
from splitbook.services.storage.interface import (
    USERS,
    DocumentStoreInterface,
    FieldFilter,
    ProfileDirectoryInterface,
)


class DocumentProfileDirectory(ProfileDirectoryInterface):
    """Looks up UserProfile documents in the `users` collection."""

    def __init__(self, store: DocumentStoreInterface):
        self._store = store

    async def get_profile(self, uid: str) -> Optional[UserProfile]:
        data = await self._store.get(USERS, uid)
        if data is None:
            return None
        return UserProfile.from_document(uid, data)

    async def get_profile_by_email(self, email: str) -> Optional[UserProfile]:
        matches = await self._store.query(
            USERS,
            filters=[FieldFilter(field="email", value=email.strip().lower())],
            limit=1,
        )
        if not matches:
            return None
        return UserProfile.from_document(matches[0].id, matches[0].data)

    async def save_profile(self, profile: UserProfile) -> None:
        data = profile.to_document()
        data["email"] = profile.email.strip().lower()
        existing = await self._store.get(USERS, profile.uid)
        if existing is None:
            await self._store.create(USERS, data, doc_id=profile.uid)
        else:
            await self._store.update(USERS, profile.uid, data)
