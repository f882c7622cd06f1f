"""Group management package."""

from splitbook.groups.service import GroupService, NotGroupMemberError

__all__ = ["GroupService", "NotGroupMemberError"]
