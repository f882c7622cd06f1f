"""Split allocation package."""

from splitbook.splitting.allocator import (
    SplitValidationError,
    allocate,
    check_participants,
    shares_from_participants,
)

__all__ = [
    "SplitValidationError",
    "allocate",
    "check_participants",
    "shares_from_participants",
]
