"""
Activity Recorder

DESIGN DECISION: Every mutating operation in the settlement core is
recorded. This provides:
1. A history users can read ("Alice settled her share of Dinner")
2. An audit trail for settlement reversals
3. Debugging capability when balances look wrong

The recorder:
- Always logs locally through structlog
- Persists to activity storage when one is configured
- Never raises: a failed write is reported as False so the caller can
  surface a warning without rolling back the mutation
"""

from typing import Any, Callable, Optional

import structlog

from splitbook.models.activity import ActivityEvent, ActivityEventBuilder, ActivitySeverity
from splitbook.models.ledger import Participant, SplitLedger
from splitbook.services.storage import ActivityStorageInterface, ProfileDirectoryInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


ACTIVITY_WARNING = "The change was saved, but it could not be added to the activity log."


class ActivityRecorder:
    """
    Central activity recording service.

    Records events both to:
    1. Structured local log (for debugging)
    2. Activity storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[ActivityStorageInterface] = None,
        profiles: Optional[ProfileDirectoryInterface] = None,
        persist: bool = True,
    ):
        """
        Initialize activity recorder.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            profiles: Directory used to resolve actor display names.
            persist: Set False to keep local logging only.
        """
        self._storage = storage if persist else None
        self._profiles = profiles
        self._logger = structlog.get_logger(__name__)

    async def record(self, event: ActivityEvent) -> bool:
        """
        Record an activity event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == ActivitySeverity.ERROR:
            self._logger.error("activity_event", **log_dict)
        elif event.severity == ActivitySeverity.WARNING:
            self._logger.warning("activity_event", **log_dict)
        else:
            self._logger.info("activity_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "activity_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                    action_type=event.action_type.value,
                )
                return False

        return True

    async def emit(self, build: Callable[..., ActivityEvent], **fields: Any) -> bool:
        """
        Build an event with an ActivityEventBuilder method and record it.

        Mutations are already saved when their event is built, so an
        event that can't be built is reported like a failed write.
        """
        try:
            event = build(**fields)
        except Exception as e:
            self._logger.error(
                "activity_event_invalid",
                builder=getattr(getattr(build, "func", build), "__name__", repr(build)),
                error=str(e),
            )
            return False
        return await self.record(event)

    async def resolve_name(self, user_id: str) -> str:
        """Display name for a user, falling back to the raw id."""
        if self._profiles is None:
            return user_id
        try:
            profile = await self._profiles.get_profile(user_id)
        except Exception as e:
            self._logger.warning("profile_lookup_failed", user_id=user_id, error=str(e))
            return user_id
        return profile.label if profile else user_id

    async def record_expense_split(self, actor_id: str, ledger: SplitLedger) -> bool:
        """Record creation of a split ledger."""
        return await self.emit(
            ActivityEventBuilder.expense_split,
            actor_id=actor_id,
            actor_name=await self.resolve_name(actor_id),
            ledger_id=ledger.id,
            expense_id=ledger.original_expense_id,
            expense_description=ledger.original_expense_description,
            total=ledger.total.format(),
            method=ledger.split_method.value,
            participant_count=len(ledger.participants),
            group_id=ledger.group_id,
        )

    async def record_split_updated(
        self,
        actor_id: str,
        ledger: SplitLedger,
        previous_method: str,
    ) -> bool:
        """Record a change to a ledger's shares or notes."""
        return await self.emit(
            ActivityEventBuilder.split_updated,
            actor_id=actor_id,
            actor_name=await self.resolve_name(actor_id),
            ledger_id=ledger.id,
            expense_id=ledger.original_expense_id,
            expense_description=ledger.original_expense_description,
            previous_method=previous_method,
            new_method=ledger.split_method.value,
            group_id=ledger.group_id,
        )

    async def record_settlement_updated(
        self,
        actor_id: str,
        ledger: SplitLedger,
        participant: Participant,
        was_settled: bool,
    ) -> bool:
        """Record one participant's settled flag changing."""
        member_name = participant.display_name or await self.resolve_name(participant.user_id)
        return await self.emit(
            ActivityEventBuilder.settlement_updated,
            actor_id=actor_id,
            actor_name=await self.resolve_name(actor_id),
            ledger_id=ledger.id,
            expense_id=ledger.original_expense_id,
            expense_description=ledger.original_expense_description,
            member_id=participant.user_id,
            member_name=member_name,
            was_settled=was_settled,
            is_settled=participant.is_settled,
            group_id=ledger.group_id,
        )

    async def record_split_deleted(self, actor_id: str, ledger: SplitLedger) -> bool:
        """Record deletion of a whole ledger."""
        return await self.emit(
            ActivityEventBuilder.split_deleted,
            actor_id=actor_id,
            actor_name=await self.resolve_name(actor_id),
            ledger_id=ledger.id,
            expense_id=ledger.original_expense_id,
            expense_description=ledger.original_expense_description,
            group_id=ledger.group_id,
        )

    async def get_group_activity(self, group_id: str, limit: int = 100) -> list[ActivityEvent]:
        """Activity for one group, newest first. Empty without storage."""
        if self._storage is None:
            return []
        return await self._storage.get_events_for_group(group_id, limit=limit)
