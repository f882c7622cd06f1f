"""
Activity Models

Every state-changing operation in the settlement core produces an
activity event. This provides:
1. A history of who split, edited and settled what
2. An audit trail for settlement reversals
3. Debugging information when balances look wrong

DESIGN DECISION: The activity log is append-only. We never delete or
modify entries.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


# Longer text is cut, never rejected
DETAILS_MAX_LENGTH = 500
NAME_MAX_LENGTH = 200


def truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class ActivityActionType(str, Enum):
    """Types of events we record."""
    # Groups
    GROUP_CREATED = "GROUP_CREATED"
    GROUP_NAME_UPDATED = "GROUP_NAME_UPDATED"
    MEMBER_ADDED = "MEMBER_ADDED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    MEMBER_LEFT = "MEMBER_LEFT"
    GROUP_DELETED = "GROUP_DELETED"

    # Expenses
    EXPENSE_ADDED_TO_GROUP = "EXPENSE_ADDED_TO_GROUP"
    EXPENSE_UPDATED = "EXPENSE_UPDATED"
    EXPENSE_DELETED = "EXPENSE_DELETED"

    # Splits and settlement
    EXPENSE_SPLIT = "EXPENSE_SPLIT"
    EXPENSE_SPLIT_IN_GROUP = "EXPENSE_SPLIT_IN_GROUP"
    SPLIT_UPDATED = "SPLIT_UPDATED"
    SPLIT_DELETED = "SPLIT_DELETED"
    SETTLEMENT_UPDATED = "SETTLEMENT_UPDATED"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """
    A single activity event.

    Every mutating operation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Who and what
    actor_id: str = Field(
        ...,
        description="User who performed the action"
    )
    actor_display_name: str = Field(
        ...,
        description="Actor's name at the time of the action"
    )
    action_type: ActivityActionType
    severity: ActivitySeverity = ActivitySeverity.INFO
    details: str = Field(
        ...,
        description="Human-readable description of what happened"
    )

    # Context - what is this about?
    group_id: Optional[str] = None
    ledger_id: Optional[str] = None
    related_expense_id: Optional[str] = None
    related_expense_name: Optional[str] = None
    related_member_id: Optional[str] = None
    related_member_name: Optional[str] = None
    previous_value: Optional[str] = None
    new_value: Optional[str] = None

    # Additional machine-readable data
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("details", mode="before")
    @classmethod
    def cut_details(cls, v: Any) -> Any:
        return truncate(v, DETAILS_MAX_LENGTH) if isinstance(v, str) else v

    @field_validator(
        "actor_display_name",
        "related_expense_name",
        "related_member_name",
        "previous_value",
        "new_value",
        mode="before",
    )
    @classmethod
    def cut_names(cls, v: Any) -> Any:
        return truncate(v, NAME_MAX_LENGTH) if isinstance(v, str) else v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "action_type": self.action_type.value,
            "severity": self.severity.value,
            "details": self.details,
            "group_id": self.group_id,
            "ledger_id": self.ledger_id,
            "related_expense_id": self.related_expense_id,
            "related_member_id": self.related_member_id,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "data": self.data,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, actor_id, actor_display_name, action_type,
         severity, details, group_id, ledger_id, related_expense_id,
         related_expense_name, related_member_id, related_member_name,
         previous_value, new_value, data_json]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.actor_id,
            self.actor_display_name,
            self.action_type.value,
            self.severity.value,
            self.details,
            self.group_id or "",
            self.ledger_id or "",
            self.related_expense_id or "",
            self.related_expense_name or "",
            self.related_member_id or "",
            self.related_member_name or "",
            self.previous_value or "",
            self.new_value or "",
            json.dumps(self.data) if self.data else "",
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "ActivityEvent":
        """Inverse of to_sheets_row. Missing trailing cells read as empty."""
        def safe_get(index: int) -> str:
            try:
                return row[index] or ""
            except IndexError:
                return ""

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            actor_id=safe_get(2),
            actor_display_name=safe_get(3),
            action_type=ActivityActionType(safe_get(4)),
            severity=ActivitySeverity(safe_get(5) or "info"),
            details=safe_get(6),
            group_id=safe_get(7) or None,
            ledger_id=safe_get(8) or None,
            related_expense_id=safe_get(9) or None,
            related_expense_name=safe_get(10) or None,
            related_member_id=safe_get(11) or None,
            related_member_name=safe_get(12) or None,
            previous_value=safe_get(13) or None,
            new_value=safe_get(14) or None,
            data=json.loads(safe_get(15)) if safe_get(15) else {},
        )


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.expense_split(actor_id, actor_name, ledger)
        event = ActivityEventBuilder.settlement_updated(...)
    """

    @staticmethod
    def expense_split(
        actor_id: str,
        actor_name: str,
        ledger_id: str,
        expense_id: str,
        expense_description: str,
        total: str,
        method: str,
        participant_count: int,
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        in_group = group_id is not None
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=(
                ActivityActionType.EXPENSE_SPLIT_IN_GROUP
                if in_group
                else ActivityActionType.EXPENSE_SPLIT
            ),
            details=(
                f'{actor_name} split "{expense_description}" ({total}) '
                f"{method} among {participant_count} people"
            ),
            group_id=group_id,
            ledger_id=ledger_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            new_value=total,
            data={
                "split_method": method,
                "participant_count": participant_count,
            },
        )

    @staticmethod
    def split_updated(
        actor_id: str,
        actor_name: str,
        ledger_id: str,
        expense_id: str,
        expense_description: str,
        previous_method: str,
        new_method: str,
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.SPLIT_UPDATED,
            details=f'{actor_name} updated the split of "{expense_description}"',
            group_id=group_id,
            ledger_id=ledger_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            previous_value=previous_method,
            new_value=new_method,
        )

    @staticmethod
    def settlement_updated(
        actor_id: str,
        actor_name: str,
        ledger_id: str,
        expense_id: str,
        expense_description: str,
        member_id: str,
        member_name: str,
        was_settled: bool,
        is_settled: bool,
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        state = "settled" if is_settled else "unsettled"
        # settled -> unsettled is a reversal and gets flagged
        reversal = was_settled and not is_settled
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.SETTLEMENT_UPDATED,
            severity=ActivitySeverity.WARNING if reversal else ActivitySeverity.INFO,
            details=(
                f"{actor_name} marked {member_name}'s share of "
                f'"{expense_description}" as {state}'
            ),
            group_id=group_id,
            ledger_id=ledger_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            related_member_id=member_id,
            related_member_name=member_name,
            previous_value="settled" if was_settled else "unsettled",
            new_value=state,
            data={"reversal": reversal},
        )

    @staticmethod
    def split_deleted(
        actor_id: str,
        actor_name: str,
        ledger_id: str,
        expense_id: str,
        expense_description: str,
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.SPLIT_DELETED,
            details=f'{actor_name} deleted the split of "{expense_description}"',
            group_id=group_id,
            ledger_id=ledger_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
        )

    @staticmethod
    def expense_added_to_group(
        actor_id: str,
        actor_name: str,
        group_id: str,
        expense_id: str,
        expense_description: str,
        amount: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.EXPENSE_ADDED_TO_GROUP,
            details=f'{actor_name} added "{expense_description}" ({amount}) to the group',
            group_id=group_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            new_value=amount,
        )

    @staticmethod
    def expense_updated(
        actor_id: str,
        actor_name: str,
        expense_id: str,
        expense_description: str,
        changed_fields: list[str],
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.EXPENSE_UPDATED,
            details=f'{actor_name} edited "{expense_description}"',
            group_id=group_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            data={"changed_fields": changed_fields},
        )

    @staticmethod
    def expense_deleted(
        actor_id: str,
        actor_name: str,
        expense_id: str,
        expense_description: str,
        orphaned_ledger_ids: list[str],
        group_id: Optional[str] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.EXPENSE_DELETED,
            severity=(
                ActivitySeverity.WARNING if orphaned_ledger_ids else ActivitySeverity.INFO
            ),
            details=f'{actor_name} deleted "{expense_description}"',
            group_id=group_id,
            related_expense_id=expense_id,
            related_expense_name=expense_description,
            data={"orphaned_ledger_ids": orphaned_ledger_ids},
        )

    @staticmethod
    def group_created(
        actor_id: str,
        actor_name: str,
        group_id: str,
        group_name: str,
        member_count: int,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.GROUP_CREATED,
            details=f'{actor_name} created the group "{group_name}"',
            group_id=group_id,
            new_value=group_name,
            data={"member_count": member_count},
        )

    @staticmethod
    def group_renamed(
        actor_id: str,
        actor_name: str,
        group_id: str,
        previous_name: str,
        new_name: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.GROUP_NAME_UPDATED,
            details=f'{actor_name} renamed the group from "{previous_name}" to "{new_name}"',
            group_id=group_id,
            previous_value=previous_name,
            new_value=new_name,
        )

    @staticmethod
    def member_added(
        actor_id: str,
        actor_name: str,
        group_id: str,
        member_id: str,
        member_name: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.MEMBER_ADDED,
            details=f"{actor_name} added {member_name} to the group",
            group_id=group_id,
            related_member_id=member_id,
            related_member_name=member_name,
        )

    @staticmethod
    def member_removed(
        actor_id: str,
        actor_name: str,
        group_id: str,
        member_id: str,
        member_name: str,
    ) -> ActivityEvent:
        left = actor_id == member_id
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=(
                ActivityActionType.MEMBER_LEFT if left else ActivityActionType.MEMBER_REMOVED
            ),
            details=(
                f"{actor_name} left the group"
                if left
                else f"{actor_name} removed {member_name} from the group"
            ),
            group_id=group_id,
            related_member_id=member_id,
            related_member_name=member_name,
        )

    @staticmethod
    def group_deleted(
        actor_id: str,
        actor_name: str,
        group_id: str,
        group_name: str,
    ) -> ActivityEvent:
        return ActivityEvent(
            actor_id=actor_id,
            actor_display_name=actor_name,
            action_type=ActivityActionType.GROUP_DELETED,
            details=f'Group "{group_name}" was deleted after its last member left',
            group_id=group_id,
            previous_value=group_name,
        )
