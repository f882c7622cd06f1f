"""Tests for SettlementLedgerService against the in-memory store."""

import asyncio

import pytest
from decimal import Decimal

from splitbook.activity import ACTIVITY_WARNING, ActivityRecorder
from splitbook.ledger import ParticipantNotFoundError, SettlementLedgerService
from splitbook.models import (
    ActivityActionType,
    ActivitySeverity,
    CurrencyCode,
    Money,
    ShareInput,
    ShareUpdate,
    SplitMethod,
    UserProfile,
)
from splitbook.services.storage import SPLIT_LEDGERS, InMemoryProfileDirectory, NotFoundError
from splitbook.splitting import SplitValidationError


def usd(amount):
    return Money(amount=Decimal(amount), currency=CurrencyCode.USD)


@pytest.fixture
def split_dinner(ledger_service, add_expense):
    """Split a 100.00 dinner paid by alice equally among alice, bob and carol."""
    async def _split(method=SplitMethod.EQUALLY, shares=None):
        expense = await add_expense()
        return await ledger_service.create(
            expense_id=expense.id,
            description=expense.description,
            total=expense.money,
            method=method,
            payer_id="alice",
            shares=shares or [
                ShareInput(user_id="bob"),
                ShareInput(user_id="carol"),
                ShareInput(user_id="alice"),
            ],
        )
    return _split


class TestCreate:
    """Tests for ledger creation."""

    async def test_equal_split_persisted(self, split_dinner, store):
        """The ledger is stored with reconciled shares."""
        result = await split_dinner()
        ledger = result.ledger

        assert [p.amount_owed for p in ledger.participants] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]
        stored = await store.get(SPLIT_LEDGERS, ledger.id)
        assert stored["totalAmount"] == "100.00"
        assert stored["involvedUserIds"] == ["alice", "bob", "carol"]
        assert result.warnings == []

    async def test_payer_marked_settled(self, split_dinner):
        """The payer owes themselves nothing."""
        ledger = (await split_dinner()).ledger
        assert ledger.get_participant("alice").is_settled is True
        assert ledger.get_participant("bob").is_settled is False

    async def test_display_names_snapshotted(self, split_dinner):
        """Participant names come from the profile directory."""
        ledger = (await split_dinner()).ledger
        bob = ledger.get_participant("bob")
        assert bob.display_name == "Bob"
        assert bob.email == "bob@example.com"

    async def test_payer_must_participate(self, ledger_service, add_expense):
        """Test that the payer is required among participants."""
        expense = await add_expense()
        with pytest.raises(SplitValidationError) as exc_info:
            await ledger_service.create(
                expense_id=expense.id,
                description="Dinner",
                total=expense.money,
                method=SplitMethod.EQUALLY,
                payer_id="alice",
                shares=[ShareInput(user_id="bob")],
            )
        assert exc_info.value.user_id == "alice"

    async def test_rejected_split_writes_nothing(self, split_dinner, store):
        """A share mismatch leaves storage untouched."""
        with pytest.raises(SplitValidationError):
            await split_dinner(
                method=SplitMethod.BY_AMOUNT,
                shares=[
                    ShareInput(user_id="alice", amount_owed="50"),
                    ShareInput(user_id="bob", amount_owed="45"),
                ],
            )
        assert await store.query(SPLIT_LEDGERS) == []

    async def test_missing_expense(self, ledger_service):
        """Test that the expense must exist."""
        with pytest.raises(NotFoundError):
            await ledger_service.create(
                expense_id="nope",
                description="Ghost",
                total=usd("10"),
                method=SplitMethod.EQUALLY,
                payer_id="alice",
                shares=[ShareInput(user_id="alice")],
            )

    async def test_personal_split_event(self, split_dinner, activity_storage):
        """Creating a split records EXPENSE_SPLIT."""
        await split_dinner()
        events = activity_storage.events
        assert events[-1].action_type == ActivityActionType.EXPENSE_SPLIT
        assert events[-1].actor_display_name == "Alice"

    async def test_activity_failure_is_a_warning(self, store, profiles, failing_recorder, add_expense):
        """A failed activity write does not undo the split."""
        service = SettlementLedgerService(store, failing_recorder, profiles)
        expense = await add_expense()
        result = await service.create(
            expense_id=expense.id,
            description=expense.description,
            total=expense.money,
            method=SplitMethod.EQUALLY,
            payer_id="alice",
            shares=[ShareInput(user_id="alice"), ShareInput(user_id="bob")],
        )
        assert result.warnings == [ACTIVITY_WARNING]
        assert await store.get(SPLIT_LEDGERS, result.ledger.id) is not None

    async def test_no_participants(self, ledger_service, add_expense):
        """An empty share list is rejected before the payer check."""
        expense = await add_expense()
        with pytest.raises(SplitValidationError) as exc_info:
            await ledger_service.create(
                expense_id=expense.id,
                description="Dinner",
                total=expense.money,
                method=SplitMethod.EQUALLY,
                payer_id="alice",
                shares=[],
            )
        assert exc_info.value.field == "participants"
        assert "At least one participant" in str(exc_info.value)


class TestLongActivityText:
    """Long descriptions and names never fail a saved change."""

    @pytest.fixture
    def long_names(self, store, activity_storage):
        profiles = InMemoryProfileDirectory([
            UserProfile(uid="alice", email="alice@example.com", display_name="A" * 200),
            UserProfile(uid="bob", email="bob@example.com", display_name="B" * 200),
        ])
        return SettlementLedgerService(store, ActivityRecorder(activity_storage, profiles), profiles)

    async def test_create_and_settle(self, long_names, add_expense, activity_storage, store):
        """Test a long description with long participant names."""
        expense = await add_expense(description="D" * 150)
        created = await long_names.create(
            expense_id=expense.id,
            description=expense.description,
            total=expense.money,
            method=SplitMethod.EQUALLY,
            payer_id="alice",
            shares=[ShareInput(user_id="alice"), ShareInput(user_id="bob")],
        )
        settled = await long_names.set_participant_settlement(
            created.ledger.id, "bob", True, actor_id="alice"
        )

        assert created.warnings == []
        assert settled.warnings == []
        stored = await store.get(SPLIT_LEDGERS, created.ledger.id)
        assert stored["participants"][1]["isSettled"] is True

        event = activity_storage.events[-1]
        assert event.action_type == ActivityActionType.SETTLEMENT_UPDATED
        assert len(event.details) <= 500
        assert event.details.endswith("...")

    async def test_very_long_description(self, ledger_service, add_expense, activity_storage):
        """Test a description longer than the activity text limit."""
        expense = await add_expense()
        result = await ledger_service.create(
            expense_id=expense.id,
            description="X" * 480,
            total=expense.money,
            method=SplitMethod.EQUALLY,
            payer_id="alice",
            shares=[ShareInput(user_id="alice"), ShareInput(user_id="bob")],
        )
        assert result.warnings == []
        assert len(activity_storage.events[-1].details) == 500


class TestUpdateShares:
    """Tests for editing a ledger's shares."""

    async def test_switch_to_amounts(self, split_dinner, ledger_service):
        """New shares are validated against the original total."""
        ledger = (await split_dinner()).ledger
        result = await ledger_service.update_shares(
            ledger.id,
            ShareUpdate(
                method=SplitMethod.BY_AMOUNT,
                shares=[
                    ShareInput(user_id="alice", amount_owed="20"),
                    ShareInput(user_id="bob", amount_owed="50"),
                    ShareInput(user_id="carol", amount_owed="30"),
                ],
            ),
            actor_id="alice",
        )
        updated = result.ledger
        assert updated.split_method == SplitMethod.BY_AMOUNT
        # Stored order is kept, not the order of the new shares
        assert [(p.user_id, p.amount_owed) for p in updated.participants] == [
            ("bob", Decimal("50")),
            ("carol", Decimal("30")),
            ("alice", Decimal("20")),
        ]
        assert updated.get_participant("alice").is_settled is True
        assert updated.get_participant("bob").display_name == "Bob"

    async def test_mismatch_leaves_ledger_unchanged(self, split_dinner, ledger_service):
        """A failed update writes nothing."""
        ledger = (await split_dinner()).ledger
        with pytest.raises(SplitValidationError) as exc_info:
            await ledger_service.update_shares(
                ledger.id,
                ShareUpdate(
                    method=SplitMethod.BY_AMOUNT,
                    shares=[
                        ShareInput(user_id="alice", amount_owed="20"),
                        ShareInput(user_id="bob", amount_owed="50"),
                        ShareInput(user_id="carol", amount_owed="25"),
                    ],
                ),
                actor_id="alice",
            )
        assert exc_info.value.ledger_id == ledger.id
        assert "95.00" in str(exc_info.value)

        unchanged = await ledger_service.get_ledger(ledger.id)
        assert unchanged.split_method == SplitMethod.EQUALLY
        assert [(p.user_id, p.amount_owed) for p in unchanged.participants] == [
            (p.user_id, p.amount_owed) for p in ledger.participants
        ]

    async def test_participant_set_is_fixed(self, split_dinner, ledger_service):
        """Participants can't be added or dropped on edit."""
        ledger = (await split_dinner()).ledger
        with pytest.raises(SplitValidationError):
            await ledger_service.update_shares(
                ledger.id,
                ShareUpdate(
                    method=SplitMethod.BY_AMOUNT,
                    shares=[
                        ShareInput(user_id="alice", amount_owed="50"),
                        ShareInput(user_id="dave", amount_owed="50"),
                    ],
                ),
                actor_id="alice",
            )

    async def test_percentages_reconcile(self, split_dinner, ledger_service):
        """Test switching to a percentage split."""
        ledger = (await split_dinner()).ledger
        result = await ledger_service.update_shares(
            ledger.id,
            ShareUpdate(
                method=SplitMethod.BY_PERCENTAGE,
                shares=[
                    ShareInput(user_id="bob", percentage="33.33"),
                    ShareInput(user_id="carol", percentage="33.33"),
                    ShareInput(user_id="alice", percentage="33.34"),
                ],
            ),
            actor_id="bob",
        )
        total = sum(p.amount_owed for p in result.ledger.participants)
        assert abs(total - Decimal("100.00")) < Decimal("0.01")

    async def test_notes_only(self, split_dinner, ledger_service, activity_storage):
        """Notes can change without reallocation."""
        ledger = (await split_dinner()).ledger
        result = await ledger_service.update_shares(
            ledger.id, ShareUpdate(notes="Tip included"), actor_id="alice"
        )
        assert result.ledger.notes == "Tip included"
        assert [p.amount_owed for p in result.ledger.participants] == [
            p.amount_owed for p in ledger.participants
        ]
        assert activity_storage.events[-1].action_type == ActivityActionType.SPLIT_UPDATED

    async def test_missing_ledger(self, ledger_service):
        """Test that updating an unknown ledger fails."""
        with pytest.raises(NotFoundError):
            await ledger_service.update_shares("nope", ShareUpdate(notes="x"), actor_id="alice")


class TestSettlement:
    """Tests for flipping a participant's settled flag."""

    async def test_settle_and_reverse(self, split_dinner, ledger_service, activity_storage):
        """Settling then unsettling records both, the reversal as a warning."""
        ledger = (await split_dinner()).ledger

        settled = await ledger_service.set_participant_settlement(
            ledger.id, "bob", True, actor_id="bob"
        )
        assert settled.ledger.get_participant("bob").is_settled is True

        reversed_ = await ledger_service.set_participant_settlement(
            ledger.id, "bob", False, actor_id="alice"
        )
        assert reversed_.ledger.get_participant("bob").is_settled is False

        settlement_events = [
            e for e in activity_storage.events
            if e.action_type == ActivityActionType.SETTLEMENT_UPDATED
        ]
        assert [e.severity for e in settlement_events] == [
            ActivitySeverity.INFO,
            ActivitySeverity.WARNING,
        ]
        assert settlement_events[0].related_member_id == "bob"
        assert "Dinner" in settlement_events[0].details

    async def test_setting_same_value_is_a_no_op(self, split_dinner, ledger_service, activity_storage):
        """No write and no event when nothing changes."""
        ledger = (await split_dinner()).ledger
        before = len(activity_storage.events)
        result = await ledger_service.set_participant_settlement(
            ledger.id, "alice", True, actor_id="alice"
        )
        assert result.ledger.get_participant("alice").is_settled is True
        assert len(activity_storage.events) == before

    async def test_unknown_participant(self, split_dinner, ledger_service):
        """Test that only participants can be settled."""
        ledger = (await split_dinner()).ledger
        with pytest.raises(ParticipantNotFoundError) as exc_info:
            await ledger_service.set_participant_settlement(
                ledger.id, "dave", True, actor_id="dave"
            )
        assert exc_info.value.user_id == "dave"
        assert isinstance(exc_info.value, NotFoundError)

    async def test_concurrent_flips_keep_both(self, split_dinner, ledger_service):
        """Concurrent flips on different participants don't clobber each other."""
        ledger = (await split_dinner()).ledger
        await asyncio.gather(
            ledger_service.set_participant_settlement(ledger.id, "bob", True, actor_id="bob"),
            ledger_service.set_participant_settlement(ledger.id, "carol", True, actor_id="carol"),
        )
        stored = await ledger_service.get_ledger(ledger.id)
        assert stored.is_fully_settled


class TestQueriesAndDelete:
    """Tests for ledger lookups and deletion."""

    async def test_lookups(self, split_dinner, ledger_service):
        """Test finding ledgers by user and by expense."""
        ledger = (await split_dinner()).ledger
        assert [l.id for l in await ledger_service.list_ledgers_for_user("carol")] == [ledger.id]
        assert await ledger_service.list_ledgers_for_user("dave") == []
        found = await ledger_service.find_ledgers_for_expense(ledger.original_expense_id)
        assert [l.id for l in found] == [ledger.id]

    async def test_delete(self, split_dinner, ledger_service, activity_storage):
        """Deleting removes the whole ledger and records it."""
        ledger = (await split_dinner()).ledger
        await ledger_service.delete_ledger(ledger.id, actor_id="alice")
        assert await ledger_service.get_ledger(ledger.id) is None
        assert activity_storage.events[-1].action_type == ActivityActionType.SPLIT_DELETED

        with pytest.raises(NotFoundError):
            await ledger_service.delete_ledger(ledger.id, actor_id="alice")


class TestGroupSplit:
    """Tests for splitting within a group."""

    async def test_split_among_members(self, group_service, ledger_service, add_expense, activity_storage):
        """Every member gets an equal share; the event is the in-group type."""
        group = (await group_service.create_group("alice", "Flat", ["bob", "carol"])).group
        expense = await add_expense(amount="100.00", group_id=group.id)

        result = await ledger_service.split_expense_in_group(expense.id, group.id, actor_id="alice")
        ledger = result.ledger

        assert ledger.group_id == group.id
        assert ledger.group_name == "Flat"
        assert [(p.user_id, p.amount_owed) for p in ledger.participants] == [
            ("alice", Decimal("33.33")),
            ("bob", Decimal("33.33")),
            ("carol", Decimal("33.34")),
        ]
        assert activity_storage.events[-1].action_type == ActivityActionType.EXPENSE_SPLIT_IN_GROUP
        assert [l.id for l in await ledger_service.list_ledgers_for_group(group.id)] == [ledger.id]

    async def test_non_member_rejected(self, group_service, ledger_service, add_expense):
        """Group splits only include group members."""
        group = (await group_service.create_group("alice", "Flat", ["bob"])).group
        expense = await add_expense(group_id=group.id)
        with pytest.raises(SplitValidationError):
            await ledger_service.create(
                expense_id=expense.id,
                description=expense.description,
                total=expense.money,
                method=SplitMethod.EQUALLY,
                payer_id="alice",
                shares=[ShareInput(user_id="alice"), ShareInput(user_id="carol")],
                group_id=group.id,
            )
