"""Tests for the token ledger service: records, validation, consumption, credits."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from healthy_meals.common.config import HealthyMealsSettings
from healthy_meals.common.database import DatabaseManager
from healthy_meals.common.exceptions import (
    InvalidAmountError,
    StorageError,
    UntrustedCreditError,
)
from healthy_meals.tokens.events import BalanceChanged
from healthy_meals.tokens.models import UserTokensModel
from healthy_meals.tokens.schemas import UsageKind
from healthy_meals.tokens.service import TokenLedgerService


def make_settings(**overrides) -> HealthyMealsSettings:
    defaults = {"db_url": "sqlite+aiosqlite://", "jwt_secret": "test-jwt-secret"}
    defaults.update(overrides)
    return HealthyMealsSettings(**defaults)


class RecordingNotifier:
    def __init__(self):
        self.events: list[BalanceChanged] = []

    async def balance_changed(self, event: BalanceChanged) -> None:
        self.events.append(event)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def svc(notifier):
    return TokenLedgerService(make_settings(), notifier=notifier)


async def _seed(db, svc, user_id="u1", balance=None):
    """Create a record and move its balance to ``balance``."""
    async with db.get_session() as session:
        await svc.ensure_record(session, user_id)
    if balance is not None:
        async with db.get_session() as session:
            row = (await session.execute(
                select(UserTokensModel).where(UserTokensModel.user_id == user_id)
            )).scalar_one()
            row.tokens_balance = balance


async def _balance(db, svc, user_id="u1"):
    async with db.get_session() as session:
        return await svc.get_balance(session, user_id)


class TestEnsureRecord:
    async def test_creates_with_signup_grant(self, db, svc):
        async with db.get_session() as session:
            created = await svc.ensure_record(session, "u1")
        assert created is True
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 10
        assert balance.total_generations_used == 0

    async def test_second_call_reports_existing(self, db, svc):
        async with db.get_session() as session:
            assert await svc.ensure_record(session, "u1") is True
        async with db.get_session() as session:
            assert await svc.ensure_record(session, "u1") is False

        async with db.get_session() as session:
            rows = (await session.execute(
                select(UserTokensModel).where(UserTokensModel.user_id == "u1")
            )).scalars().all()
        assert len(rows) == 1
        assert rows[0].tokens_balance == 10

    async def test_does_not_reset_spent_balance(self, db, svc):
        await _seed(db, svc, balance=3)
        async with db.get_session() as session:
            await svc.ensure_record(session, "u1")
        assert (await _balance(db, svc)).tokens_balance == 3

    async def test_custom_grant(self, db):
        svc = TokenLedgerService(make_settings(signup_grant=25))
        async with db.get_session() as session:
            await svc.ensure_record(session, "u1")
        assert (await _balance(db, svc)).tokens_balance == 25

    async def test_records_signup_transaction(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            history = await svc.list_transactions(session, "u1")
        assert len(history) == 1
        assert history[0].transaction_type == "signup"
        assert history[0].amount == 10

    async def test_notifies_only_on_creation(self, db, svc, notifier):
        await _seed(db, svc)
        await _seed(db, svc)
        assert notifier.events == [BalanceChanged("u1", 10, "signup")]


class TestGetBalance:
    async def test_missing_record(self, db, svc):
        assert await _balance(db, svc, "nobody") is None

    async def test_scoped_to_user(self, db, svc):
        await _seed(db, svc, "u1", balance=4)
        await _seed(db, svc, "u2")
        assert (await _balance(db, svc, "u1")).tokens_balance == 4
        assert (await _balance(db, svc, "u2")).tokens_balance == 10


class TestValidateForUsage:
    async def test_happy_path(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            v = await svc.validate_for_usage(session, "u1", "recipe_generation")
        assert v.can_proceed is True
        assert v.remaining_tokens == 10
        assert v.cost == 1

    async def test_exhausted_balance(self, db, svc):
        await _seed(db, svc, balance=0)
        async with db.get_session() as session:
            v = await svc.validate_for_usage(session, "u1", UsageKind.RECIPE_GENERATION)
        assert v.can_proceed is False
        assert v.remaining_tokens == 0
        assert v.cost == 1

    async def test_missing_record_counts_as_zero(self, db, svc):
        async with db.get_session() as session:
            v = await svc.validate_for_usage(session, "ghost", "recipe_generation")
        assert v.can_proceed is False
        assert v.remaining_tokens == 0

    async def test_photo_analysis_cost(self, db, svc):
        await _seed(db, svc, balance=1)
        async with db.get_session() as session:
            v = await svc.validate_for_usage(session, "u1", "photo_analysis")
        assert v.cost == 2
        assert v.can_proceed is False

    async def test_does_not_mutate(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.validate_for_usage(session, "u1", "recipe_generation")
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 10
        assert balance.total_generations_used == 0

    async def test_unknown_usage_kind(self, db, svc):
        async with db.get_session() as session:
            with pytest.raises(ValueError):
                await svc.validate_for_usage(session, "u1", "video_editing")


class TestConsume:
    async def test_happy_path(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            assert await svc.consume(session, "u1", "recipe_generation") is True
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 9
        assert balance.total_generations_used == 1

    async def test_exhausted_balance_writes_nothing(self, db, svc, notifier):
        await _seed(db, svc, balance=0)
        notifier.events.clear()
        async with db.get_session() as session:
            assert await svc.consume(session, "u1", "recipe_generation") is False
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 0
        assert balance.total_generations_used == 0
        assert notifier.events == []

    async def test_balance_below_cost(self, db, svc):
        await _seed(db, svc, balance=1)
        async with db.get_session() as session:
            assert await svc.consume(session, "u1", "photo_analysis") is False
        assert (await _balance(db, svc)).tokens_balance == 1

    async def test_missing_record(self, db, svc):
        async with db.get_session() as session:
            assert await svc.consume(session, "ghost", "recipe_generation") is False
        assert await _balance(db, svc, "ghost") is None

    async def test_exact_balance_reaches_zero(self, db, svc):
        await _seed(db, svc, balance=2)
        async with db.get_session() as session:
            assert await svc.consume(session, "u1", "photo_analysis") is True
        assert (await _balance(db, svc)).tokens_balance == 0

    async def test_records_usage_transaction(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.consume(session, "u1", "photo_analysis")
        async with db.get_session() as session:
            history = await svc.list_transactions(session, "u1")
        usage = [t for t in history if t.transaction_type == "usage"]
        assert len(usage) == 1
        assert usage[0].amount == -2
        assert usage[0].usage_kind == "photo_analysis"

    async def test_notifies_new_balance(self, db, svc, notifier):
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.consume(session, "u1", "recipe_generation")
        assert notifier.events[-1] == BalanceChanged("u1", 9, "usage")

    async def test_validate_then_consume_agree(self, db, svc):
        for balance in (0, 1, 2, 5):
            user_id = f"user-{balance}"
            await _seed(db, svc, user_id, balance=balance)
            for kind in UsageKind:
                async with db.get_session() as session:
                    v = await svc.validate_for_usage(session, user_id, kind)
                if not v.can_proceed:
                    continue
                async with db.get_session() as session:
                    assert await svc.consume(session, user_id, kind) is True

    async def test_rollback_leaves_balance(self, db, svc):
        await _seed(db, svc)
        with pytest.raises(RuntimeError):
            async with db.get_session() as session:
                await svc.consume(session, "u1", "recipe_generation")
                raise RuntimeError("request aborted")
        assert (await _balance(db, svc)).tokens_balance == 10

    async def test_rollback_publishes_nothing(self, db, svc, notifier):
        await _seed(db, svc)
        notifier.events.clear()
        with pytest.raises(RuntimeError):
            async with db.get_session() as session:
                await svc.consume(session, "u1", "recipe_generation")
                raise RuntimeError("request aborted")
        assert notifier.events == []

    async def test_event_waits_for_commit(self, db, notifier):
        seen_inside = []

        class CommittedBalanceCheck:
            async def balance_changed(self, event):
                notifier.events.append(event)
                seen_inside.append(await _balance(db, svc, event.user_id))

        svc = TokenLedgerService(make_settings(), notifier=CommittedBalanceCheck())
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.consume(session, "u1", "recipe_generation")
            assert notifier.events == [BalanceChanged("u1", 10, "signup")]

        assert notifier.events[-1] == BalanceChanged("u1", 9, "usage")
        assert seen_inside[-1].tokens_balance == 9


class TestConcurrentConsume:
    async def test_never_overspends(self, tmp_path):
        settings = make_settings(db_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        manager = DatabaseManager(settings)
        await manager.init()
        await manager.create_all()
        svc = TokenLedgerService(settings)
        try:
            async with manager.get_session() as session:
                await svc.ensure_record(session, "u1")

            async def attempt():
                async with manager.get_session() as session:
                    return await svc.consume(session, "u1", "recipe_generation")

            results = await asyncio.gather(*(attempt() for _ in range(14)))

            async with manager.get_session() as session:
                balance = await svc.get_balance(session, "u1")
        finally:
            await manager.close()

        assert results.count(True) == 10
        assert balance.tokens_balance == 0
        assert balance.total_generations_used == 10

    async def test_listener_runs_outside_write_transaction(self, tmp_path):
        settings = make_settings(db_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        manager = DatabaseManager(settings)
        await manager.init()
        await manager.create_all()
        other_user_done = asyncio.Event()

        class WaitingNotifier:
            async def balance_changed(self, event):
                if event.user_id == "u1" and event.reason == "usage":
                    await asyncio.wait_for(other_user_done.wait(), timeout=10)

        svc = TokenLedgerService(settings, notifier=WaitingNotifier())

        async def consume(user_id):
            async with manager.get_session() as session:
                return await svc.consume(session, user_id, "recipe_generation")

        async def other_user():
            result = await consume("u2")
            other_user_done.set()
            return result

        try:
            for user_id in ("u1", "u2"):
                async with manager.get_session() as session:
                    await svc.ensure_record(session, user_id)

            results = await asyncio.gather(consume("u1"), other_user())
        finally:
            await manager.close()

        assert results == [True, True]


class TestAddCredits:
    async def test_additive_and_usage_untouched(self, db, svc):
        await _seed(db, svc, balance=100)
        async with db.get_session() as session:
            await svc.consume(session, "u1", "recipe_generation")
        async with db.get_session() as session:
            assert await svc.add_credits(session, "u1", 500, trusted=True) is True
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 599
        assert balance.total_generations_used == 1

    async def test_creates_missing_record(self, db, svc):
        async with db.get_session() as session:
            await svc.add_credits(session, "u1", 500, trusted=True)
        balance = await _balance(db, svc)
        assert balance.tokens_balance == 500
        assert balance.total_generations_used == 0

    @pytest.mark.parametrize("amount", [0, -5, True, 1.5, "10"])
    async def test_rejects_invalid_amount(self, db, svc, amount):
        await _seed(db, svc)
        async with db.get_session() as session:
            with pytest.raises(InvalidAmountError):
                await svc.add_credits(session, "u1", amount, trusted=True)
        assert (await _balance(db, svc)).tokens_balance == 10

    async def test_untrusted_refused(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            with pytest.raises(UntrustedCreditError):
                await svc.add_credits(session, "u1", 50, trusted=False)
        assert (await _balance(db, svc)).tokens_balance == 10

    async def test_untrusted_allowed_when_self_service_enabled(self, db):
        svc = TokenLedgerService(make_settings(allow_self_service_credits=True))
        async with db.get_session() as session:
            assert await svc.add_credits(session, "u1", 50, trusted=False) is True
        assert (await _balance(db, svc)).tokens_balance == 50

    async def test_reference_applied_once(self, db, svc):
        for _ in range(2):
            async with db.get_session() as session:
                await svc.add_credits(session, "u1", 500, trusted=True, reference="pi_123")
        assert (await _balance(db, svc)).tokens_balance == 500

    async def test_reference_replay_returns_false(self, db, svc, notifier):
        async with db.get_session() as session:
            assert await svc.add_credits(session, "u1", 5, trusted=True, reference="pi_1") is True
        async with db.get_session() as session:
            assert await svc.add_credits(session, "u1", 5, trusted=True, reference="pi_1") is False
        assert len(notifier.events) == 1

    async def test_records_transaction(self, db, svc):
        async with db.get_session() as session:
            await svc.add_credits(
                session, "u1", 40, trusted=True,
                transaction_type="bonus", description="Welcome back",
            )
        async with db.get_session() as session:
            history = await svc.list_transactions(session, "u1")
        assert history[0].transaction_type == "bonus"
        assert history[0].amount == 40
        assert history[0].description == "Welcome back"

    async def test_notifies_new_balance(self, db, svc, notifier):
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.add_credits(session, "u1", 5, trusted=True)
        assert notifier.events[-1] == BalanceChanged("u1", 15, "purchase")


class TestListTransactions:
    async def test_newest_first(self, db, svc):
        await _seed(db, svc)
        async with db.get_session() as session:
            await svc.consume(session, "u1", "recipe_generation")
        async with db.get_session() as session:
            history = await svc.list_transactions(session, "u1")
        assert [t.transaction_type for t in history] == ["usage", "signup"]

    async def test_pagination(self, db, svc):
        await _seed(db, svc)
        for _ in range(3):
            async with db.get_session() as session:
                await svc.consume(session, "u1", "recipe_generation")
        async with db.get_session() as session:
            page = await svc.list_transactions(session, "u1", limit=2, offset=1)
        assert len(page) == 2


class TestStorageErrors:
    def _broken_session(self):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("UPDATE", {}, Exception("db down"))
        return session

    async def test_consume_reports_storage_error(self, svc):
        with pytest.raises(StorageError):
            await svc.consume(self._broken_session(), "u1", "recipe_generation")

    async def test_get_balance_reports_storage_error(self, svc):
        with pytest.raises(StorageError):
            await svc.get_balance(self._broken_session(), "u1")

    async def test_add_credits_reports_storage_error(self, svc):
        with pytest.raises(StorageError):
            await svc.add_credits(
                self._broken_session(), "u1", 5, trusted=True, reference="pi_1",
            )

    async def test_storage_error_is_not_insufficient(self, svc):
        # An outage must not look like an empty balance.
        with pytest.raises(StorageError) as exc_info:
            await svc.consume(self._broken_session(), "u1", "recipe_generation")
        assert exc_info.value.code == "STORAGE_ERROR"
