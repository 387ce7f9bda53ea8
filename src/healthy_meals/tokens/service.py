"""Token ledger service: balances, paid-usage gating and top-ups."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from sqlalchemy import insert as generic_insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from healthy_meals.common.config import HealthyMealsSettings
from healthy_meals.common.database import call_after_commit
from healthy_meals.common.exceptions import (
    InvalidAmountError,
    StorageError,
    UntrustedCreditError,
)
from healthy_meals.common.models import utcnow
from healthy_meals.tokens.events import BalanceChanged, BalanceNotifier
from healthy_meals.tokens.models import TokenTransactionModel, UserTokensModel
from healthy_meals.tokens.schemas import UsageKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenBalance:
    tokens_balance: int
    total_generations_used: int


@dataclass(frozen=True)
class TokenValidation:
    can_proceed: bool
    remaining_tokens: int
    cost: int


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Re-raise database failures as StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Token ledger %s failed: %s", operation, e)
        raise StorageError(f"Token ledger {operation} failed") from e


class TokenLedgerService:
    """Single source of truth for a user's spendable tokens.

    Every balance mutation is one conditional UPDATE statement, so the
    precondition check and the write cannot be separated by a concurrent
    request for the same account. Storage failures surface as StorageError
    and are never retried here. Balance events are published only after
    the caller's session commits.
    """

    def __init__(
        self,
        settings: HealthyMealsSettings,
        notifier: Optional[BalanceNotifier] = None,
    ):
        self.settings = settings
        self.notifier = notifier

    def cost_for(self, usage_kind: UsageKind | str) -> int:
        kind = UsageKind(usage_kind)
        return self.settings.usage_costs[kind.value]

    # ── Reads ──

    async def get_balance(
        self, session: AsyncSession, user_id: str,
    ) -> Optional[TokenBalance]:
        """Return the account's counters, or None when it has no record."""
        with _storage_errors("read"):
            result = await session.execute(
                select(
                    UserTokensModel.tokens_balance,
                    UserTokensModel.total_generations_used,
                ).where(UserTokensModel.user_id == user_id)
            )
            row = result.one_or_none()
        if row is None:
            return None
        return TokenBalance(
            tokens_balance=row.tokens_balance,
            total_generations_used=row.total_generations_used,
        )

    async def validate_for_usage(
        self, session: AsyncSession, user_id: str, usage_kind: UsageKind | str,
    ) -> TokenValidation:
        """Decide whether the account can pay for one use, without mutating it.

        An account without a record is treated as holding zero tokens.
        """
        cost = self.cost_for(usage_kind)
        balance = await self.get_balance(session, user_id)
        remaining = balance.tokens_balance if balance else 0
        return TokenValidation(
            can_proceed=remaining >= cost,
            remaining_tokens=remaining,
            cost=cost,
        )

    async def list_transactions(
        self,
        session: AsyncSession,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TokenTransactionModel]:
        """Ledger history for an account, newest first."""
        with _storage_errors("history read"):
            result = await session.execute(
                select(TokenTransactionModel)
                .where(TokenTransactionModel.user_id == user_id)
                .order_by(TokenTransactionModel.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    # ── Writes ──

    async def ensure_record(self, session: AsyncSession, user_id: str) -> bool:
        """Create the account with the signup grant if it does not exist.

        Returns True when a record was created, False when one already
        existed. An existing balance is never overwritten.
        """
        grant = self.settings.signup_grant
        with _storage_errors("record creation"):
            created = await self._insert_record(session, user_id, grant)
            if not created:
                return False
            self._add_transaction(
                session, user_id, "signup", grant, description="Signup grant",
            )
            await session.flush()

        logger.info("Created token record", extra={"user_id": user_id})
        self._notify(session, user_id, grant, "signup")
        return True

    async def consume(
        self, session: AsyncSession, user_id: str, usage_kind: UsageKind | str,
    ) -> bool:
        """Charge one use of ``usage_kind``.

        Returns False, writing nothing, when the balance is below the cost or
        the account has no record.
        """
        kind = UsageKind(usage_kind)
        cost = self.cost_for(kind)
        with _storage_errors("consume"):
            result = await session.execute(
                update(UserTokensModel)
                .where(
                    UserTokensModel.user_id == user_id,
                    UserTokensModel.tokens_balance >= cost,
                )
                .values(
                    tokens_balance=UserTokensModel.tokens_balance - cost,
                    total_generations_used=UserTokensModel.total_generations_used + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(
                    "Insufficient tokens for %s", kind.value,
                    extra={"user_id": user_id, "usage_kind": kind.value},
                )
                return False

            self._add_transaction(
                session, user_id, "usage", -cost,
                usage_kind=kind.value,
                description=kind.value.replace("_", " ").capitalize(),
            )
            await session.flush()
            new_balance = await self._read_tokens_balance(session, user_id)

        self._notify(session, user_id, new_balance, "usage")
        return True

    async def add_credits(
        self,
        session: AsyncSession,
        user_id: str,
        amount: int,
        *,
        trusted: bool,
        transaction_type: str = "purchase",
        reference: Optional[str] = None,
        description: str = "",
    ) -> bool:
        """Increase the balance by ``amount``.

        ``trusted`` marks callers that act without an end-user session but
        behind their own verification (payment callbacks, operators). Untrusted
        callers are refused unless self-service crediting is enabled. The
        ledger performs no further authorization.

        A missing record is created with ``amount`` as its opening balance.
        When ``reference`` was already applied the call does nothing and
        returns False.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError()
        if not trusted and not self.settings.allow_self_service_credits:
            raise UntrustedCreditError()

        with _storage_errors("credit"):
            if reference and await self._reference_applied(session, reference):
                logger.info(
                    "Credit reference %s already applied", reference,
                    extra={"user_id": user_id},
                )
                return False

            updated = await self._increment_balance(session, user_id, amount)
            if not updated:
                created = await self._insert_record(session, user_id, amount)
                if not created:
                    # Another request created the record in between.
                    await self._increment_balance(session, user_id, amount)

            self._add_transaction(
                session, user_id, transaction_type, amount,
                description=description, reference=reference,
            )
            await session.flush()
            new_balance = await self._read_tokens_balance(session, user_id)

        logger.info(
            "Credited %d tokens (%s)", amount, transaction_type,
            extra={"user_id": user_id},
        )
        self._notify(session, user_id, new_balance, transaction_type)
        return True

    # ── Helpers ──

    async def _insert_record(
        self, session: AsyncSession, user_id: str, opening_balance: int,
    ) -> bool:
        """Insert a record unless one exists. Returns True when inserted."""
        dialect = session.get_bind().dialect.name
        values = {
            "user_id": user_id,
            "tokens_balance": opening_balance,
            "total_generations_used": 0,
        }
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        elif dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            exists = await session.execute(
                select(UserTokensModel.id).where(UserTokensModel.user_id == user_id)
            )
            if exists.first() is not None:
                return False
            await session.execute(generic_insert(UserTokensModel).values(**values))
            return True

        result = await session.execute(
            insert(UserTokensModel)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["user_id"])
        )
        return result.rowcount == 1

    async def _increment_balance(
        self, session: AsyncSession, user_id: str, amount: int,
    ) -> bool:
        result = await session.execute(
            update(UserTokensModel)
            .where(UserTokensModel.user_id == user_id)
            .values(
                tokens_balance=UserTokensModel.tokens_balance + amount,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _read_tokens_balance(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            select(UserTokensModel.tokens_balance).where(
                UserTokensModel.user_id == user_id
            )
        )
        return result.scalar_one()

    async def _reference_applied(self, session: AsyncSession, reference: str) -> bool:
        result = await session.execute(
            select(TokenTransactionModel.id).where(
                TokenTransactionModel.reference == reference
            )
        )
        return result.first() is not None

    def _add_transaction(
        self,
        session: AsyncSession,
        user_id: str,
        transaction_type: str,
        amount: int,
        usage_kind: Optional[str] = None,
        description: str = "",
        reference: Optional[str] = None,
    ) -> None:
        session.add(TokenTransactionModel(
            user_id=user_id,
            transaction_type=transaction_type,
            amount=amount,
            usage_kind=usage_kind,
            description=description,
            reference=reference,
        ))

    def _notify(
        self, session: AsyncSession, user_id: str, tokens_balance: int, reason: str,
    ) -> None:
        """Publish the new balance once the caller's unit of work commits."""
        if self.notifier is None:
            return
        notifier = self.notifier
        event = BalanceChanged(user_id=user_id, tokens_balance=tokens_balance, reason=reason)

        async def publish() -> None:
            await notifier.balance_changed(event)

        call_after_commit(session, publish)
