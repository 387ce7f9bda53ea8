"""SQLAlchemy models for the token ledger."""

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from healthy_meals.common.models import Base, TimestampMixin, generate_uuid


class UserTokensModel(Base, TimestampMixin):
    __tablename__ = "user_tokens"
    __table_args__ = (
        CheckConstraint("tokens_balance >= 0", name="ck_user_tokens_balance_non_negative"),
        CheckConstraint(
            "total_generations_used >= 0", name="ck_user_tokens_usage_non_negative"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    tokens_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_generations_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TokenTransactionModel(Base, TimestampMixin):
    """Append-only history of ledger mutations. Never read back into the balance."""

    __tablename__ = "token_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_kind: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Payment intent id for purchases; unique so a replayed callback cannot credit twice.
    reference: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
