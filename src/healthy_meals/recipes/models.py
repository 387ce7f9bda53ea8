"""SQLAlchemy models for saved recipes."""

from sqlalchemy import JSON, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from healthy_meals.common.models import Base, TimestampMixin, generate_uuid


class RecipeModel(Base, TimestampMixin):
    __tablename__ = "recipes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    prep_time: Mapped[int] = mapped_column(Integer, nullable=False)
    cook_time: Mapped[int] = mapped_column(Integer, nullable=False)
    servings: Mapped[int] = mapped_column(Integer, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False)
    cuisine: Mapped[list] = mapped_column(JSON, default=list)
    dietary_tags: Mapped[list] = mapped_column(JSON, default=list)
    ingredients: Mapped[list] = mapped_column(JSON, default=list)
    instructions: Mapped[list] = mapped_column(JSON, default=list)
    nutrition: Mapped[dict] = mapped_column(JSON, default=dict)
    tips: Mapped[list | None] = mapped_column(JSON, nullable=True)
    estimated_cost: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Modification lineage
    parent_recipe_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    modification_request: Mapped[str | None] = mapped_column(Text, nullable=True)
    modification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
