"""Recipe service: per-user recipe book with modification lineage."""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthy_meals.common.exceptions import RecipeNotFoundError
from healthy_meals.recipes.models import RecipeModel
from healthy_meals.recipes.schemas import Recipe, RecipeResponse


def recipe_columns(recipe: Recipe) -> dict:
    """Flatten a Recipe into RecipeModel column values."""
    return {
        "title": recipe.title,
        "description": recipe.description,
        "prep_time": recipe.prep_time,
        "cook_time": recipe.cook_time,
        "servings": recipe.servings,
        "difficulty": recipe.difficulty,
        "cuisine": list(recipe.cuisine),
        "dietary_tags": list(recipe.dietary_tags),
        "ingredients": [i.model_dump(by_alias=True, exclude_none=True) for i in recipe.ingredients],
        "instructions": [s.model_dump(by_alias=True, exclude_none=True) for s in recipe.instructions],
        "nutrition": recipe.nutrition.model_dump(by_alias=True, exclude_none=True),
        "tips": list(recipe.tips) if recipe.tips is not None else None,
        "estimated_cost": recipe.estimated_cost,
    }


def to_response(row: RecipeModel) -> RecipeResponse:
    return RecipeResponse(
        id=row.id,
        title=row.title,
        description=row.description or "",
        prep_time=row.prep_time,
        cook_time=row.cook_time,
        servings=row.servings,
        difficulty=row.difficulty,
        cuisine=row.cuisine or [],
        dietary_tags=row.dietary_tags or [],
        ingredients=row.ingredients or [],
        instructions=row.instructions or [],
        nutrition=row.nutrition or {},
        tips=row.tips,
        estimated_cost=row.estimated_cost,
        parent_recipe_id=row.parent_recipe_id,
        modification_request=row.modification_request,
        modification_count=row.modification_count,
        created_at=row.created_at,
    )


class RecipeService:
    """Saved recipes, always scoped to the owning user."""

    async def create_recipe(
        self,
        session: AsyncSession,
        user_id: str,
        recipe: Recipe,
        parent_recipe_id: Optional[str] = None,
        modification_request: Optional[str] = None,
    ) -> RecipeModel:
        """Save a recipe. With a parent it is stored as a modification of it."""
        modification_count = 0
        if parent_recipe_id is not None:
            parent = await self.get_recipe(session, user_id, parent_recipe_id)
            if parent is None:
                raise RecipeNotFoundError("Parent recipe not found")
            modification_count = parent.modification_count + 1

        row = RecipeModel(
            user_id=user_id,
            parent_recipe_id=parent_recipe_id,
            modification_request=modification_request if parent_recipe_id else None,
            modification_count=modification_count,
            **recipe_columns(recipe),
        )
        session.add(row)
        await session.flush()
        return row

    async def get_recipe(
        self, session: AsyncSession, user_id: str, recipe_id: str,
    ) -> Optional[RecipeModel]:
        result = await session.execute(
            select(RecipeModel).where(
                RecipeModel.id == recipe_id,
                RecipeModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_recipes(
        self,
        session: AsyncSession,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[RecipeModel]:
        """The user's recipe book, newest first."""
        result = await session.execute(
            select(RecipeModel)
            .where(RecipeModel.user_id == user_id)
            .order_by(RecipeModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_recipe(
        self, session: AsyncSession, user_id: str, recipe_id: str,
    ) -> None:
        row = await self.get_recipe(session, user_id, recipe_id)
        if row is None:
            raise RecipeNotFoundError()
        # Modifications outlive their parent.
        await session.execute(
            update(RecipeModel)
            .where(RecipeModel.parent_recipe_id == recipe_id)
            .values(parent_recipe_id=None)
            .execution_options(synchronize_session=False)
        )
        await session.delete(row)
        await session.flush()
