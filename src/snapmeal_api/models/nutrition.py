"""Pydantic models for the normalized nutrition analysis contract."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models exposed over HTTP with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FoodItemBreakdown(CamelModel):
    """Per-item macros for a multi-food image."""

    model_config = ConfigDict(frozen=True)

    food_name: str = Field(..., min_length=1, description="Food item name")
    calories: int = Field(0, ge=0)
    protein: int = Field(0, ge=0, description="Protein in grams")
    carbs: int = Field(0, ge=0, description="Carbohydrates in grams")
    fat: int = Field(0, ge=0, description="Fat in grams")
    fiber: int = Field(0, ge=0, description="Fiber in grams")


class NutritionAnalysisResult(CamelModel):
    """
    Normalized nutrition estimate for one food photo.

    Instances are immutable: cache entries and persisted records share them.
    When ``items`` is present the totals are the sum of the item values.
    """

    model_config = ConfigDict(frozen=True)

    food_name: str = Field(..., min_length=1, description="Dish or food name")
    calories: int = Field(..., ge=0)
    protein: int = Field(..., ge=0, description="Protein in grams")
    carbs: int = Field(..., ge=0, description="Carbohydrates in grams")
    fat: int = Field(..., ge=0, description="Fat in grams")
    fiber: int = Field(0, ge=0, description="Fiber in grams")
    items: tuple[FoodItemBreakdown, ...] | None = Field(
        None, description="Per-item breakdown for multi-food images"
    )
    confidence: float | None = Field(
        None, ge=0.0, le=1.0, description="Model confidence 0-1 if reported"
    )

    @property
    def is_multi_food(self) -> bool:
        return bool(self.items)
