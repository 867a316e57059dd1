"""API schemas for nutrition and pricing quotes."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..nutrition import DogProfile, NutritionResult, Recipe
from ..pricing import PricingResult, WeightTier


class QuoteRequest(BaseModel):
    dog: DogProfile
    recipe_id: str = Field(alias="recipeId")
    meals_per_day: int = Field(default=2, ge=1, alias="mealsPerDay")

    model_config = ConfigDict(populate_by_name=True)


class QuoteResponse(BaseModel):
    recipe_id: str = Field(alias="recipeId")
    tier: WeightTier
    therapeutic: bool
    nutrition: NutritionResult
    daily_grams: float = Field(alias="dailyGrams")
    grams_per_meal: float = Field(alias="gramsPerMeal")
    meals_per_day: int = Field(alias="mealsPerDay")
    price_per_100g: float = Field(alias="pricePer100g")
    cost_per_day: float = Field(alias="costPerDay")
    cost_per_week: float = Field(alias="costPerWeek")
    cost_per_month: float = Field(alias="costPerMonth")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, nutrition: NutritionResult, pricing: PricingResult) -> "QuoteResponse":
        return cls(
            recipe_id=pricing.recipe_id,
            tier=pricing.tier,
            therapeutic=pricing.therapeutic,
            nutrition=nutrition,
            meals_per_day=pricing.meals_per_day,
            **pricing.rounded(),
        )


class RecipeOut(BaseModel):
    id: str
    name: str
    kcal_per_100g: float = Field(alias="kcalPer100g")
    allergens: List[str] = Field(default_factory=list)
    therapeutic: bool = False
    condition: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_recipe(cls, recipe: Recipe) -> "RecipeOut":
        return cls(
            id=recipe.recipe_id,
            name=recipe.name,
            kcal_per_100g=recipe.kcal_per_100g,
            allergens=sorted(recipe.allergens),
            therapeutic=recipe.therapeutic,
            condition=recipe.condition,
        )


class RecipeListResponse(BaseModel):
    recipes: List[RecipeOut]
    suitable: Optional[Dict[str, bool]] = None

    model_config = ConfigDict(populate_by_name=True)
