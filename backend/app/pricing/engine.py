"""Daily, weekly and monthly cost of feeding a dog a recipe."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidInput
from ..nutrition import DogProfile, Recipe, calculate_nutrition, daily_grams, ensure_recipe_suitable
from .tiers import WeightTier, price_per_100g, tier_for_weight

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30
DEFAULT_MEALS_PER_DAY = 2

_CENT = Decimal("0.01")
_GRAM = Decimal("1")


def _round(value: float, quantum: Decimal) -> float:
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def to_cents(amount: float) -> int:
    return int(Decimal(str(amount)).scaleb(2).quantize(_GRAM, rounding=ROUND_HALF_UP))


class PricingResult(BaseModel):
    """Unrounded pricing for one dog on one recipe."""

    recipe_id: str = Field(alias="recipeId")
    tier: WeightTier
    therapeutic: bool
    der: float
    price_per_100g: float = Field(alias="pricePer100g")
    daily_grams: float = Field(alias="dailyGrams")
    meals_per_day: int = Field(alias="mealsPerDay")
    grams_per_meal: float = Field(alias="gramsPerMeal")
    cost_per_day: float = Field(alias="costPerDay")
    cost_per_week: float = Field(alias="costPerWeek")
    cost_per_month: float = Field(alias="costPerMonth")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def rounded(self) -> Dict[str, float]:
        """Display values: whole grams and cents, rounded half up."""

        return {
            "dailyGrams": _round(self.daily_grams, _GRAM),
            "gramsPerMeal": _round(self.grams_per_meal, _GRAM),
            "pricePer100g": _round(self.price_per_100g, _CENT),
            "costPerDay": _round(self.cost_per_day, _CENT),
            "costPerWeek": _round(self.cost_per_week, _CENT),
            "costPerMonth": _round(self.cost_per_month, _CENT),
        }

    @property
    def weekly_cents(self) -> int:
        return to_cents(self.cost_per_week)


def quote(
    der: float,
    recipe: Recipe,
    weight_lb: float,
    *,
    meals_per_day: int = DEFAULT_MEALS_PER_DAY,
) -> PricingResult:
    """Price ``recipe`` for a dog needing ``der`` kcal/day.

    Cost depends only on the daily total; ``meals_per_day`` only changes the
    size of each portion.
    """

    if meals_per_day < 1:
        raise InvalidInput("Meals per day must be at least one", detail={"field": "mealsPerDay"})

    tier = tier_for_weight(weight_lb)
    unit_price = price_per_100g(tier, therapeutic=recipe.therapeutic)
    grams = daily_grams(der, recipe.kcal_per_100g)
    cost_per_day = grams / 100.0 * unit_price

    return PricingResult(
        recipe_id=recipe.recipe_id,
        tier=tier.tier,
        therapeutic=recipe.therapeutic,
        der=der,
        price_per_100g=unit_price,
        daily_grams=grams,
        meals_per_day=meals_per_day,
        grams_per_meal=grams / meals_per_day,
        cost_per_day=cost_per_day,
        cost_per_week=cost_per_day * DAYS_PER_WEEK,
        cost_per_month=cost_per_day * DAYS_PER_MONTH,
    )


def quote_for_profile(
    profile: DogProfile,
    recipe: Recipe,
    *,
    meals_per_day: int = DEFAULT_MEALS_PER_DAY,
) -> PricingResult:
    ensure_recipe_suitable(profile, recipe)
    nutrition = calculate_nutrition(profile)
    return quote(nutrition.der, recipe, nutrition.weight_lb, meals_per_day=meals_per_day)


__all__ = ["PricingResult", "quote", "quote_for_profile", "to_cents"]
