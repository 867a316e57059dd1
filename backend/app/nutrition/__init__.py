"""Nutrition calculations: dog attributes to daily energy and food amounts."""

from .calculator import (
    LB_PER_KG,
    calculate_nutrition,
    daily_energy_requirement,
    daily_grams,
    der_factor,
    epa_dha_target_mg,
    resolve_life_stage,
    resting_energy_requirement,
    to_kg,
    to_lb,
)
from .models import (
    ActivityLevel,
    AgeUnit,
    DogProfile,
    LifeStage,
    NutritionResult,
    WeightGoal,
    WeightUnit,
    parse_dog_profile,
)
from .recipes import RECIPES, Recipe, ensure_recipe_suitable, get_recipe, recommend_recipes

__all__ = [
    "ActivityLevel",
    "AgeUnit",
    "DogProfile",
    "LB_PER_KG",
    "LifeStage",
    "NutritionResult",
    "RECIPES",
    "Recipe",
    "WeightGoal",
    "WeightUnit",
    "calculate_nutrition",
    "daily_energy_requirement",
    "daily_grams",
    "der_factor",
    "ensure_recipe_suitable",
    "epa_dha_target_mg",
    "get_recipe",
    "parse_dog_profile",
    "recommend_recipes",
    "resolve_life_stage",
    "resting_energy_requirement",
    "to_kg",
    "to_lb",
]
