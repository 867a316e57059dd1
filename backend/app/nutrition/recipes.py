"""Recipe catalog and recipe eligibility rules."""
from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidInput, NotFound
from .models import DogProfile

KNOWN_MEDICAL_CONDITIONS = frozenset(
    {"kidney-disease", "liver-disease", "heart-disease", "diabetes", "pancreatitis"}
)


class Recipe(BaseModel):
    recipe_id: str = Field(alias="id")
    name: str
    kcal_per_100g: float = Field(alias="kcalPer100g", gt=0)
    allergens: FrozenSet[str] = Field(default_factory=frozenset)
    therapeutic: bool = False
    condition: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


RECIPES: Tuple[Recipe, ...] = (
    Recipe(
        recipe_id="beef-quinoa-harvest",
        name="Beef & Quinoa Harvest",
        kcal_per_100g=175,
        allergens=frozenset({"beef"}),
    ),
    Recipe(
        recipe_id="lamb-pumpkin-feast",
        name="Lamb & Pumpkin Feast",
        kcal_per_100g=170,
        allergens=frozenset({"lamb"}),
    ),
    Recipe(
        recipe_id="low-fat-chicken-garden-veggie",
        name="Low-Fat Chicken & Garden Veggie",
        kcal_per_100g=165,
        allergens=frozenset({"chicken"}),
    ),
    Recipe(
        recipe_id="turkey-brown-rice-comfort",
        name="Turkey & Brown Rice Comfort",
        kcal_per_100g=168,
        allergens=frozenset({"turkey", "rice"}),
    ),
    Recipe(
        recipe_id="renal-support",
        name="Renal Support",
        kcal_per_100g=95,
        allergens=frozenset({"egg"}),
        therapeutic=True,
        condition="kidney-disease",
    ),
    Recipe(
        recipe_id="hepatic-support",
        name="Hepatic Support",
        kcal_per_100g=88,
        allergens=frozenset({"dairy"}),
        therapeutic=True,
        condition="liver-disease",
    ),
    Recipe(
        recipe_id="cardiac-support",
        name="Cardiac Support",
        kcal_per_100g=92,
        allergens=frozenset({"fish"}),
        therapeutic=True,
        condition="heart-disease",
    ),
)

_RECIPES_BY_ID: Dict[str, Recipe] = {recipe.recipe_id: recipe for recipe in RECIPES}


def get_recipe(recipe_id: str) -> Recipe:
    recipe = _RECIPES_BY_ID.get(recipe_id)
    if recipe is None:
        raise NotFound(f"Unknown recipe {recipe_id!r}", detail={"recipeId": recipe_id})
    return recipe


def ensure_recipe_suitable(profile: DogProfile, recipe: Recipe) -> None:
    """Raise ``InvalidInput`` when ``recipe`` cannot be fed to this dog."""

    conflicts = sorted(recipe.allergens & profile.allergens)
    if conflicts:
        raise InvalidInput(
            f"{recipe.name} contains allergens for this dog",
            detail={"recipeId": recipe.recipe_id, "allergens": conflicts},
        )
    if recipe.therapeutic and recipe.condition not in profile.medical_conditions:
        raise InvalidInput(
            f"{recipe.name} is a prescription diet for {recipe.condition}",
            detail={"recipeId": recipe.recipe_id, "requiredCondition": recipe.condition},
        )


def recommend_recipes(profile: DogProfile, recipes: Iterable[Recipe] = RECIPES) -> List[Recipe]:
    """Return suitable recipes, prescription diets first for dogs that need them."""

    suitable: List[Recipe] = []
    for recipe in recipes:
        try:
            ensure_recipe_suitable(profile, recipe)
        except InvalidInput:
            continue
        suitable.append(recipe)
    return sorted(suitable, key=lambda recipe: (not recipe.therapeutic, recipe.recipe_id))


__all__ = [
    "KNOWN_MEDICAL_CONDITIONS",
    "RECIPES",
    "Recipe",
    "ensure_recipe_suitable",
    "get_recipe",
    "recommend_recipes",
]
