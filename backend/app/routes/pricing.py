"""API routes for nutrition and pricing quotes."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from ..errors import ServiceError
from ..nutrition import RECIPES, calculate_nutrition, get_recipe, recommend_recipes
from ..nutrition.models import parse_dog_profile
from ..pricing import quote_for_profile
from ..schemas.pricing import QuoteRequest, QuoteResponse, RecipeListResponse, RecipeOut

router = APIRouter(prefix="/api", tags=["pricing"])


@router.get("/recipes", response_model=RecipeListResponse)
def list_recipes(
    allergens: Optional[str] = Query(default=None, description="Comma separated allergens to avoid"),
    conditions: Optional[str] = Query(default=None, description="Comma separated medical conditions"),
) -> RecipeListResponse:
    recipes = [RecipeOut.from_recipe(recipe) for recipe in RECIPES]
    if allergens is None and conditions is None:
        return RecipeListResponse(recipes=recipes)

    try:
        profile = parse_dog_profile(
            {
                "weight": 1,
                "allergens": [item for item in (allergens or "").split(",") if item.strip()],
                "medicalConditions": [item for item in (conditions or "").split(",") if item.strip()],
            }
        )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    suitable_ids = {recipe.recipe_id for recipe in recommend_recipes(profile)}
    return RecipeListResponse(
        recipes=recipes,
        suitable={recipe.id: recipe.id in suitable_ids for recipe in recipes},
    )


@router.post("/pricing/quote", response_model=QuoteResponse)
def create_quote(payload: QuoteRequest) -> QuoteResponse:
    try:
        recipe = get_recipe(payload.recipe_id)
        nutrition = calculate_nutrition(payload.dog)
        pricing = quote_for_profile(payload.dog, recipe, meals_per_day=payload.meals_per_day)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return QuoteResponse.from_result(nutrition, pricing)
