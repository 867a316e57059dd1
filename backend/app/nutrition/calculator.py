"""Veterinary energy requirement formulas.

Every function here is pure: the same profile always yields the same
numbers and nothing is rounded. Rounding belongs to the presentation layer.
"""
from __future__ import annotations

from typing import Dict, Union

from ..errors import InvalidInput
from .models import ActivityLevel, DogProfile, LifeStage, NutritionResult, WeightGoal, WeightUnit

LB_PER_KG = 2.20462
RER_COEFFICIENT = 70.0
RER_EXPONENT = 0.75

ACTIVITY_FACTORS: Dict[ActivityLevel, float] = {
    ActivityLevel.LOW: 1.35,
    ActivityLevel.MODERATE: 1.6,
    ActivityLevel.HIGH: 1.9,
}

PUPPY_YOUNG_MONTHS = 4
PUPPY_YOUNG_FACTOR = 3.0
PUPPY_FACTOR = 2.0
JUNIOR_FACTOR = 1.8
PUPPY_MAX_MONTHS = 12
SENIOR_MIN_MONTHS = 7 * 12
SENIOR_MIN_FACTOR = 1.3
SENIOR_REDUCTION = 0.1
INTACT_MIN_FACTOR = 1.8

UNDERWEIGHT_SCORE = 3
OVERWEIGHT_SCORE = 7
UNDERWEIGHT_MULTIPLIER = 1.1
OVERWEIGHT_MULTIPLIER = 0.9

WEIGHT_GOAL_MULTIPLIERS: Dict[WeightGoal, float] = {
    WeightGoal.LOSE: 0.8,
    WeightGoal.MAINTAIN: 1.0,
    WeightGoal.GAIN: 1.2,
}

# Conditions not listed here leave the energy requirement unchanged.
MEDICAL_MULTIPLIERS: Dict[str, float] = {
    "obesity": 0.8,
    "hypothyroidism": 0.9,
    "cancer": 1.1,
}

EPA_DHA_MG_PER_10_LB = 90.0


def _parse_unit(unit: Union[str, WeightUnit]) -> WeightUnit:
    try:
        return WeightUnit(str(getattr(unit, "value", unit)).strip().lower())
    except ValueError as exc:
        raise InvalidInput(f"Unrecognized weight unit {unit!r}", detail={"field": "weightUnit"}) from exc


def _check_weight(weight: float) -> float:
    try:
        value = float(weight)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("Weight must be a number", detail={"field": "weight"}) from exc
    if not value > 0:
        raise InvalidInput("Weight must be greater than zero", detail={"field": "weight"})
    return value


def to_kg(weight: float, unit: Union[str, WeightUnit]) -> float:
    """Normalize ``weight`` expressed in ``unit`` to kilograms."""

    value = _check_weight(weight)
    if _parse_unit(unit) == WeightUnit.LB:
        return value / LB_PER_KG
    return value


def to_lb(weight: float, unit: Union[str, WeightUnit]) -> float:
    return to_kg(weight, unit) * LB_PER_KG


def resting_energy_requirement(weight_kg: float) -> float:
    """RER in kcal/day: ``70 * kg ** 0.75``."""

    return RER_COEFFICIENT * _check_weight(weight_kg) ** RER_EXPONENT


def resolve_life_stage(profile: DogProfile) -> LifeStage:
    if profile.life_stage is not None:
        return profile.life_stage
    months = profile.age_in_months
    if months is None:
        return LifeStage.ADULT
    if months < PUPPY_MAX_MONTHS:
        return LifeStage.PUPPY
    if months >= SENIOR_MIN_MONTHS:
        return LifeStage.SENIOR
    return LifeStage.ADULT


def der_factor(profile: DogProfile) -> float:
    """Multiplier turning RER into DER for this dog."""

    factor = ACTIVITY_FACTORS[profile.activity]
    stage = resolve_life_stage(profile)

    if stage == LifeStage.PUPPY:
        months = profile.age_in_months
        if months is not None and months < PUPPY_YOUNG_MONTHS:
            factor = PUPPY_YOUNG_FACTOR
        elif months is None or months < PUPPY_MAX_MONTHS:
            factor = PUPPY_FACTOR
        else:
            factor = JUNIOR_FACTOR
    elif stage == LifeStage.SENIOR:
        factor = max(SENIOR_MIN_FACTOR, factor - SENIOR_REDUCTION)
    elif not profile.neutered:
        factor = max(factor, INTACT_MIN_FACTOR)

    if profile.body_condition <= UNDERWEIGHT_SCORE:
        factor *= UNDERWEIGHT_MULTIPLIER
    elif profile.body_condition >= OVERWEIGHT_SCORE:
        factor *= OVERWEIGHT_MULTIPLIER

    if profile.weight_goal is not None:
        factor *= WEIGHT_GOAL_MULTIPLIERS[profile.weight_goal]

    for condition in sorted(profile.medical_conditions):
        factor *= MEDICAL_MULTIPLIERS.get(condition, 1.0)

    return factor


def epa_dha_target_mg(weight_kg: float) -> float:
    """Daily EPA+DHA target: 90 mg per 10 lb of body weight."""

    return to_lb(weight_kg, WeightUnit.KG) / 10.0 * EPA_DHA_MG_PER_10_LB


def calculate_nutrition(profile: DogProfile) -> NutritionResult:
    weight_kg = to_kg(profile.weight, profile.weight_unit)
    rer = resting_energy_requirement(weight_kg)
    factor = der_factor(profile)
    return NutritionResult(
        weight_kg=weight_kg,
        weight_lb=to_lb(weight_kg, WeightUnit.KG),
        life_stage=resolve_life_stage(profile),
        rer=rer,
        der_factor=factor,
        der=rer * factor,
        epa_dha_mg=epa_dha_target_mg(weight_kg),
    )


def daily_energy_requirement(profile: DogProfile) -> float:
    return calculate_nutrition(profile).der


def daily_grams(der: float, kcal_per_100g: float) -> float:
    """Grams of food per day delivering ``der`` kcal."""

    if not der > 0:
        raise InvalidInput("Daily energy requirement must be positive", detail={"field": "der"})
    if not kcal_per_100g > 0:
        raise InvalidInput("Recipe energy density must be positive", detail={"field": "kcalPer100g"})
    return der / kcal_per_100g * 100.0


__all__ = [
    "LB_PER_KG",
    "calculate_nutrition",
    "daily_energy_requirement",
    "daily_grams",
    "der_factor",
    "epa_dha_target_mg",
    "resolve_life_stage",
    "resting_energy_requirement",
    "to_kg",
    "to_lb",
]
