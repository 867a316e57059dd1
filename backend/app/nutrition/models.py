"""Domain models describing a dog and its energy requirements."""
from __future__ import annotations

from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import InvalidInput


class WeightUnit(str, Enum):
    KG = "kg"
    LB = "lb"


class AgeUnit(str, Enum):
    MONTHS = "months"
    YEARS = "years"


class ActivityLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class LifeStage(str, Enum):
    PUPPY = "puppy"
    ADULT = "adult"
    SENIOR = "senior"


class WeightGoal(str, Enum):
    LOSE = "lose"
    MAINTAIN = "maintain"
    GAIN = "gain"


def _normalize_tags(value: object) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    return frozenset(str(item).strip().lower() for item in value if str(item).strip())


class DogProfile(BaseModel):
    """Attributes of a dog used by the nutrition and pricing calculations.

    Weight and unit are kept as given; they are checked and normalized to
    kilograms by the calculator so malformed input surfaces as
    :class:`~backend.app.errors.InvalidInput` rather than a schema error.
    """

    name: Optional[str] = None
    weight: float
    weight_unit: str = Field(default=WeightUnit.LB.value, alias="weightUnit")
    age: Optional[float] = Field(default=None, ge=0)
    age_unit: AgeUnit = Field(default=AgeUnit.YEARS, alias="ageUnit")
    breed: Optional[str] = None
    activity: ActivityLevel = ActivityLevel.MODERATE
    life_stage: Optional[LifeStage] = Field(default=None, alias="lifeStage")
    neutered: bool = True
    body_condition: int = Field(default=5, ge=1, le=9, alias="bodyCondition")
    weight_goal: Optional[WeightGoal] = Field(default=None, alias="weightGoal")
    medical_conditions: FrozenSet[str] = Field(default_factory=frozenset, alias="medicalConditions")
    allergens: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("weight_unit", mode="before")
    @classmethod
    def _lower_unit(cls, value: object) -> str:
        return str(value).strip().lower()

    @field_validator("medical_conditions", "allergens", mode="before")
    @classmethod
    def _normalize_sets(cls, value: object) -> FrozenSet[str]:
        return _normalize_tags(value)

    @property
    def age_in_months(self) -> Optional[float]:
        if self.age is None:
            return None
        if self.age_unit == AgeUnit.MONTHS:
            return float(self.age)
        return float(self.age) * 12.0


class NutritionResult(BaseModel):
    """Energy requirements computed for a :class:`DogProfile`."""

    weight_kg: float = Field(alias="weightKg")
    weight_lb: float = Field(alias="weightLb")
    life_stage: LifeStage = Field(alias="lifeStage")
    rer: float
    der_factor: float = Field(alias="derFactor")
    der: float
    epa_dha_mg: float = Field(alias="epaDhaMg")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def parse_dog_profile(data: Mapping[str, Any]) -> DogProfile:
    """Build a :class:`DogProfile`, reporting schema problems as ``InvalidInput``."""

    try:
        return DogProfile.model_validate(dict(data))
    except ValidationError as exc:
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        raise InvalidInput("Invalid dog profile", detail={"fields": fields}) from exc


__all__ = [
    "ActivityLevel",
    "AgeUnit",
    "DogProfile",
    "LifeStage",
    "NutritionResult",
    "WeightGoal",
    "WeightUnit",
    "parse_dog_profile",
]
