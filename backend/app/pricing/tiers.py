"""Weight-class price tiers."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidInput


class WeightTier(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class PriceTier(BaseModel):
    """Price per 100 g for dogs whose weight in pounds falls between the bounds."""

    tier: WeightTier
    min_lb: float = Field(alias="minLb")
    max_lb: Optional[float] = Field(default=None, alias="maxLb")
    include_min: bool = Field(default=False, alias="includeMin")
    include_max: bool = Field(default=True, alias="includeMax")
    price_per_100g: float = Field(alias="pricePer100g", gt=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def contains(self, weight_lb: float) -> bool:
        above_min = weight_lb >= self.min_lb if self.include_min else weight_lb > self.min_lb
        if self.max_lb is None:
            return above_min
        below_max = weight_lb <= self.max_lb if self.include_max else weight_lb < self.max_lb
        return above_min and below_max


PRICING_TIERS: Tuple[PriceTier, ...] = (
    PriceTier(tier=WeightTier.SMALL, min_lb=0.0, max_lb=15.0, include_max=False, price_per_100g=2.50),
    PriceTier(tier=WeightTier.MEDIUM, min_lb=15.0, max_lb=30.0, include_min=True, price_per_100g=2.25),
    PriceTier(tier=WeightTier.LARGE, min_lb=30.0, max_lb=60.0, price_per_100g=2.00),
    PriceTier(tier=WeightTier.XLARGE, min_lb=60.0, max_lb=None, price_per_100g=1.85),
)

THERAPEUTIC_SURCHARGE_PER_100G = 0.50


def tier_for_weight(weight_lb: float) -> PriceTier:
    for tier in PRICING_TIERS:
        if tier.contains(weight_lb):
            return tier
    raise InvalidInput("Weight must be greater than zero", detail={"field": "weight"})


def price_per_100g(tier: PriceTier, *, therapeutic: bool) -> float:
    """Base price for the tier, plus the flat surcharge for therapeutic diets."""

    if therapeutic:
        return tier.price_per_100g + THERAPEUTIC_SURCHARGE_PER_100G
    return tier.price_per_100g


__all__ = [
    "PRICING_TIERS",
    "PriceTier",
    "THERAPEUTIC_SURCHARGE_PER_100G",
    "WeightTier",
    "price_per_100g",
    "tier_for_weight",
]
