"""Pricing engine for fresh-food plans."""

from .engine import PricingResult, quote, quote_for_profile, to_cents
from .tiers import PRICING_TIERS, THERAPEUTIC_SURCHARGE_PER_100G, PriceTier, WeightTier, price_per_100g, tier_for_weight

__all__ = [
    "PRICING_TIERS",
    "PriceTier",
    "PricingResult",
    "THERAPEUTIC_SURCHARGE_PER_100G",
    "WeightTier",
    "price_per_100g",
    "quote",
    "quote_for_profile",
    "tier_for_weight",
    "to_cents",
]
