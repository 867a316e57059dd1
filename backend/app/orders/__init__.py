"""Fulfillment orders created from subscription billing cycles."""

from .models import ALLOWED_TRANSITIONS, DeliveryAddress, FulfillmentStatus, Order, RecipeSnapshot

__all__ = [
    "ALLOWED_TRANSITIONS",
    "DeliveryAddress",
    "FulfillmentStatus",
    "Order",
    "RecipeSnapshot",
]
