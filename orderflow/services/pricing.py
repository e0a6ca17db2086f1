"""Shipping cost and delivery time estimates."""

from typing import Optional, Protocol

from orderflow.models.order import LineItem, ShippingAddress


class ShippingPolicy(Protocol):
    """Computes the shipping cost of an order."""

    def __call__(self, subtotal: float, address: Optional[ShippingAddress] = None) -> float:
        ...


class FlatRateShipping:
    """Free above a threshold, otherwise a flat fee."""

    def __init__(self, free_threshold: float = 50.0, flat_fee: float = 5.0) -> None:
        self.free_threshold = free_threshold
        self.flat_fee = flat_fee

    def __call__(self, subtotal: float, address: Optional[ShippingAddress] = None) -> float:
        if subtotal >= self.free_threshold:
            return 0.0
        return self.flat_fee


def estimate_minutes(
    line_items: list[LineItem], floor_minutes: int = 30, buffer_minutes: int = 15
) -> int:
    """Preparation time of every line plus the delivery buffer, never below the floor."""
    prep = sum(item.prepMinutes for item in line_items)
    return max(floor_minutes, prep + buffer_minutes)


def money(value: float) -> float:
    """Round to cents."""
    return round(value, 2)
