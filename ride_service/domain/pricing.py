"""
Pricing Engine  (Strategy Pattern)
==================================

Formula
-------
Distance = round(haversine(origin, destination), DISTANCE_PRECISION)
Price    = round(Base_Fare + Distance x Rate_Per_KM, 2)

Both steps are pure, so a ride's price can be recomputed for audit from
its stored coordinates.  Rounding is monotonic, so price never decreases
as distance grows.

Complexity: O(1) per calculation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .distance import haversine_km, validate_coordinates
from .entities import Location, RideInfo


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(
        self, distance_km: float, base_fare: float, rate_per_km: float
    ) -> float: ...


class StandardPricing(PricingStrategy):
    def calculate(
        self, distance_km: float, base_fare: float, rate_per_km: float
    ) -> float:
        return round(base_fare + distance_km * rate_per_km, 2)


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the ride lifecycle and the price endpoint."""

    def __init__(
        self,
        base_fare: float = 50.0,
        rate_per_km: float = 15.0,
        precision: int = 4,
        strategy: PricingStrategy | None = None,
    ):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km
        self.precision = precision
        self.strategy = strategy or StandardPricing()

    def compute_distance(self, origin: Location, destination: Location) -> float:
        validate_coordinates(origin.latitude, origin.longitude)
        validate_coordinates(destination.latitude, destination.longitude)
        distance = haversine_km(
            origin.latitude,
            origin.longitude,
            destination.latitude,
            destination.longitude,
        )
        return round(distance, self.precision)

    def compute_price(self, distance_km: float) -> float:
        if distance_km < 0:
            raise ValueError(f"distance must be non-negative, got {distance_km}")
        return self.strategy.calculate(distance_km, self.base_fare, self.rate_per_km)

    def compute_ride_info(self, origin: Location, destination: Location) -> RideInfo:
        distance = self.compute_distance(origin, destination)
        return RideInfo(distance=distance, price=self.compute_price(distance))
