"""Unit tests for distance and the pricing engine."""

import math

import pytest

from ride_service.domain.distance import haversine_km, validate_coordinates
from ride_service.domain.entities import Location
from ride_service.domain.errors import InvalidCoordinate
from ride_service.domain.pricing import PricingEngine, PricingStrategy, StandardPricing


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(43.2, 76.9, 43.2, 76.9) == 0.0

    def test_known_distance(self):
        # Almaty: Sayakhat -> Kalkaman, ~10.7 km
        d = haversine_km(43.2025, 76.8921, 43.20917, 76.76028)
        assert 10.6 < d < 10.8

    def test_symmetric(self):
        d1 = haversine_km(55.75, 37.62, 43.24, 76.94)
        d2 = haversine_km(43.24, 76.94, 55.75, 37.62)
        assert abs(d1 - d2) < 1e-9

    def test_antipodes_do_not_overflow(self):
        d = haversine_km(0.0, 0.0, 0.0, 180.0)
        assert d == pytest.approx(math.pi * 6371.0)


class TestValidateCoordinates:
    @pytest.mark.parametrize(
        "lat,lng",
        [(90.0001, 0.0), (-91.0, 0.0), (0.0, 180.5), (0.0, -181.0), (float("nan"), 0.0)],
    )
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(InvalidCoordinate):
            validate_coordinates(lat, lng)

    def test_bounds_are_inclusive(self):
        validate_coordinates(90.0, 180.0)
        validate_coordinates(-90.0, -180.0)


class TestStandardPricing:
    def test_base_plus_rate(self):
        assert StandardPricing().calculate(10.0, 50.0, 15.0) == 200.0  # 50 + 10*15

    def test_rounds_to_cents(self):
        assert StandardPricing().calculate(1.23456, 50.0, 15.0) == 68.52


class TestPricingEngine:
    def setup_method(self):
        self.engine = PricingEngine(base_fare=50.0, rate_per_km=15.0)

    def test_distance_is_rounded_to_precision(self):
        d = self.engine.compute_distance(Location(43.2025, 76.8921), Location(43.20917, 76.76028))
        assert d == round(d, 4)
        assert 10.6 < d < 10.8

    def test_distance_symmetric(self):
        a, b = Location(43.2025, 76.8921), Location(43.20917, 76.76028)
        assert self.engine.compute_distance(a, b) == self.engine.compute_distance(b, a)

    def test_invalid_origin_rejected(self):
        with pytest.raises(InvalidCoordinate):
            self.engine.compute_distance(Location(95.0, 0.0), Location(0.0, 0.0))

    def test_zero_distance_costs_base_fare(self):
        assert self.engine.compute_price(0.0) == 50.0

    def test_price_monotonic_in_distance(self):
        prices = [self.engine.compute_price(d / 10) for d in range(0, 500)]
        assert prices == sorted(prices)

    def test_negative_distance_rejected(self):
        with pytest.raises(ValueError):
            self.engine.compute_price(-1.0)

    def test_ride_info_uses_rounded_distance(self):
        info = self.engine.compute_ride_info(
            Location(43.2025, 76.8921), Location(43.20917, 76.76028)
        )
        assert info.price == round(50.0 + info.distance * 15.0, 2)

    def test_custom_strategy(self):
        class FlatPricing(PricingStrategy):
            def calculate(self, distance_km, base_fare, rate_per_km):
                return 999.0

        engine = PricingEngine(strategy=FlatPricing())
        assert engine.compute_price(3.0) == 999.0
