"""Tests for distance, the tiered delivery fee and quotes from the pickup point."""

import math

import pydantic
import pytest
from builders import DESTINATION_7_2_KM, PICKUP

from delivery.geo import (
    Coordinates,
    distance,
    distance_between,
    fee,
    format_distance,
    pickup_location,
    quote,
)
from shared.config import set_settings_for_test
from shared.exceptions import ValidationError


class TestDistance:
    def test_same_point_is_zero(self):
        assert distance(-1.2921, 36.8219, -1.2921, 36.8219) == 0.0

    def test_one_degree_of_latitude(self):
        assert distance(0.0, 36.0, 1.0, 36.0) == pytest.approx(111.195, abs=0.01)

    def test_is_symmetric(self):
        there = distance(-1.2921, 36.8219, -4.0435, 39.6682)
        back = distance(-4.0435, 39.6682, -1.2921, 36.8219)
        assert there == pytest.approx(back)

    def test_nairobi_to_mombasa(self):
        assert distance(-1.2921, 36.8219, -4.0435, 39.6682) == pytest.approx(440, abs=5)

    def test_antipodal_points_do_not_fail(self):
        assert distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 6371, rel=1e-9)

    def test_distance_between_coordinates(self):
        assert distance_between(PICKUP, DESTINATION_7_2_KM) == pytest.approx(7.2, abs=0.01)


class TestFee:
    @pytest.mark.parametrize(
        "km, expected",
        [
            (0, 200),
            (2.5, 200),
            (5, 200),
            (5.0001, 300),
            (7.2, 300),
            (10, 300),
            (10.5, 400),
            (15, 400),
            (15.1, 500),
            (20, 500),
            (20.0001, 550),
            (21, 550),
            (25, 750),
            (25.5, 800),
        ],
    )
    def test_tier_boundaries(self, km, expected):
        assert fee(km) == expected

    def test_is_non_decreasing(self):
        distances = [step / 4 for step in range(0, 400)]
        fees = [fee(d) for d in distances]
        assert fees == sorted(fees)

    def test_very_large_distance(self):
        assert fee(10_000) == 500 + 50 * (10_000 - 20)

    def test_negative_distance_rejected(self):
        with pytest.raises(ValidationError) as exc:
            fee(-0.1)
        assert "distance" in exc.value.messages

    def test_nan_rejected(self):
        with pytest.raises(ValidationError):
            fee(float("nan"))

    def test_infinity_rejected(self):
        with pytest.raises(ValidationError):
            fee(float("inf"))

    def test_non_number_rejected(self):
        with pytest.raises(ValidationError):
            fee("5")


class TestQuote:
    def test_quote_from_pickup_point(self):
        result = quote(DESTINATION_7_2_KM)
        assert result.distance_km == pytest.approx(7.2, abs=0.01)
        assert result.fee == 300

    def test_quote_from_explicit_origin(self):
        result = quote(DESTINATION_7_2_KM, origin=DESTINATION_7_2_KM)
        assert result.distance_km == 0.0
        assert result.fee == 200

    def test_pickup_location_defaults(self):
        assert pickup_location() == PICKUP

    def test_pickup_location_follows_settings(self):
        set_settings_for_test(environment="test", pickup_lat=-4.0435, pickup_lng=39.6682)
        assert pickup_location() == Coordinates(lat=-4.0435, lng=39.6682)


class TestFormatDistance:
    def test_metres_under_one_km(self):
        assert format_distance(0.85) == "850m"

    def test_kilometres_with_one_decimal(self):
        assert format_distance(7.2) == "7.2km"

    def test_exactly_one_km(self):
        assert format_distance(1) == "1.0km"


class TestCoordinates:
    def test_latitude_out_of_range(self):
        with pytest.raises(pydantic.ValidationError):
            Coordinates(lat=91, lng=0)

    def test_longitude_out_of_range(self):
        with pytest.raises(pydantic.ValidationError):
            Coordinates(lat=0, lng=-181)

    def test_is_immutable(self):
        point = Coordinates(lat=1, lng=2)
        with pytest.raises(pydantic.ValidationError):
            point.lat = 3
