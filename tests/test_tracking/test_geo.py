"""
Tests for haversine distance, half-up rounding and ETA estimation.
"""

import pytest

from rider_dispatch.services.tracking.geo import (
    Coordinates,
    distance_km,
    eta_minutes,
    haversine_km,
    round_half_up,
)

MANILA = Coordinates(14.5995, 120.9842)
CEBU = Coordinates(10.3157, 123.8854)


class TestHaversine:
    def test_same_point_is_zero(self) -> None:
        assert haversine_km(MANILA, MANILA) == 0.0

    def test_symmetric(self) -> None:
        assert haversine_km(MANILA, CEBU) == pytest.approx(haversine_km(CEBU, MANILA))

    def test_one_hundredth_degree_of_latitude(self) -> None:
        assert distance_km(MANILA, Coordinates(14.6095, 120.9842)) == 1.11

    def test_one_degree_of_latitude(self) -> None:
        assert haversine_km(Coordinates(14.0, 121.0), Coordinates(15.0, 121.0)) == pytest.approx(
            111, rel=0.01
        )

    def test_known_city_pair(self) -> None:
        assert haversine_km(MANILA, CEBU) == pytest.approx(571, abs=5)

    def test_antipodal_points(self) -> None:
        assert haversine_km(Coordinates(0.0, 0.0), Coordinates(0.0, 180.0)) == pytest.approx(
            20015.09, abs=0.01
        )

    def test_triangle_inequality(self) -> None:
        davao = Coordinates(7.1907, 125.4553)
        assert haversine_km(MANILA, davao) <= haversine_km(MANILA, CEBU) + haversine_km(CEBU, davao)


class TestRounding:
    @pytest.mark.parametrize(
        "value,ndigits,expected",
        [(2.5, 0, 3.0), (0.5, 0, 1.0), (1.4999, 0, 1.0), (1.125, 2, 1.13), (-2.5, 0, -2.0)],
    )
    def test_round_half_up(self, value, ndigits, expected) -> None:
        assert round_half_up(value, ndigits) == pytest.approx(expected)


class TestEta:
    @pytest.mark.parametrize(
        "distance,expected",
        [(0, 0), (15, 30), (30, 60), (45, 90), (1.11, 2), (2.6, 5)],
    )
    def test_default_speed(self, distance, expected) -> None:
        assert eta_minutes(distance) == expected

    def test_custom_speed(self) -> None:
        assert eta_minutes(10, speed_kmh=20) == 30

    def test_returns_int(self) -> None:
        assert isinstance(eta_minutes(1.11), int)

    def test_rejects_non_positive_speed(self) -> None:
        with pytest.raises(ValueError):
            eta_minutes(5, speed_kmh=0)

    def test_rejects_negative_distance(self) -> None:
        with pytest.raises(ValueError):
            eta_minutes(-1)
