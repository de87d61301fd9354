"""
Sanity-тест для модуля Units

Проверяет:
1. Конверсии bps ↔ доля
2. Отклонение цены от пега
3. Геометрию тика: radius, reach, plane constant, k_norm
"""

import pytest

from src.core.domain.units import (
    bps_to_fraction,
    deviation_bps,
    fraction_to_bps,
    normalized_plane,
    plane_constant,
    position_radius,
    position_reach,
    radius_multiplier,
)


class TestBasisPoints:
    """Тесты конверсий bps ↔ доля"""

    def test_bps_to_fraction(self) -> None:
        assert bps_to_fraction(30.0) == pytest.approx(0.003)
        assert bps_to_fraction(10_000.0) == 1.0

    def test_fraction_to_bps(self) -> None:
        assert fraction_to_bps(0.01) == pytest.approx(100.0)

    def test_round_trip(self) -> None:
        """Конверсия обратима"""
        assert fraction_to_bps(bps_to_fraction(55.0)) == pytest.approx(55.0)


class TestDeviation:
    """Тесты отклонения от пега"""

    def test_discount_and_premium_symmetric(self) -> None:
        assert deviation_bps(0.98) == pytest.approx(200.0)
        assert deviation_bps(1.02) == pytest.approx(200.0)

    def test_at_peg(self) -> None:
        assert deviation_bps(1.0) == 0.0

    def test_non_unit_peg(self) -> None:
        assert deviation_bps(1.08 * 0.99, peg=1.08) == pytest.approx(100.0)


class TestTickGeometry:
    """Тесты геометрии тика"""

    def test_radius_multiplier(self) -> None:
        assert radius_multiplier(0.0) == 1.0
        assert radius_multiplier(1000.0) == 11.0

    def test_position_radius(self) -> None:
        assert position_radius(2000.0, 1000.0) == 22000.0
        assert position_radius(2000.0, 100.0) == 4000.0

    def test_reach_at_par_equals_alpha(self) -> None:
        """depeg_price = 1: позиция сразу на границе"""
        assert position_reach(1000.0, 1.0) == 1000.0

    def test_reach_grows_as_depeg_price_falls(self) -> None:
        assert position_reach(1000.0, 0.5) == 2000.0
        assert position_reach(1000.0, 0.99) > position_reach(1000.0, 0.999)

    def test_k_norm_recovers_reach(self) -> None:
        radius = position_radius(2000.0, 1000.0)
        reach = position_reach(1000.0, 0.99)
        assert normalized_plane(plane_constant(radius, reach), radius) == pytest.approx(reach)

    def test_empty_tick(self) -> None:
        assert normalized_plane(0.0, 0.0) == 0.0
