"""
Units — Централизованный модуль конверсии единиц пула

Единственный допустимый способ преобразований между:
- basis points (bps) и безразмерными долями (fee rate, отклонение от пега)
- депонированной стоимостью и геометрией тика (radius, reach, plane constant)
- амплификацией и множителем радиуса

ЗАПРЕЩЕНО смешивать единицы без явного конвертера из этого модуля.

Все геометрические величины (α, r/n, boundaryConstant, k_norm) выражены
в единицах "уровень резерва на один актив".
"""

from typing import Final

from src.core.math.numerical_safeguards import EPS_PRICE, safe_divide


# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# 1 bps = 1/10 000
BPS_DENOMINATOR: Final[float] = 10_000.0

# Точность амплификации: radius = value * (PRECISION + A) / PRECISION
AMPLIFICATION_PRECISION: Final[float] = 100.0

# Цена депега по умолчанию для нового депозита (нижняя граница диапазона тика)
DEFAULT_DEPEG_PRICE: Final[float] = 0.99


# =============================================================================
# BASIS POINTS
# =============================================================================


def bps_to_fraction(bps: float) -> float:
    """
    Конверсия bps → доля.

    Examples:
        >>> bps_to_fraction(30.0)
        0.003
    """
    return bps / BPS_DENOMINATOR


def fraction_to_bps(fraction: float) -> float:
    """Конверсия доля → bps."""
    return fraction * BPS_DENOMINATOR


def deviation_bps(price: float, peg: float = 1.0) -> float:
    """
    Отклонение цены от пега в bps: |price − peg| / peg × 10 000.

    Examples:
        >>> round(deviation_bps(0.98), 6)
        200.0
    """
    return abs(price - peg) * BPS_DENOMINATOR / max(peg, EPS_PRICE)


# =============================================================================
# ГЕОМЕТРИЯ ТИКА
# =============================================================================


def radius_multiplier(amplification: float) -> float:
    """Множитель радиуса (PRECISION + A) / PRECISION."""
    return (AMPLIFICATION_PRECISION + amplification) / AMPLIFICATION_PRECISION


def position_radius(value: float, amplification: float) -> float:
    """
    Радиус тика из депонированной стоимости.

    Examples:
        >>> position_radius(2000.0, 1000.0)
        22000.0
    """
    return value * radius_multiplier(amplification)


def position_reach(alpha: float, depeg_price: float) -> float:
    """
    Уровень проекции, на котором позиция выходит на границу: α / depeg_price.

    depeg_price ∈ (0, 1]; при depeg_price = 1 позиция сразу граничная.
    """
    return safe_divide(alpha, depeg_price, eps=EPS_PRICE)


def plane_constant(radius: float, reach: float) -> float:
    """Plane constant k = radius × reach (k_norm = k / radius = reach)."""
    return radius * reach


def normalized_plane(plane_constant_value: float, radius: float) -> float:
    """Нормированный параметр k_norm = k / radius (0.0 для пустого тика)."""
    return safe_divide(plane_constant_value, radius)
