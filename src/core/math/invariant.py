"""
Invariant — Orbital sphere/torus invariant

Чистые функции без побочных эффектов: вызываются до и после любой мутации
и служат оракулом пост-условий.

Обозначения (n — число активов пула):
    S     = Σ x_i                      (sum_reserves)
    Q     = Σ x_i²                     (sum_squared_reserves)
    α     = S / n                      (глобальная проекция)
    orth  = sqrt(Q − S²/n)             (орто-компонента)
    r_eff = sqrt(r_b² − (c − r_b/n)²)  (эффективный радиус граничного круга)
    D     = c + r_int / n              (центр тора вдоль проекции)

Режимы:
    EMPTY     — активных тиков нет → 0
    SPHERE    — только interior → r_int²
    BOUNDARY  — только boundary → r_eff²
    TORUS     — оба класса → (α − D)² + max(0, orth − r_eff)²

В режимах SPHERE/BOUNDARY значение не зависит от резервов. Цену в любом режиме
задаёт torus_value (отсутствующая категория даёт ноль), его и сохраняет солвер.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.core.math.numerical_safeguards import safe_divide, safe_sqrt, sanitize_float


# =============================================================================
# CONSOLIDATED STATE
# =============================================================================


class InvariantRegime(str, Enum):
    """Режим инварианта по составу активных тиков."""

    EMPTY = "EMPTY"
    SPHERE = "SPHERE"
    BOUNDARY = "BOUNDARY"
    TORUS = "TORUS"


@dataclass(frozen=True)
class ConsolidatedTickState:
    """
    Результат консолидации: P активных позиций → два агрегата.

    Производная величина: всегда чистая функция реестра позиций и α.
    min_interior_k / max_boundary_k — пороги пересечения для сегментации свапа.
    """

    alpha: float = 0.0
    interior_radius: float = 0.0
    boundary_radius: float = 0.0
    boundary_constant: float = 0.0
    interior_count: int = 0
    boundary_count: int = 0
    min_interior_k: Optional[float] = None
    max_boundary_k: Optional[float] = None

    @property
    def regime(self) -> InvariantRegime:
        if self.interior_count and self.boundary_count:
            return InvariantRegime.TORUS
        if self.interior_count:
            return InvariantRegime.SPHERE
        if self.boundary_count:
            return InvariantRegime.BOUNDARY
        return InvariantRegime.EMPTY

    @property
    def total_radius(self) -> float:
        return self.interior_radius + self.boundary_radius

    @property
    def position_count(self) -> int:
        return self.interior_count + self.boundary_count


EMPTY_TICKS = ConsolidatedTickState()


# =============================================================================
# ГЕОМЕТРИЧЕСКИЕ КОМПОНЕНТЫ
# =============================================================================


def projection(sum_reserves: float, asset_count: int) -> float:
    """Глобальная проекция α = S / n."""
    return safe_divide(sum_reserves, float(asset_count))


def orthogonal_magnitude(sum_reserves: float, sum_squared_reserves: float, asset_count: int) -> float:
    """
    Длина компоненты резервов, ортогональной диагонали (1, ..., 1).

    Examples:
        >>> orthogonal_magnitude(2000.0, 2_000_000.0, 2)
        0.0
    """
    spread = sum_squared_reserves - safe_divide(sum_reserves * sum_reserves, float(asset_count))
    return safe_sqrt(spread)


def effective_boundary_radius(boundary_radius: float, boundary_constant: float, asset_count: int) -> float:
    """
    Эффективный радиус граничного круга.

    Отрицательное подкоренное выражение (плоскость не пересекает сферу)
    даёт 0.0.
    """
    offset = boundary_constant - safe_divide(boundary_radius, float(asset_count))
    return safe_sqrt(boundary_radius * boundary_radius - offset * offset)


def torus_center(ticks: ConsolidatedTickState, asset_count: int) -> float:
    """Центр тора вдоль проекции D = c + r_int / n."""
    return ticks.boundary_constant + safe_divide(ticks.interior_radius, float(asset_count))


# =============================================================================
# ИНВАРИАНТ
# =============================================================================


def torus_value(
    sum_reserves: float,
    sum_squared_reserves: float,
    asset_count: int,
    ticks: ConsolidatedTickState,
) -> float:
    """
    Зависящее от резервов выражение тора.

    T(S, Q) = (α − D)² + max(0, orth − r_eff)²
    """
    alpha = projection(sum_reserves, asset_count)
    axial = alpha - torus_center(ticks, asset_count)
    r_eff = effective_boundary_radius(ticks.boundary_radius, ticks.boundary_constant, asset_count)
    radial = max(0.0, orthogonal_magnitude(sum_reserves, sum_squared_reserves, asset_count) - r_eff)
    return sanitize_float(axial * axial + radial * radial)


def compute_invariant(
    sum_reserves: float,
    sum_squared_reserves: float,
    asset_count: int,
    ticks: ConsolidatedTickState,
) -> float:
    """
    Значение инварианта по режиму консолидированного состояния.

    Args:
        sum_reserves: Σ x_i
        sum_squared_reserves: Σ x_i²
        asset_count: n
        ticks: консолидированное состояние тиков

    Returns:
        Значение инварианта (0.0 для пула без активных тиков)
    """
    regime = ticks.regime
    if regime == InvariantRegime.EMPTY:
        return 0.0
    if regime == InvariantRegime.SPHERE:
        return ticks.interior_radius * ticks.interior_radius
    if regime == InvariantRegime.BOUNDARY:
        r_eff = effective_boundary_radius(ticks.boundary_radius, ticks.boundary_constant, asset_count)
        return r_eff * r_eff
    return torus_value(sum_reserves, sum_squared_reserves, asset_count, ticks)


def torus_gradient(
    reserve: float,
    sum_reserves: float,
    sum_squared_reserves: float,
    asset_count: int,
    ticks: ConsolidatedTickState,
) -> float:
    """
    Частная производная ∂T/∂x_k для актива с резервом x_k.

    ∂T/∂x_k = 2(α − D)/n + [orth > r_eff]·(1 − r_eff/orth)·2(x_k − α)
    """
    n = float(asset_count)
    alpha = projection(sum_reserves, asset_count)
    axial = 2.0 * (alpha - torus_center(ticks, asset_count)) / n

    orth = orthogonal_magnitude(sum_reserves, sum_squared_reserves, asset_count)
    r_eff = effective_boundary_radius(ticks.boundary_radius, ticks.boundary_constant, asset_count)
    if orth <= r_eff or orth == 0.0:
        return axial

    weight = 1.0 - r_eff / orth
    return axial + weight * 2.0 * (reserve - alpha)


def spot_price(
    reserve_in: float,
    reserve_out: float,
    sum_reserves: float,
    sum_squared_reserves: float,
    asset_count: int,
    ticks: ConsolidatedTickState,
) -> float:
    """
    Маржинальная цена: сколько asset_out даёт единица asset_in.

    Вдоль T = const: выход/вход = (∂T/∂x_in) / (∂T/∂x_out).
    Для сбалансированного пула цена равна 1.0.
    """
    grad_in = torus_gradient(reserve_in, sum_reserves, sum_squared_reserves, asset_count, ticks)
    grad_out = torus_gradient(reserve_out, sum_reserves, sum_squared_reserves, asset_count, ticks)
    return safe_divide(grad_in, grad_out)
