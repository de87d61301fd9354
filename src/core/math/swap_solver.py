"""
Swap Solver — поиск выхода свапа, сохраняющего Orbital invariant

Для входа dx ищется dy > 0 такой, что

    g(dy) = T(S + dx − dy, Q + dx(2x_in + dx) − dy(2x_out − dy)) − T(S, Q) = 0

где T — torus_value (см. invariant.py). Обновление сумм затрагивает ровно два
слагаемых Σx² (O(1) по числу активов и позиций).

Алгоритм — safeguarded Newton–Raphson (rtsafe):
1. Брекет наименьшего положительного корня на [0, x_out·(1 − RESERVE_FLOOR)].
   g выпукла по dy. При g(0) < 0 корень единственный; при g(0) > 0 (α > D)
   отрицательная точка ищется золотым сечением, и корень берётся на
   убывающей ветви. Касание нуля (двойной корень, |g| ≤ tol_g в минимуме)
   тоже корень. Нет ни смены знака, ни касания — выхода, сохраняющего
   инвариант, нет.
2. Newton-шаги с замкнутой производной
       g'(dy) = −2(α' − D)/n + [orth' > r_eff]·(1 − r_eff/orth')·2(α' − x_out')
   Шаг за пределы брекета, вырожденная производная или рост невязки —
   дивергенция.
3. Дивергенция или исчерпание лимита Newton → бисекция (если разрешена),
   иначе ConvergenceError.
"""

import logging
import math
from dataclasses import dataclass
from typing import Final

from src.core.errors import ConvergenceError, InsufficientLiquidityError, ValidationError
from src.core.math.invariant import ConsolidatedTickState, torus_gradient, torus_value
from src.core.math.numerical_safeguards import clamp, is_valid_float

logger = logging.getLogger(__name__)


# Доля резерва выхода, которую нельзя вывести одним свапом
RESERVE_FLOOR: Final[float] = 1e-9

# Относительный допуск невязки g: корень принимается при |g| ≤ tol_g,
# tol_g = RESIDUAL_EPS × max(1, |T0|, x_out²)
RESIDUAL_EPS: Final[float] = 1e-14


# =============================================================================
# CONFIG / RESULT
# =============================================================================


@dataclass(frozen=True)
class SolverConfig:
    """Конфигурация солвера.

    Сходимость: |Δdy| ≤ tolerance × max(1, x_out).
    """

    max_iterations: int = 10
    tolerance: float = 1e-10
    bisection_fallback: bool = True
    max_bisection_iterations: int = 200


@dataclass(frozen=True)
class SwapSolution:
    """Результат решения одного плеча свапа (до комиссии)."""

    amount_in: float
    amount_out: float
    new_reserve_in: float
    new_reserve_out: float
    new_sum_reserves: float
    new_sum_squared_reserves: float
    target_value: float
    residual: float
    iterations: int
    method: str  # "exact" | "tangent" | "newton" | "bisection"


# =============================================================================
# O(1) ОБНОВЛЕНИЕ СУММ
# =============================================================================


def apply_swap_to_sums(
    sum_reserves: float,
    sum_squared_reserves: float,
    reserve_in: float,
    reserve_out: float,
    amount_in: float,
    amount_out: float,
) -> tuple[float, float]:
    """
    Новые (S, Q) после свапа: меняются только два слагаемых Σx².

    (x_in + dx)² − x_in² = dx(2x_in + dx)
    (x_out − dy)² − x_out² = −dy(2x_out − dy)
    """
    new_sum = sum_reserves + amount_in - amount_out
    new_sum_squared = (
        sum_squared_reserves
        + amount_in * (2.0 * reserve_in + amount_in)
        - amount_out * (2.0 * reserve_out - amount_out)
    )
    return new_sum, new_sum_squared


# =============================================================================
# SOLVER
# =============================================================================


def solve_swap(
    reserve_in: float,
    reserve_out: float,
    amount_in: float,
    sum_reserves: float,
    sum_squared_reserves: float,
    asset_count: int,
    ticks: ConsolidatedTickState,
    config: SolverConfig | None = None,
) -> SwapSolution:
    """
    Решение уравнения инварианта для одного плеча свапа.

    Args:
        reserve_in: текущий резерв входного актива
        reserve_out: текущий резерв выходного актива
        amount_in: вход dx (> 0)
        sum_reserves: S
        sum_squared_reserves: Q
        asset_count: n
        ticks: консолидированное состояние, фиксированное на время плеча
        config: конфигурация солвера

    Returns:
        SwapSolution с выходом до комиссии и новыми суммами

    Raises:
        ValidationError: некорректный вход
        InsufficientLiquidityError: выход, сохраняющий инвариант, превышает резерв
            или равен нулю
        ConvergenceError: лимит итераций исчерпан
    """
    config = config or SolverConfig()

    if not is_valid_float(amount_in) or amount_in <= 0.0:
        raise ValidationError(f"amount_in must be positive, got {amount_in}")
    if reserve_out <= 0.0:
        raise InsufficientLiquidityError("output reserve is empty")

    target = torus_value(sum_reserves, sum_squared_reserves, asset_count, ticks)

    def residual(dy: float) -> float:
        new_sum, new_sq = apply_swap_to_sums(
            sum_reserves, sum_squared_reserves, reserve_in, reserve_out, amount_in, dy
        )
        return torus_value(new_sum, new_sq, asset_count, ticks) - target

    def derivative(dy: float) -> float:
        new_sum, new_sq = apply_swap_to_sums(
            sum_reserves, sum_squared_reserves, reserve_in, reserve_out, amount_in, dy
        )
        return -torus_gradient(reserve_out - dy, new_sum, new_sq, asset_count, ticks)

    def solution(dy: float, g: float, iterations: int, method: str) -> SwapSolution:
        if dy <= 0.0:
            raise InsufficientLiquidityError(f"swap of {amount_in} yields no output")
        new_sum, new_sq = apply_swap_to_sums(
            sum_reserves, sum_squared_reserves, reserve_in, reserve_out, amount_in, dy
        )
        logger.debug(
            "swap solved: dx=%.12g dy=%.12g method=%s iterations=%d residual=%.3e",
            amount_in, dy, method, iterations, g,
        )
        return SwapSolution(
            amount_in=amount_in,
            amount_out=dy,
            new_reserve_in=reserve_in + amount_in,
            new_reserve_out=reserve_out - dy,
            new_sum_reserves=new_sum,
            new_sum_squared_reserves=new_sq,
            target_value=target,
            residual=g,
            iterations=iterations,
            method=method,
        )

    upper = reserve_out * (1.0 - RESERVE_FLOOR)
    tolerance = config.tolerance * max(1.0, reserve_out)
    residual_tolerance = RESIDUAL_EPS * max(1.0, abs(target), reserve_out * reserve_out)

    # 1. Брекет вокруг наименьшего положительного корня.
    # g(0) < 0: корень единственный. g(0) > 0 (α > D): первый корень лежит
    # на убывающей ветви, до минимума g, либо минимум касается нуля.
    g_lower = residual(0.0)
    if g_lower == 0.0:
        raise InsufficientLiquidityError(f"swap of {amount_in} yields no output")

    dy = clamp(amount_in, 0.0, upper)
    g = residual(dy)
    if abs(g) <= residual_tolerance:
        return solution(dy, g, 0, "exact")

    if g_lower < 0.0 and g > 0.0:
        x_neg, x_pos = 0.0, dy
    elif g_lower < 0.0:
        g_upper = residual(upper)
        if abs(g_upper) <= residual_tolerance:
            return solution(upper, g_upper, 0, "exact")
        if g_upper < 0.0:
            raise InsufficientLiquidityError(
                f"no invariant-preserving output within reserve {reserve_out} for input {amount_in}"
            )
        x_neg, x_pos = dy, upper
    elif g < 0.0:
        x_neg, x_pos = dy, 0.0
    else:
        turning = _find_negative(
            residual, upper, config.max_bisection_iterations, residual_tolerance
        )
        if turning is None:
            raise InsufficientLiquidityError(
                f"no invariant-preserving output within reserve {reserve_out} for input {amount_in}"
            )
        x_turn, g_turn = turning
        if g_turn >= 0.0:
            return solution(x_turn, g_turn, 0, "tangent")
        x_neg, x_pos = x_turn, (dy if dy < x_turn else 0.0)
        dy = 0.5 * (x_neg + x_pos)
        g = residual(dy)
        if abs(g) <= residual_tolerance:
            return solution(dy, g, 0, "exact")

    # 2. Newton

    iterations = 0
    while iterations < config.max_iterations:
        if g < 0.0:
            x_neg = dy
        else:
            x_pos = dy

        slope = derivative(dy)
        candidate = dy - g / slope if slope != 0.0 and is_valid_float(slope) else float("nan")
        iterations += 1

        if not (is_valid_float(candidate) and min(x_neg, x_pos) < candidate < max(x_neg, x_pos)):
            if not config.bisection_fallback:
                raise ConvergenceError("newton step diverged", iterations, g)
            logger.warning(
                "newton step diverged at dy=%.12g (slope=%.6g), switching to bisection", dy, slope
            )
            break

        step = candidate - dy
        previous = g
        dy = candidate
        g = residual(dy)
        if g == 0.0 or abs(step) <= tolerance:
            return solution(dy, g, iterations, "newton")
        if abs(g) > abs(previous):
            if not config.bisection_fallback:
                raise ConvergenceError("newton residual grew", iterations, g)
            logger.warning("newton residual grew at dy=%.12g, switching to bisection", dy)
            break
    else:
        if not config.bisection_fallback:
            raise ConvergenceError(
                f"newton did not converge in {config.max_iterations} iterations", iterations, g
            )
        logger.warning(
            "newton iteration cap %d reached, switching to bisection", config.max_iterations
        )

    # 3. Бисекция на сохранённом брекете
    if g < 0.0:
        x_neg = dy
    else:
        x_pos = dy

    for _ in range(config.max_bisection_iterations):
        mid = 0.5 * (x_neg + x_pos)
        g_mid = residual(mid)
        iterations += 1
        if g_mid == 0.0 or 0.5 * abs(x_pos - x_neg) <= tolerance:
            return solution(mid, g_mid, iterations, "bisection")
        if g_mid < 0.0:
            x_neg = mid
        else:
            x_pos = mid

    raise ConvergenceError(
        f"bisection did not converge in {config.max_bisection_iterations} iterations",
        iterations,
        g,
    )


def _find_negative(
    residual, upper: float, max_iterations: int, tolerance: float
) -> tuple[float, float] | None:
    """
    Золотое сечение по выпуклой g на [0, upper].

    Returns:
        (x, g(x)) первой точки с g < 0; иначе минимум, если g(min) ≤ tolerance
        (касание нуля); иначе None
    """
    inv_phi = (math.sqrt(5.0) - 1.0) / 2.0
    a, b = 0.0, upper
    c = b - inv_phi * (b - a)
    d = a + inv_phi * (b - a)
    g_c, g_d = residual(c), residual(d)

    for _ in range(max_iterations):
        if g_c < 0.0:
            return c, g_c
        if g_d < 0.0:
            return d, g_d
        if g_c < g_d:
            b, d, g_d = d, c, g_c
            c = b - inv_phi * (b - a)
            g_c = residual(c)
        else:
            a, c, g_c = c, d, g_d
            d = a + inv_phi * (b - a)
            g_d = residual(d)

    x_min, g_min = (c, g_c) if g_c < g_d else (d, g_d)
    if g_min <= tolerance:
        return x_min, g_min
    return None
