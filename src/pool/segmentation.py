"""TradeSegmenter — разбиение свапа на плечи по границам тиков.

Пересечение определяется по tentative проекции α' после свапа:
- вверх:  α' ≥ min_interior_k  (interior позиция становится boundary)
- вниз:   α' < max_boundary_k  (boundary позиция становится interior)

При пересечении бисекцией по amount_in ищется под-объём, доводящий α до точки
пересечения; плечо заканчивается на пересечённой стороне, поэтому каждое плечо
переклассифицирует хотя бы одну позицию (число плеч ≤ P + 1). Затем
консолидация пересчитывается и остаток исполняется против нового состояния.

Планирование чистое: работает на локальных копиях двух резервов и двух сумм.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from src.core.errors import InsufficientLiquidityError, StateInconsistencyError
from src.core.math.invariant import ConsolidatedTickState, compute_invariant, projection
from src.core.math.numerical_safeguards import is_close
from src.core.math.swap_solver import SolverConfig, SwapSolution, solve_swap

logger = logging.getLogger(__name__)


# =============================================================================
# PLAN
# =============================================================================


@dataclass(frozen=True)
class SwapLeg:
    """Одно плечо свапа против фиксированного консолидированного состояния."""

    amount_in: float
    amount_out: float
    alpha_before: float
    alpha_after: float
    invariant_before: float
    invariant_after: float
    ticks: ConsolidatedTickState
    crossing: Optional[str]  # "up" | "down" | None
    iterations: int


@dataclass(frozen=True)
class SwapPlan:
    """План свапа (до комиссии)."""

    legs: tuple[SwapLeg, ...]
    amount_in: float
    gross_amount_out: float
    reserve_in_after: float
    reserve_out_after: float
    sum_reserves_after: float
    sum_squared_reserves_after: float
    final_ticks: ConsolidatedTickState

    @property
    def segmented(self) -> bool:
        return len(self.legs) > 1


def detect_crossing(ticks: ConsolidatedTickState, alpha_before: float, alpha_after: float) -> Optional[str]:
    """
    Направление пересечения границы тика или None.

    Examples:
        >>> detect_crossing(ConsolidatedTickState(min_interior_k=10.0, interior_count=1), 9.0, 10.5)
        'up'
    """
    if alpha_after > alpha_before:
        if ticks.min_interior_k is not None and alpha_after >= ticks.min_interior_k:
            return "up"
    elif alpha_after < alpha_before:
        if ticks.max_boundary_k is not None and alpha_after < ticks.max_boundary_k:
            return "down"
    return None


# =============================================================================
# SEGMENTER
# =============================================================================


class TradeSegmenter:
    """Планировщик свапа с сегментацией по границам тиков."""

    def __init__(
        self,
        solver_config: SolverConfig | None = None,
        invariant_rtol: float = 1e-8,
        crossing_max_iterations: int = 100,
    ):
        """
        Args:
            solver_config: конфигурация солвера для каждого плеча
            invariant_rtol: допуск проверки сохранения инварианта на плече
            crossing_max_iterations: лимит бисекции точки пересечения
        """
        self.solver_config = solver_config or SolverConfig()
        self.invariant_rtol = invariant_rtol
        self.crossing_max_iterations = crossing_max_iterations

    def plan(
        self,
        pool_id: str,
        reserve_in: float,
        reserve_out: float,
        amount_in: float,
        sum_reserves: float,
        sum_squared_reserves: float,
        asset_count: int,
        ticks: ConsolidatedTickState,
        reconsolidate: Callable[[float], ConsolidatedTickState],
    ) -> SwapPlan:
        """
        Построение плана свапа.

        Args:
            pool_id: идентификатор пула (для диагностики)
            reserve_in / reserve_out: текущие резервы
            amount_in: полный вход
            sum_reserves / sum_squared_reserves: текущие суммы
            asset_count: n
            ticks: текущее консолидированное состояние
            reconsolidate: S → ConsolidatedTickState (чистая консолидация реестра)

        Returns:
            SwapPlan

        Raises:
            InsufficientLiquidityError / ConvergenceError: от солвера
            StateInconsistencyError: плечо не сохранило инвариант
        """
        max_legs = ticks.position_count + 1
        legs: list[SwapLeg] = []
        remaining = amount_in
        reclassified = False
        settle_tolerance = self.solver_config.tolerance * max(1.0, amount_in)

        while True:
            alpha_before = projection(sum_reserves, asset_count)
            solution = solve_swap(
                reserve_in, reserve_out, remaining, sum_reserves, sum_squared_reserves,
                asset_count, ticks, self.solver_config,
            )
            alpha_after = projection(solution.new_sum_reserves, asset_count)
            crossing = detect_crossing(ticks, alpha_before, alpha_after)
            reclassified = reclassified or crossing is not None

            if crossing is not None and len(legs) + 1 < max_legs:
                partial = self._crossing_leg(
                    reserve_in, reserve_out, remaining, sum_reserves, sum_squared_reserves,
                    asset_count, ticks, alpha_before,
                )
                if partial is not None and partial.amount_in < remaining - settle_tolerance:
                    solution = partial
                else:
                    crossing = None
            else:
                crossing = None

            legs.append(self._verified_leg(pool_id, solution, sum_reserves, sum_squared_reserves,
                                           asset_count, ticks, crossing))

            reserve_in = solution.new_reserve_in
            reserve_out = solution.new_reserve_out
            sum_reserves = solution.new_sum_reserves
            sum_squared_reserves = solution.new_sum_squared_reserves
            remaining -= solution.amount_in

            if crossing is None:
                break

            ticks = reconsolidate(sum_reserves)
            logger.debug(
                "pool %s swap segmented at alpha=%.12g (%s), remaining=%.12g",
                pool_id, projection(sum_reserves, asset_count), crossing, remaining,
            )

        final_ticks = reconsolidate(sum_reserves) if reclassified else ticks
        return SwapPlan(
            legs=tuple(legs),
            amount_in=amount_in,
            gross_amount_out=sum(leg.amount_out for leg in legs),
            reserve_in_after=reserve_in,
            reserve_out_after=reserve_out,
            sum_reserves_after=sum_reserves,
            sum_squared_reserves_after=sum_squared_reserves,
            final_ticks=final_ticks,
        )

    def _crossing_leg(
        self,
        reserve_in: float,
        reserve_out: float,
        amount_in: float,
        sum_reserves: float,
        sum_squared_reserves: float,
        asset_count: int,
        ticks: ConsolidatedTickState,
        alpha_before: float,
    ) -> Optional[SwapSolution]:
        """Бисекция под-объёма, заканчивающегося на пересечённой стороне."""
        tolerance = self.solver_config.tolerance * max(1.0, amount_in)
        lower, upper = 0.0, amount_in
        crossed: Optional[SwapSolution] = None

        for _ in range(self.crossing_max_iterations):
            if upper - lower <= tolerance:
                break
            mid = 0.5 * (lower + upper)
            try:
                candidate = solve_swap(
                    reserve_in, reserve_out, mid, sum_reserves, sum_squared_reserves,
                    asset_count, ticks, self.solver_config,
                )
            except InsufficientLiquidityError:
                # слишком малый под-объём не даёт выхода и не пересекает границу
                lower = mid
                continue

            alpha_mid = projection(candidate.new_sum_reserves, asset_count)
            if detect_crossing(ticks, alpha_before, alpha_mid) is not None:
                upper = mid
                crossed = candidate
            else:
                lower = mid

        if crossed is None or crossed.amount_in != upper:
            crossed = solve_swap(
                reserve_in, reserve_out, upper, sum_reserves, sum_squared_reserves,
                asset_count, ticks, self.solver_config,
            )
        return crossed

    def _verified_leg(
        self,
        pool_id: str,
        solution: SwapSolution,
        sum_reserves: float,
        sum_squared_reserves: float,
        asset_count: int,
        ticks: ConsolidatedTickState,
        crossing: Optional[str],
    ) -> SwapLeg:
        before = compute_invariant(sum_reserves, sum_squared_reserves, asset_count, ticks)
        after = compute_invariant(
            solution.new_sum_reserves, solution.new_sum_squared_reserves, asset_count, ticks
        )
        scale = max(abs(before), 1.0)
        if not is_close(before, after, rel_tol=self.invariant_rtol, abs_tol=self.invariant_rtol * scale):
            raise StateInconsistencyError(
                pool_id, [f"swap leg changed invariant from {before!r} to {after!r}"]
            )
        return SwapLeg(
            amount_in=solution.amount_in,
            amount_out=solution.amount_out,
            alpha_before=projection(sum_reserves, asset_count),
            alpha_after=projection(solution.new_sum_reserves, asset_count),
            invariant_before=before,
            invariant_after=after,
            ticks=ticks,
            crossing=crossing,
            iterations=solution.iterations,
        )
