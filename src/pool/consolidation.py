"""TickConsolidator — свёртка P активных позиций в два агрегата.

Для каждой активной позиции:
    k_norm = plane_constant / radius
    interior  если k_norm > α  → interior_radius += radius
    boundary  иначе            → boundary_radius += radius,
                                  boundary_constant — liquidity-weighted running mean k_norm

Проход O(P): это единственное место с линейной стоимостью по числу позиций.
Свап обновляет резервы за O(1), но консолидация не инкрементальна; batchAddLiquidity
амортизирует её одним проходом на пакет.
"""

import logging
from typing import Iterable, Optional

from src.core.domain.position import LiquidityPosition
from src.core.math.invariant import ConsolidatedTickState, projection

logger = logging.getLogger(__name__)


def consolidate_ticks(
    positions: Iterable[LiquidityPosition],
    sum_reserves: float,
    asset_count: int,
) -> ConsolidatedTickState:
    """
    Чистая функция консолидации.

    Args:
        positions: позиции реестра (неактивные пропускаются)
        sum_reserves: S
        asset_count: n

    Returns:
        ConsolidatedTickState для α = S / n
    """
    alpha = projection(sum_reserves, asset_count)

    interior_radius = 0.0
    boundary_radius = 0.0
    boundary_constant = 0.0
    interior_count = 0
    boundary_count = 0
    min_interior_k: Optional[float] = None
    max_boundary_k: Optional[float] = None

    for position in positions:
        if not position.active or position.radius <= 0.0:
            continue

        k_norm = position.k_norm
        if k_norm > alpha:
            interior_radius += position.radius
            interior_count += 1
            if min_interior_k is None or k_norm < min_interior_k:
                min_interior_k = k_norm
        else:
            boundary_radius += position.radius
            boundary_count += 1
            boundary_constant += (k_norm - boundary_constant) * position.radius / boundary_radius
            if max_boundary_k is None or k_norm > max_boundary_k:
                max_boundary_k = k_norm

    return ConsolidatedTickState(
        alpha=alpha,
        interior_radius=interior_radius,
        boundary_radius=boundary_radius,
        boundary_constant=boundary_constant,
        interior_count=interior_count,
        boundary_count=boundary_count,
        min_interior_k=min_interior_k,
        max_boundary_k=max_boundary_k,
    )


class TickConsolidator:
    """Консолидатор пула со счётчиками проходов (getConsolidationStats)."""

    def __init__(self, pool_id: str):
        self.pool_id = pool_id
        self.consolidation_passes = 0
        self.positions_scanned = 0

    def consolidate(
        self,
        positions: Iterable[LiquidityPosition],
        sum_reserves: float,
        asset_count: int,
    ) -> ConsolidatedTickState:
        scanned = list(positions)
        ticks = consolidate_ticks(scanned, sum_reserves, asset_count)

        self.consolidation_passes += 1
        self.positions_scanned += len(scanned)
        logger.debug(
            "pool %s consolidated %d positions: interior=%d boundary=%d regime=%s",
            self.pool_id,
            len(scanned),
            ticks.interior_count,
            ticks.boundary_count,
            ticks.regime.value,
        )
        return ticks
