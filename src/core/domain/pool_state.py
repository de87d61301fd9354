"""
Pool State — Read-only снимки состояния пула

- PoolSnapshot: getPoolState
- ConsolidationStats: getConsolidationStats
- SwapQuote: quoteSwap

Все модели immutable и не ссылаются на внутренние изменяемые структуры.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PoolSnapshot(BaseModel):
    """Снимок состояния пула."""

    pool_id: str
    assets: list[str]
    reserves: dict[str, float]
    sum_reserves: float = Field(..., ge=0)
    sum_squared_reserves: float = Field(..., ge=0)
    alpha: float = Field(..., ge=0, description="Глобальная проекция S / n")
    amplification: float = Field(..., gt=0)
    fee_rate: float = Field(..., ge=0, le=1)
    active: bool
    isolated_assets: list[str]
    total_lp_supply: float = Field(..., ge=0)
    accrued_fees: dict[str, float]
    invariant: float
    regime: str
    position_count: int = Field(..., ge=0)

    model_config = {"frozen": True}


class ConsolidationStats(BaseModel):
    """
    Статистика консолидации тиков.

    positions_scanned / consolidation_passes показывают O(P) стоимость,
    которую амортизирует batchAddLiquidity.
    """

    pool_id: str
    active_positions: int = Field(..., ge=0)
    interior_count: int = Field(..., ge=0)
    boundary_count: int = Field(..., ge=0)
    interior_radius: float = Field(..., ge=0)
    boundary_radius: float = Field(..., ge=0)
    boundary_constant: float = Field(..., ge=0)
    effective_boundary_radius: float = Field(..., ge=0)
    alpha: float = Field(..., ge=0)
    min_interior_k: Optional[float] = None
    max_boundary_k: Optional[float] = None
    regime: str
    aggregate_calculations: int = Field(..., ge=0, description="Число агрегатов после консолидации (≤ 2)")
    positions_scanned: int = Field(..., ge=0)
    consolidation_passes: int = Field(..., ge=0)

    model_config = {"frozen": True}


class SwapQuote(BaseModel):
    """Котировка свапа без изменения состояния."""

    pool_id: str
    asset_in: str
    asset_out: str
    amount_in: float = Field(..., gt=0)
    amount_out: float = Field(..., ge=0, description="Выход после комиссии")
    gross_amount_out: float = Field(..., ge=0, description="Выход до комиссии")
    fee: float = Field(..., ge=0)
    spot_price: float = Field(..., description="Маржинальная цена asset_in в asset_out")
    effective_price: float = Field(..., ge=0)
    price_impact_bps: float = Field(..., ge=0)
    legs: int = Field(..., ge=1)

    model_config = {"frozen": True}
