"""
LiquidityPosition — Модель позиции поставщика ликвидности (тик)

Immutable Pydantic модель, ключ — (pool_id, provider).
Любое изменение позиции (депозит, частичный/полный вывод, смена амплификации)
создаёт новый экземпляр.

Классификация interior/boundary здесь НЕ хранится: она пересчитывается
консолидатором относительно текущей проекции α.
"""

import math

from pydantic import BaseModel, Field, field_validator

from src.core.domain.units import normalized_plane


# =============================================================================
# POSITION MODEL
# =============================================================================


class LiquidityPosition(BaseModel):
    """
    Позиция поставщика ликвидности в пуле.

    Геометрия тика:
    - radius = value × (100 + A) / 100
    - plane_constant = radius × reach
    - k_norm = plane_constant / radius = reach
    """

    # Идентификация
    pool_id: str = Field(..., min_length=1, description="Идентификатор пула")
    provider: str = Field(..., min_length=1, description="Идентификатор поставщика ликвидности")

    # Доли и депозиты
    lp_shares: float = Field(..., ge=0, description="LP доли позиции")
    deposited: dict[str, float] = Field(
        ..., description="Депонированные суммы по активам (уменьшаются пропорционально при выводе)"
    )

    # Геометрия тика
    radius: float = Field(..., ge=0, description="Радиус тика")
    plane_constant: float = Field(..., ge=0, description="Plane constant k")
    depeg_price: float = Field(
        ..., gt=0, le=1, description="Цена депега, на которой тик выходит на границу"
    )

    # Статус
    active: bool = Field(True, description="False после полного вывода")

    # Время
    created_ts_utc_ms: int = Field(..., ge=0, description="Время создания (UTC, миллисекунды)")
    updated_ts_utc_ms: int = Field(..., ge=0, description="Время последнего изменения (UTC, мс)")

    model_config = {"frozen": True}

    @field_validator("deposited")
    @classmethod
    def validate_deposited(cls, v: dict[str, float]) -> dict[str, float]:
        """Все депонированные суммы конечны и неотрицательны."""
        for asset_id, amount in v.items():
            if not math.isfinite(amount) or amount < 0:
                raise ValueError(f"deposited[{asset_id}] must be finite and >= 0, got {amount}")
        return v

    @property
    def value(self) -> float:
        """Депонированная стоимость (стейблы, пег 1)."""
        return sum(self.deposited.values())

    @property
    def k_norm(self) -> float:
        """Нормированный параметр плоскости k / radius."""
        return normalized_plane(self.plane_constant, self.radius)

    def is_interior(self, alpha: float) -> bool:
        """Interior если k_norm лежит за текущей проекцией α."""
        return self.k_norm > alpha
