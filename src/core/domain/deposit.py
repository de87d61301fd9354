"""
Deposit — Элемент пакетного добавления ликвидности

Единый явный тип записи для addLiquidity / batchAddLiquidity.
Валидируется целиком до любой мутации состояния пула.
"""

import math
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class Deposit(BaseModel):
    """
    Депозит одного поставщика ликвидности.

    Immutable модель (frozen=True).
    """

    provider: str = Field(..., min_length=1, description="Идентификатор поставщика ликвидности")
    amounts: dict[str, float] = Field(..., min_length=1, description="Суммы по активам пула")
    min_lp_shares: float = Field(0.0, ge=0, description="Минимум LP долей (иначе отказ)")
    depeg_price: Optional[float] = Field(
        None,
        gt=0,
        le=1,
        description="Цена депега тика; None — значение из EngineConfig",
    )

    model_config = {"frozen": True, "allow_inf_nan": False}

    @field_validator("amounts")
    @classmethod
    def validate_amounts_positive(cls, v: dict[str, float]) -> dict[str, float]:
        """Каждая сумма строго положительна и конечна."""
        for asset_id, amount in v.items():
            if not asset_id:
                raise ValueError("asset id must be non-empty")
            if not math.isfinite(amount) or amount <= 0:
                raise ValueError(f"amount for {asset_id} must be > 0, got {amount}")
        return v

    @property
    def value(self) -> float:
        """Суммарная стоимость депозита."""
        return sum(self.amounts.values())
