"""
Depeg State — Модели состояния депега актива

- DepegStatus: NORMAL / DEVIATING / ISOLATED
- PriceReport: один ценовой репорт (элемент batchReportPrice)
- AssetDepegState: состояние актива; изменяется только DepegMonitor
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class DepegStatus(str, Enum):
    """Состояние актива в машине депега."""

    NORMAL = "NORMAL"
    DEVIATING = "DEVIATING"
    ISOLATED = "ISOLATED"


# =============================================================================
# RECORDS
# =============================================================================


class PriceReport(BaseModel):
    """Уже полученная хостом цена актива."""

    asset_id: str = Field(..., min_length=1, description="Идентификатор актива")
    price: float = Field(..., gt=0, description="Наблюдаемая цена")
    ts_utc_ms: int = Field(..., ge=0, description="Время наблюдения (UTC, миллисекунды)")

    model_config = {"frozen": True, "allow_inf_nan": False}


class AssetDepegState(BaseModel):
    """
    Состояние депега одного актива.

    Immutable: каждый переход создаёт новый экземпляр.
    """

    asset_id: str = Field(..., min_length=1)
    status: DepegStatus = Field(DepegStatus.NORMAL)
    peg: float = Field(1.0, gt=0, description="Ожидаемая цена (пег)")

    last_price: Optional[float] = Field(None, gt=0)
    deviation_bps: float = Field(0.0, ge=0)
    last_report_ts_utc_ms: Optional[int] = Field(None, ge=0)

    deviation_start_ts_utc_ms: Optional[int] = Field(None, ge=0)
    isolation_ts_utc_ms: Optional[int] = Field(None, ge=0)
    violation_count: int = Field(0, ge=0)

    model_config = {"frozen": True}

    @property
    def isolated(self) -> bool:
        return self.status == DepegStatus.ISOLATED
