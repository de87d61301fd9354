"""Pool — состояние и оркестрация пулов Orbital engine.

- PoolLedger / PositionRegistry: резервы, суммы и позиции пула
- TickConsolidator: свёртка позиций в interior/boundary агрегаты
- TradeSegmenter: разбиение свапа по границам тиков
- PoolManager / PoolAdministrator: операции движка
"""

from .admin import PoolAdministrator
from .consolidation import TickConsolidator, consolidate_ticks
from .ledger import LedgerCheckpoint, PoolLedger
from .manager import EngineConfig, PoolManager, compute_pool_id
from .registry import PositionRegistry
from .segmentation import SwapLeg, SwapPlan, TradeSegmenter, detect_crossing

__all__ = [
    "PoolManager",
    "PoolAdministrator",
    "EngineConfig",
    "compute_pool_id",
    "PoolLedger",
    "LedgerCheckpoint",
    "PositionRegistry",
    "TickConsolidator",
    "consolidate_ticks",
    "TradeSegmenter",
    "SwapPlan",
    "SwapLeg",
    "detect_crossing",
]
