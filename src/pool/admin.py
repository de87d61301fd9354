"""PoolAdministrator — административная capability над PoolManager.

- set_amplification: пересчёт радиусов всех позиций и консолидация
- set_fee_rate
- restore_asset / emergency_isolate: переходы DepegMonitor + зеркалирование в пулы
- reactivate_pool: возобновление остановленного пула после сверки сумм

Параметры остановленного пула не меняются (PoolHaltedError); изоляция
актива глобальна и применяется к пулу независимо от его статуса.
"""

import logging
from typing import Optional

from src.core.errors import ValidationError
from src.depeg.state_machine import DepegTransitionResult
from src.pool.manager import PoolManager

logger = logging.getLogger(__name__)


class PoolAdministrator:
    """Административные операции; хост решает, кому выдавать этот объект."""

    def __init__(self, manager: PoolManager):
        self.manager = manager

    def set_amplification(self, pool_id: str, amplification: float) -> None:
        self.manager.update_parameters(pool_id, amplification=amplification)
        logger.info("pool %s amplification set to %s", pool_id, amplification)

    def set_fee_rate(self, pool_id: str, fee_rate: float) -> None:
        self.manager.update_parameters(pool_id, fee_rate=fee_rate)
        logger.info("pool %s fee rate set to %s", pool_id, fee_rate)

    def restore_asset(self, pool_id: str, asset_id: str, now_ms: Optional[int] = None) -> DepegTransitionResult:
        """
        Восстановление изолированного актива пула.

        Raises:
            ValidationError: актив не из пула, не изолирован, отклонение выше
                recovery порога или cooldown не истёк
        """
        if asset_id not in self.manager.get_pool_state(pool_id).assets:
            raise ValidationError(f"asset {asset_id} is not part of pool {pool_id}")

        result = self.manager.depeg_monitor.restore(asset_id, now_ms)
        self.manager.sync_isolation(asset_id)
        return result

    def emergency_isolate(self, asset_id: str, now_ms: Optional[int] = None) -> DepegTransitionResult:
        result = self.manager.depeg_monitor.emergency_isolate(asset_id, now_ms)
        self.manager.sync_isolation(asset_id)
        return result

    def reactivate_pool(self, pool_id: str) -> None:
        """
        Возобновление остановленного пула.

        Raises:
            StateInconsistencyError: суммы пула не согласованы с резервами
        """
        self.manager.resume_pool(pool_id)
        logger.info("pool %s reactivated", pool_id)
