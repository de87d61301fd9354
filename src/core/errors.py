"""
Errors — таксономия ошибок Orbital engine

Все операции движка атомарны (all-or-nothing): при любой ошибке из этого модуля
состояние пула остаётся неизменным. Повторы (retry/backoff) — ответственность
хоста, движок их не выполняет.

Иерархия:
    OrbitalEngineError
    ├── ValidationError
    │   ├── CapacityError
    │   ├── PoolHaltedError
    │   └── UnknownPoolError
    ├── InsufficientLiquidityError
    ├── AssetIsolatedError
    ├── ConvergenceError
    └── StateInconsistencyError
"""

from typing import Optional, Sequence


class OrbitalEngineError(Exception):
    """Базовая ошибка движка."""


# =============================================================================
# ВХОДНЫЕ ДАННЫЕ
# =============================================================================


class ValidationError(OrbitalEngineError):
    """Некорректные входные данные: нули, NaN, несовпадающие длины, неизвестные активы."""


class CapacityError(ValidationError):
    """Достигнут потолок количества позиций в пуле."""

    def __init__(self, pool_id: str, max_positions: int):
        self.pool_id = pool_id
        self.max_positions = max_positions
        super().__init__(f"pool {pool_id} reached position capacity ({max_positions})")


class PoolHaltedError(ValidationError):
    """Мутирующая операция над остановленным (inactive) пулом."""

    def __init__(self, pool_id: str):
        self.pool_id = pool_id
        super().__init__(f"pool {pool_id} is halted")


class UnknownPoolError(ValidationError):
    """Пул с таким идентификатором не зарегистрирован."""

    def __init__(self, pool_id: str):
        self.pool_id = pool_id
        super().__init__(f"unknown pool: {pool_id}")


# =============================================================================
# ТОРГОВЫЕ ОШИБКИ
# =============================================================================


class InsufficientLiquidityError(OrbitalEngineError):
    """Выход свапа ниже минимума / превышает резерв, либо минт LP ниже минимума."""


class AssetIsolatedError(OrbitalEngineError):
    """Свап ссылается на изолированный актив."""

    def __init__(self, asset_id: str, pool_id: Optional[str] = None):
        self.asset_id = asset_id
        self.pool_id = pool_id
        where = f" in pool {pool_id}" if pool_id else ""
        super().__init__(f"asset {asset_id} is isolated{where}")


class ConvergenceError(OrbitalEngineError):
    """Солвер не сошёлся в пределах лимита итераций."""

    def __init__(self, message: str, iterations: int, residual: float):
        self.iterations = iterations
        self.residual = residual
        super().__init__(f"{message} (iterations={iterations}, residual={residual:.3e})")


# =============================================================================
# ФАТАЛЬНЫЕ ОШИБКИ
# =============================================================================


class StateInconsistencyError(OrbitalEngineError):
    """
    Нарушено пост-условие (инвариант или агрегатные суммы).

    Фатальная ошибка: пул останавливается (fail closed), восстановление
    не предпринимается.
    """

    def __init__(self, pool_id: str, violations: Sequence[str]):
        self.pool_id = pool_id
        self.violations = tuple(violations)
        super().__init__(f"pool {pool_id} state inconsistency: " + "; ".join(self.violations))
