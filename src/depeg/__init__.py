"""Depeg — изоляция активов при отклонении цены от пега.

- DepegMonitor: машина состояний NORMAL / DEVIATING / ISOLATED с гистерезисом
- PriceFeed: абстрактный источник цен, InMemoryPriceFeed — push-адаптер
"""

from .price_feed import InMemoryPriceFeed, PriceFeed
from .state_machine import DepegConfig, DepegMonitor, DepegTransitionResult

__all__ = [
    "DepegMonitor",
    "DepegConfig",
    "DepegTransitionResult",
    "PriceFeed",
    "InMemoryPriceFeed",
]
