"""PositionRegistry — позиции (тики) одного пула.

Ключ — provider. Позиция создаётся первым депозитом, обновляется последующими,
обнуляется и помечается inactive при полном выводе. Сумма lp_shares активных
позиций равна total_lp_supply пула.
"""

from typing import Iterator, Mapping, Optional

from src.core.domain.position import LiquidityPosition
from src.core.domain.units import plane_constant, position_radius, position_reach
from src.core.errors import CapacityError, ValidationError


class PositionRegistry:
    """Реестр позиций пула с потолком количества активных позиций."""

    def __init__(self, pool_id: str, max_positions: int):
        self.pool_id = pool_id
        self.max_positions = max_positions
        self._positions: dict[str, LiquidityPosition] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, provider: str) -> Optional[LiquidityPosition]:
        return self._positions.get(provider)

    def all_positions(self) -> Iterator[LiquidityPosition]:
        return iter(self._positions.values())

    def active_positions(self) -> Iterator[LiquidityPosition]:
        return (p for p in self._positions.values() if p.active)

    @property
    def active_count(self) -> int:
        return sum(1 for p in self._positions.values() if p.active)

    def total_shares(self) -> float:
        return sum(p.lp_shares for p in self._positions.values() if p.active)

    def ensure_capacity(self, provider: str) -> None:
        """Новая активная позиция допустима только ниже потолка."""
        existing = self._positions.get(provider)
        if existing is not None and existing.active:
            return
        if self.active_count >= self.max_positions:
            raise CapacityError(self.pool_id, self.max_positions)

    # -------------------------------------------------------------------------
    # Мутации
    # -------------------------------------------------------------------------

    def record_deposit(
        self,
        provider: str,
        amounts: Mapping[str, float],
        shares: float,
        amplification: float,
        alpha_after: float,
        depeg_price: float,
        ts_utc_ms: int,
    ) -> LiquidityPosition:
        """
        Создание или обновление позиции после депозита.

        Радиус пересчитывается из полной депонированной стоимости, reach —
        из проекции α после депозита.
        """
        self.ensure_capacity(provider)
        existing = self._positions.get(provider)

        if existing is not None and existing.active:
            deposited = dict(existing.deposited)
            lp_shares = existing.lp_shares + shares
            created = existing.created_ts_utc_ms
        else:
            deposited = {}
            lp_shares = shares
            created = ts_utc_ms

        for asset_id, amount in amounts.items():
            deposited[asset_id] = deposited.get(asset_id, 0.0) + amount

        radius = position_radius(sum(deposited.values()), amplification)
        reach = position_reach(alpha_after, depeg_price)

        position = LiquidityPosition(
            pool_id=self.pool_id,
            provider=provider,
            lp_shares=lp_shares,
            deposited=deposited,
            radius=radius,
            plane_constant=plane_constant(radius, reach),
            depeg_price=depeg_price,
            active=True,
            created_ts_utc_ms=created,
            updated_ts_utc_ms=ts_utc_ms,
        )
        self._positions[provider] = position
        return position

    def record_withdrawal(self, provider: str, shares: float, ts_utc_ms: int) -> LiquidityPosition:
        """Пропорциональное уменьшение позиции; при нулевом балансе — inactive."""
        position = self._positions.get(provider)
        if position is None or not position.active:
            raise ValidationError(f"provider {provider} has no active position in pool {self.pool_id}")
        if shares > position.lp_shares:
            raise ValidationError(
                f"shares {shares} exceed provider {provider} balance {position.lp_shares}"
            )

        remaining_shares = position.lp_shares - shares
        if remaining_shares <= 0.0:
            updated = position.model_copy(
                update={
                    "lp_shares": 0.0,
                    "deposited": {asset_id: 0.0 for asset_id in position.deposited},
                    "radius": 0.0,
                    "plane_constant": 0.0,
                    "active": False,
                    "updated_ts_utc_ms": ts_utc_ms,
                }
            )
        else:
            keep = remaining_shares / position.lp_shares
            updated = position.model_copy(
                update={
                    "lp_shares": remaining_shares,
                    "deposited": {a: v * keep for a, v in position.deposited.items()},
                    "radius": position.radius * keep,
                    "plane_constant": position.plane_constant * keep,
                    "updated_ts_utc_ms": ts_utc_ms,
                }
            )
        self._positions[provider] = updated
        return updated

    def rescale_radii(self, amplification: float, ts_utc_ms: int) -> None:
        """Пересчёт радиусов при смене амплификации; k_norm (reach) сохраняется."""
        for provider, position in list(self._positions.items()):
            if not position.active:
                continue
            reach = position.k_norm
            radius = position_radius(position.value, amplification)
            self._positions[provider] = position.model_copy(
                update={
                    "radius": radius,
                    "plane_constant": plane_constant(radius, reach),
                    "updated_ts_utc_ms": ts_utc_ms,
                }
            )

    def restore_position(self, position: LiquidityPosition) -> None:
        """Загрузка позиции из persisted-записи."""
        if position.pool_id != self.pool_id:
            raise ValidationError(
                f"position belongs to pool {position.pool_id}, not {self.pool_id}"
            )
        self._positions[position.provider] = position

    def clone(self) -> "PositionRegistry":
        """Независимая копия для staged-мутаций (позиции immutable)."""
        copy = PositionRegistry(self.pool_id, self.max_positions)
        copy._positions = dict(self._positions)
        return copy
