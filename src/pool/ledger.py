"""PoolLedger — резервы и агрегатные суммы одного пула.

Единственный источник истины для состояния пула:
- reserves[asset] — резервы кривой (без накопленных комиссий)
- sum_reserves = Σ reserves, sum_squared_reserves = Σ reserves²
- accrued_fees[asset] — комиссии вне кривой, принадлежат LP пропорционально долям

Изоляция актива убирает его из торговли, но не из учёта: суммы всегда
равны литеральным суммам по всем активам (изолированным и нет).
"""

from dataclasses import dataclass
from typing import Mapping

from src.core.errors import ValidationError
from src.core.math.invariant import projection
from src.core.math.numerical_safeguards import is_close
from src.core.math.swap_solver import apply_swap_to_sums


@dataclass(frozen=True)
class LedgerCheckpoint:
    """Снимок двух резервов и сумм перед коммитом свапа (для отката)."""

    reserves: tuple[tuple[str, float], ...]
    accrued_fees: tuple[tuple[str, float], ...]
    sum_reserves: float
    sum_squared_reserves: float


class PoolLedger:
    """Резервы, суммы, параметры и флаги одного пула."""

    def __init__(
        self,
        pool_id: str,
        assets: tuple[str, ...],
        amplification: float,
        fee_rate: float,
    ):
        self.pool_id = pool_id
        self.assets = tuple(assets)
        self.amplification = amplification
        self.fee_rate = fee_rate
        self.active = True
        self.isolated_assets: set[str] = set()

        self.reserves: dict[str, float] = {asset: 0.0 for asset in self.assets}
        self.accrued_fees: dict[str, float] = {asset: 0.0 for asset in self.assets}
        self.sum_reserves = 0.0
        self.sum_squared_reserves = 0.0
        self.total_lp_supply = 0.0

    @property
    def asset_count(self) -> int:
        return len(self.assets)

    @property
    def alpha(self) -> float:
        return projection(self.sum_reserves, self.asset_count)

    def reserve_of(self, asset_id: str) -> float:
        try:
            return self.reserves[asset_id]
        except KeyError:
            raise ValidationError(f"asset {asset_id} is not part of pool {self.pool_id}") from None

    # -------------------------------------------------------------------------
    # Мутации
    # -------------------------------------------------------------------------

    def deposit(self, amounts: Mapping[str, float]) -> None:
        """Зачисление сумм в резервы с инкрементальным обновлением сумм."""
        for asset_id, amount in amounts.items():
            old = self.reserve_of(asset_id)
            new = old + amount
            self.reserves[asset_id] = new
            self.sum_reserves += amount
            self.sum_squared_reserves += new * new - old * old

    def withdraw(self, amounts: Mapping[str, float]) -> None:
        """Списание сумм из резервов с инкрементальным обновлением сумм."""
        for asset_id, amount in amounts.items():
            old = self.reserve_of(asset_id)
            if amount > old:
                raise ValidationError(
                    f"withdrawal of {amount} {asset_id} exceeds reserve {old} in pool {self.pool_id}"
                )
            new = old - amount
            self.reserves[asset_id] = new
            self.sum_reserves -= amount
            self.sum_squared_reserves += new * new - old * old

        if all(reserve == 0.0 for reserve in self.reserves.values()):
            self.sum_reserves = 0.0
            self.sum_squared_reserves = 0.0

    def withdraw_fees(self, amounts: Mapping[str, float]) -> None:
        for asset_id, amount in amounts.items():
            self.accrued_fees[asset_id] = max(0.0, self.accrued_fees[asset_id] - amount)

    def apply_swap(self, asset_in: str, asset_out: str, amount_in: float, amount_out: float) -> None:
        """
        Применение одного плеча свапа: ровно два резерва и две суммы.

        Используется та же арифметика, что и в солвере, поэтому суммы
        совпадают с планом бит-в-бит.
        """
        reserve_in = self.reserves[asset_in]
        reserve_out = self.reserves[asset_out]
        self.sum_reserves, self.sum_squared_reserves = apply_swap_to_sums(
            self.sum_reserves,
            self.sum_squared_reserves,
            reserve_in,
            reserve_out,
            amount_in,
            amount_out,
        )
        self.reserves[asset_in] = reserve_in + amount_in
        self.reserves[asset_out] = reserve_out - amount_out

    def book_fee(self, asset_id: str, amount: float) -> None:
        self.accrued_fees[asset_id] += amount

    # -------------------------------------------------------------------------
    # Откат / копии
    # -------------------------------------------------------------------------

    def checkpoint(self, *asset_ids: str) -> LedgerCheckpoint:
        return LedgerCheckpoint(
            reserves=tuple((a, self.reserves[a]) for a in asset_ids),
            accrued_fees=tuple((a, self.accrued_fees[a]) for a in asset_ids),
            sum_reserves=self.sum_reserves,
            sum_squared_reserves=self.sum_squared_reserves,
        )

    def restore(self, checkpoint: LedgerCheckpoint) -> None:
        for asset_id, value in checkpoint.reserves:
            self.reserves[asset_id] = value
        for asset_id, value in checkpoint.accrued_fees:
            self.accrued_fees[asset_id] = value
        self.sum_reserves = checkpoint.sum_reserves
        self.sum_squared_reserves = checkpoint.sum_squared_reserves

    def clone(self) -> "PoolLedger":
        """Независимая копия для staged-мутаций (batch)."""
        copy = PoolLedger(self.pool_id, self.assets, self.amplification, self.fee_rate)
        copy.active = self.active
        copy.isolated_assets = set(self.isolated_assets)
        copy.reserves = dict(self.reserves)
        copy.accrued_fees = dict(self.accrued_fees)
        copy.sum_reserves = self.sum_reserves
        copy.sum_squared_reserves = self.sum_squared_reserves
        copy.total_lp_supply = self.total_lp_supply
        return copy

    # -------------------------------------------------------------------------
    # Проверки
    # -------------------------------------------------------------------------

    def verify_sums(self, rel_tol: float = 1e-9, abs_tol: float = 1e-6) -> list[str]:
        """
        Сверка инкрементальных сумм с литеральными (O(n)).

        Returns:
            Список нарушений (пустой если суммы согласованы)
        """
        violations = []
        literal_sum = sum(self.reserves.values())
        literal_sq = sum(r * r for r in self.reserves.values())

        if not is_close(self.sum_reserves, literal_sum, rel_tol=rel_tol, abs_tol=abs_tol):
            violations.append(f"sum_reserves {self.sum_reserves!r} != literal {literal_sum!r}")
        if not is_close(self.sum_squared_reserves, literal_sq, rel_tol=rel_tol, abs_tol=abs_tol):
            violations.append(
                f"sum_squared_reserves {self.sum_squared_reserves!r} != literal {literal_sq!r}"
            )
        for asset_id, reserve in self.reserves.items():
            if reserve < 0.0:
                violations.append(f"reserve {asset_id} is negative: {reserve!r}")
        return violations
