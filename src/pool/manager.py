"""PoolManager — оркестратор Orbital engine.

Последовательность операций:
- addLiquidity / batchAddLiquidity: Deposit → PoolLedger → PositionRegistry →
  TickConsolidator (один проход на пакет)
- removeLiquidity: пропорциональный вывод резервов и накопленных комиссий
- swap: DepegMonitor (изоляция) → TradeSegmenter → SwapSolver → PoolLedger →
  проверка инварианта
- reportPrice / batchReportPrice: PriceFeed → DepegMonitor → isolated set пулов

Каждая операция атомарна: сначала вычисление, затем коммит. Мутирующие
операции одного пула сериализуются его RLock; разные пулы независимы.
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import jsonschema
import pydantic

from src.core.contracts.validators import validate_pool_record, validate_position_record
from src.core.domain.deposit import Deposit
from src.core.domain.depeg_state import PriceReport
from src.core.domain.pool_state import ConsolidationStats, PoolSnapshot, SwapQuote
from src.core.domain.position import LiquidityPosition
from src.core.domain.units import DEFAULT_DEPEG_PRICE, fraction_to_bps
from src.core.errors import (
    AssetIsolatedError,
    InsufficientLiquidityError,
    PoolHaltedError,
    StateInconsistencyError,
    UnknownPoolError,
    ValidationError,
)
from src.core.math.invariant import (
    ConsolidatedTickState,
    compute_invariant,
    effective_boundary_radius,
    spot_price,
)
from src.core.math.numerical_safeguards import (
    is_close,
    safe_divide,
    validate_in_range,
    validate_non_negative,
    validate_positive,
)
from src.core.math.swap_solver import SolverConfig
from src.depeg.price_feed import InMemoryPriceFeed
from src.depeg.state_machine import DepegConfig, DepegMonitor, DepegTransitionResult
from src.pool.consolidation import TickConsolidator, consolidate_ticks
from src.pool.ledger import PoolLedger
from src.pool.registry import PositionRegistry
from src.pool.segmentation import SwapPlan, TradeSegmenter

logger = logging.getLogger(__name__)

RECORD_SCHEMA_VERSION = "1"


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class EngineConfig:
    """Конфигурация движка."""

    max_fee_rate: float = 0.01
    max_positions_per_pool: int = 1000
    invariant_rtol: float = 1e-8
    default_depeg_price: float = DEFAULT_DEPEG_PRICE
    solver: SolverConfig = field(default_factory=SolverConfig)


@dataclass
class PoolRuntime:
    """Изменяемое состояние одного пула под его lock."""

    ledger: PoolLedger
    registry: PositionRegistry
    consolidator: TickConsolidator
    ticks: ConsolidatedTickState
    lock: threading.RLock = field(default_factory=threading.RLock)


DepositLike = Union[Deposit, Mapping[str, Any]]


def compute_pool_id(assets: Sequence[str], amplification: float, fee_rate: float, nonce: int) -> str:
    """Детерминированный идентификатор пула."""
    pool_id_data = (
        b"OrbitalPool"
        + "|".join(assets).encode("utf-8")
        + repr(float(amplification)).encode("utf-8")
        + repr(float(fee_rate)).encode("utf-8")
        + str(int(nonce)).encode("utf-8")
    )
    return "0x" + hashlib.sha256(pool_id_data).hexdigest()


def ensure_valid(check: Callable[..., None], *args: Any) -> None:
    """Запуск numerical_safeguards валидатора с ошибкой движка."""
    try:
        check(*args)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _utc_now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# MANAGER
# =============================================================================


class PoolManager:
    """Оркестратор пулов: ключ — PoolId, глобального состояния нет."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        depeg_config: Optional[DepegConfig] = None,
        clock: Optional[Callable[[], int]] = None,
        price_feed: Optional[InMemoryPriceFeed] = None,
    ):
        """
        Args:
            config: конфигурация движка
            depeg_config: конфигурация машины депега
            clock: источник текущего времени (UTC, мс)
            price_feed: push-адаптер цен (по умолчанию InMemoryPriceFeed)
        """
        self.config = config or EngineConfig()
        self._clock = clock or _utc_now_ms
        self.price_feed = price_feed or InMemoryPriceFeed()
        self.depeg_monitor = DepegMonitor(self.price_feed, depeg_config, clock=self._clock)
        self._segmenter = TradeSegmenter(self.config.solver, self.config.invariant_rtol)

        self._pools: dict[str, PoolRuntime] = {}
        self._pools_lock = threading.RLock()
        self._nonce = 0

    # -------------------------------------------------------------------------
    # createPool
    # -------------------------------------------------------------------------

    def create_pool(self, assets: Sequence[str], amplification: float, fee_rate: float) -> str:
        """
        Создание пула.

        Raises:
            ValidationError: < 2 различных активов, amplification ≤ 0,
                fee_rate вне [0, max_fee_rate]
        """
        assets = tuple(assets)
        if len(assets) < 2:
            raise ValidationError(f"pool requires at least 2 assets, got {len(assets)}")
        if len(set(assets)) != len(assets):
            raise ValidationError(f"pool assets must be distinct: {assets}")
        if any(not isinstance(a, str) or not a for a in assets):
            raise ValidationError("asset ids must be non-empty strings")
        ensure_valid(validate_positive, amplification, "amplification")
        ensure_valid(validate_in_range, fee_rate, "fee_rate", 0.0, self.config.max_fee_rate)

        with self._pools_lock:
            self._nonce += 1
            pool_id = compute_pool_id(assets, amplification, fee_rate, self._nonce)
            runtime = self._new_runtime(pool_id, assets, amplification, fee_rate)
            runtime.ledger.isolated_assets = {
                a for a in assets if self.depeg_monitor.is_isolated(a)
            }
            self._pools[pool_id] = runtime

        logger.info(
            "pool %s created: assets=%s amplification=%s fee_rate=%s",
            pool_id, list(assets), amplification, fee_rate,
        )
        return pool_id

    def _new_runtime(self, pool_id: str, assets: tuple[str, ...], amplification: float, fee_rate: float) -> PoolRuntime:
        return PoolRuntime(
            ledger=PoolLedger(pool_id, assets, amplification, fee_rate),
            registry=PositionRegistry(pool_id, self.config.max_positions_per_pool),
            consolidator=TickConsolidator(pool_id),
            ticks=ConsolidatedTickState(),
        )

    # -------------------------------------------------------------------------
    # Ликвидность
    # -------------------------------------------------------------------------

    def add_liquidity(
        self,
        pool_id: str,
        provider: str,
        amounts: Mapping[str, float],
        min_lp_shares: float = 0.0,
        depeg_price: Optional[float] = None,
    ) -> float:
        """
        Депозит одного поставщика.

        Returns:
            Заминченные LP доли

        Raises:
            ValidationError / CapacityError / PoolHaltedError
            InsufficientLiquidityError: доли ниже min_lp_shares
        """
        deposit = self._coerce_deposit(
            {"provider": provider, "amounts": dict(amounts), "min_lp_shares": min_lp_shares,
             "depeg_price": depeg_price}
        )
        runtime = self._runtime(pool_id)
        with runtime.lock:
            self._ensure_active(runtime)
            self._validate_deposit_assets(runtime.ledger, deposit)
            shares = self._apply_deposit(runtime.ledger, runtime.registry, deposit, self._clock())
            self._reconsolidate(runtime)

        logger.info("pool %s: %s added liquidity %s, minted %.12g shares",
                    pool_id, provider, dict(deposit.amounts), shares)
        return shares

    def batch_add_liquidity(self, pool_id: str, deposits: Sequence[DepositLike]) -> list[float]:
        """
        Пакетный депозит: порядок входа, один проход консолидации на пакет.

        All-or-nothing: все элементы валидируются до мутации, а мутации
        выполняются на staged-копиях ledger/registry и коммитятся целиком.
        """
        records = [self._coerce_deposit(d) for d in deposits]
        if not records:
            raise ValidationError("batch must contain at least one deposit")

        runtime = self._runtime(pool_id)
        with runtime.lock:
            self._ensure_active(runtime)
            for deposit in records:
                self._validate_deposit_assets(runtime.ledger, deposit)

            ledger = runtime.ledger.clone()
            registry = runtime.registry.clone()
            now_ms = self._clock()
            shares = [self._apply_deposit(ledger, registry, d, now_ms) for d in records]

            runtime.ledger = ledger
            runtime.registry = registry
            self._reconsolidate(runtime)

        logger.info("pool %s: batch of %d deposits applied, minted %.12g shares",
                    pool_id, len(records), sum(shares))
        return shares

    def remove_liquidity(self, pool_id: str, provider: str, shares: float) -> dict[str, float]:
        """
        Пропорциональный вывод: доля резервов и накопленных комиссий.

        Raises:
            ValidationError: shares ≤ 0 или больше баланса поставщика
        """
        ensure_valid(validate_positive, shares, "shares")
        runtime = self._runtime(pool_id)
        with runtime.lock:
            self._ensure_active(runtime)
            ledger = runtime.ledger
            position = runtime.registry.get(provider)
            if position is None or not position.active:
                raise ValidationError(f"provider {provider} has no active position in pool {pool_id}")
            if shares > position.lp_shares:
                raise ValidationError(
                    f"shares {shares} exceed provider {provider} balance {position.lp_shares}"
                )

            fraction = min(1.0, safe_divide(shares, ledger.total_lp_supply))
            reserve_out = {a: ledger.reserves[a] * fraction for a in ledger.assets}
            fees_out = {a: ledger.accrued_fees[a] * fraction for a in ledger.assets}

            runtime.registry.record_withdrawal(provider, shares, self._clock())
            ledger.withdraw(reserve_out)
            ledger.withdraw_fees(fees_out)
            ledger.total_lp_supply = max(0.0, ledger.total_lp_supply - shares)
            self._reconsolidate(runtime)

        amounts = {a: reserve_out[a] + fees_out[a] for a in reserve_out}
        logger.info("pool %s: %s removed %.12g shares -> %s", pool_id, provider, shares, amounts)
        return amounts

    def _coerce_deposit(self, deposit: DepositLike) -> Deposit:
        if isinstance(deposit, Deposit):
            return deposit
        try:
            return Deposit.model_validate(deposit)
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid deposit: {exc}") from exc

    def _validate_deposit_assets(self, ledger: PoolLedger, deposit: Deposit) -> None:
        """Депозит указывает ровно активы пула, каждый с суммой > 0."""
        if set(deposit.amounts) != set(ledger.assets):
            raise ValidationError(
                f"deposit from {deposit.provider} must list exactly the pool assets "
                f"{list(ledger.assets)}, got {sorted(deposit.amounts)}"
            )

    def _apply_deposit(
        self,
        ledger: PoolLedger,
        registry: PositionRegistry,
        deposit: Deposit,
        now_ms: int,
    ) -> float:
        """Минт долей и обновление позиции; проверки выполняются до мутации."""
        value = deposit.value
        if ledger.total_lp_supply <= 0.0 or ledger.sum_reserves <= 0.0:
            shares = value
        else:
            shares = value * ledger.total_lp_supply / ledger.sum_reserves

        if shares < deposit.min_lp_shares:
            raise InsufficientLiquidityError(
                f"deposit from {deposit.provider} mints {shares} shares < minimum {deposit.min_lp_shares}"
            )
        registry.ensure_capacity(deposit.provider)

        ledger.deposit(deposit.amounts)
        ledger.total_lp_supply += shares
        registry.record_deposit(
            provider=deposit.provider,
            amounts=deposit.amounts,
            shares=shares,
            amplification=ledger.amplification,
            alpha_after=ledger.alpha,
            depeg_price=deposit.depeg_price or self.config.default_depeg_price,
            ts_utc_ms=now_ms,
        )
        return shares

    # -------------------------------------------------------------------------
    # Свап
    # -------------------------------------------------------------------------

    def plan_swap(self, pool_id: str, asset_in: str, asset_out: str, amount_in: float) -> SwapPlan:
        """План свапа без изменения состояния (плечи, выход до комиссии)."""
        runtime = self._runtime(pool_id)
        with runtime.lock:
            return self._plan(runtime, asset_in, asset_out, amount_in)

    def quote_swap(self, pool_id: str, asset_in: str, asset_out: str, amount_in: float) -> SwapQuote:
        """Котировка: выход, комиссия, spot price, price impact."""
        runtime = self._runtime(pool_id)
        with runtime.lock:
            plan = self._plan(runtime, asset_in, asset_out, amount_in)
            ledger = runtime.ledger
            spot = spot_price(
                ledger.reserves[asset_in], ledger.reserves[asset_out],
                ledger.sum_reserves, ledger.sum_squared_reserves, ledger.asset_count, runtime.ticks,
            )
            fee_rate = ledger.fee_rate

        gross = plan.gross_amount_out
        fee = gross * fee_rate
        effective = safe_divide(gross, amount_in)
        impact = max(0.0, fraction_to_bps(1.0 - safe_divide(effective, spot, fallback=1.0)))
        return SwapQuote(
            pool_id=pool_id,
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=amount_in,
            amount_out=gross - fee,
            gross_amount_out=gross,
            fee=fee,
            spot_price=spot,
            effective_price=effective,
            price_impact_bps=impact,
            legs=len(plan.legs),
        )

    def swap(
        self,
        pool_id: str,
        asset_in: str,
        asset_out: str,
        amount_in: float,
        min_amount_out: float = 0.0,
    ) -> float:
        """
        Свап asset_in → asset_out.

        Резервы двигаются на gross выход (инвариант сохраняется точно),
        комиссия gross × fee_rate уходит в accrued_fees выходного актива.

        Returns:
            Выход после комиссии

        Raises:
            ValidationError / PoolHaltedError: некорректный вход или пул остановлен
            AssetIsolatedError: один из активов изолирован
            InsufficientLiquidityError: выход < min_amount_out или превышает резерв
            ConvergenceError: солвер не сошёлся
            StateInconsistencyError: нарушено пост-условие (пул остановлен)
        """
        ensure_valid(validate_non_negative, min_amount_out, "min_amount_out")
        runtime = self._runtime(pool_id)
        with runtime.lock:
            plan = self._plan(runtime, asset_in, asset_out, amount_in)
            ledger = runtime.ledger

            gross = plan.gross_amount_out
            fee = gross * ledger.fee_rate
            net = gross - fee
            if net < min_amount_out:
                raise InsufficientLiquidityError(
                    f"swap output {net} below minimum {min_amount_out}"
                )

            checkpoint = ledger.checkpoint(asset_in, asset_out)
            previous_ticks = runtime.ticks
            for leg in plan.legs:
                ledger.apply_swap(asset_in, asset_out, leg.amount_in, leg.amount_out)
            ledger.book_fee(asset_out, fee)

            if plan.final_ticks is not previous_ticks:
                self._reconsolidate(runtime)

            violations = self._swap_violations(runtime, plan)
            if violations:
                ledger.restore(checkpoint)
                runtime.ticks = previous_ticks
                self._halt(runtime, violations)

        logger.info(
            "pool %s swap %.12g %s -> %.12g %s (fee %.12g, legs=%d)",
            pool_id, amount_in, asset_in, net, asset_out, fee, len(plan.legs),
        )
        return net

    def _plan(self, runtime: PoolRuntime, asset_in: str, asset_out: str, amount_in: float) -> SwapPlan:
        ledger = runtime.ledger
        self._ensure_active(runtime)
        ensure_valid(validate_positive, amount_in, "amount_in")
        if asset_in == asset_out:
            raise ValidationError("asset_in and asset_out must differ")
        reserve_in = ledger.reserve_of(asset_in)
        reserve_out = ledger.reserve_of(asset_out)
        for asset_id in (asset_in, asset_out):
            if asset_id in ledger.isolated_assets:
                raise AssetIsolatedError(asset_id, ledger.pool_id)
        if reserve_in <= 0.0 or reserve_out <= 0.0:
            raise InsufficientLiquidityError(f"pool {ledger.pool_id} has no liquidity for {asset_in}/{asset_out}")

        registry = runtime.registry

        def reconsolidate(sum_reserves: float) -> ConsolidatedTickState:
            return consolidate_ticks(registry.all_positions(), sum_reserves, ledger.asset_count)

        try:
            return self._segmenter.plan(
                ledger.pool_id,
                reserve_in,
                reserve_out,
                amount_in,
                ledger.sum_reserves,
                ledger.sum_squared_reserves,
                ledger.asset_count,
                runtime.ticks,
                reconsolidate,
            )
        except StateInconsistencyError as exc:
            self._halt(runtime, list(exc.violations))

    def _swap_violations(self, runtime: PoolRuntime, plan: SwapPlan) -> list[str]:
        """Пост-условия свапа: суммы совпадают с планом, инвариант последнего плеча сохранён."""
        ledger = runtime.ledger
        violations = []
        if (ledger.sum_reserves, ledger.sum_squared_reserves) != (
            plan.sum_reserves_after, plan.sum_squared_reserves_after
        ):
            violations.append("committed sums differ from swap plan")

        last = plan.legs[-1]
        after = compute_invariant(
            ledger.sum_reserves, ledger.sum_squared_reserves, ledger.asset_count, last.ticks
        )
        rtol = self.config.invariant_rtol
        if not is_close(after, last.invariant_before, rel_tol=rtol, abs_tol=rtol * max(1.0, abs(after))):
            violations.append(f"invariant drifted from {last.invariant_before!r} to {after!r}")
        return violations

    # -------------------------------------------------------------------------
    # Депег
    # -------------------------------------------------------------------------

    def report_price(self, asset_id: str, price: float, ts_utc_ms: Optional[int] = None) -> DepegTransitionResult:
        """Публикация цены и оценка машины депега для актива."""
        report = self._price_report(asset_id, price, ts_utc_ms)
        self.price_feed.publish(report)
        result = self.depeg_monitor.observe(report)
        if result.transition_occurred:
            self.sync_isolation(asset_id)
        return result

    def batch_report_price(
        self,
        asset_ids: Sequence[str],
        prices: Sequence[float],
        ts_utc_ms: Optional[int] = None,
    ) -> list[DepegTransitionResult]:
        """
        Пакетные репорты: валидация всех до публикации, затем обработка
        в порядке входа, независимо по активу.
        """
        if len(asset_ids) != len(prices):
            raise ValidationError(
                f"asset_ids and prices length mismatch: {len(asset_ids)} != {len(prices)}"
            )
        if not asset_ids:
            raise ValidationError("batch must contain at least one price report")

        now_ms = self._clock() if ts_utc_ms is None else ts_utc_ms
        reports = [self._price_report(a, p, now_ms) for a, p in zip(asset_ids, prices)]
        self.price_feed.publish_many(reports)
        results = self.depeg_monitor.observe_many(reports)
        for result in results:
            if result.transition_occurred:
                self.sync_isolation(result.asset_id)
        return results

    def check_depeg(self, asset_ids: Sequence[str]) -> list[DepegTransitionResult]:
        """Пакетная оценка по текущему содержимому price feed."""
        results = self.depeg_monitor.check_assets(asset_ids)
        for result in results:
            if result.transition_occurred:
                self.sync_isolation(result.asset_id)
        return results

    def is_asset_isolated(self, asset_id: str) -> bool:
        return self.depeg_monitor.is_isolated(asset_id)

    def _price_report(self, asset_id: str, price: float, ts_utc_ms: Optional[int]) -> PriceReport:
        try:
            return PriceReport(
                asset_id=asset_id,
                price=price,
                ts_utc_ms=self._clock() if ts_utc_ms is None else ts_utc_ms,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid price report for {asset_id}: {exc}") from exc

    def sync_isolation(self, asset_id: str) -> None:
        """Зеркалирование глобальной изоляции актива в каждый пул с этим активом."""
        isolated = self.depeg_monitor.is_isolated(asset_id)
        with self._pools_lock:
            runtimes = [rt for rt in self._pools.values() if asset_id in rt.ledger.assets]
        for runtime in runtimes:
            with runtime.lock:
                if isolated:
                    runtime.ledger.isolated_assets.add(asset_id)
                else:
                    runtime.ledger.isolated_assets.discard(asset_id)

    # -------------------------------------------------------------------------
    # Параметры пула
    # -------------------------------------------------------------------------

    def update_parameters(
        self,
        pool_id: str,
        amplification: Optional[float] = None,
        fee_rate: Optional[float] = None,
    ) -> None:
        """
        Смена amplification и/или fee_rate.

        Новая амплификация пересчитывает радиусы всех позиций (k_norm
        сохраняется) и переконсолидирует тики. Остановленный пул параметров
        не меняет: сначала resume_pool.

        Raises:
            ValidationError: значение вне допустимого диапазона
            PoolHaltedError: пул остановлен
            UnknownPoolError: пул не найден
        """
        if amplification is not None:
            ensure_valid(validate_positive, amplification, "amplification")
        if fee_rate is not None:
            ensure_valid(validate_in_range, fee_rate, "fee_rate", 0.0, self.config.max_fee_rate)

        runtime = self._runtime(pool_id)
        with runtime.lock:
            self._ensure_active(runtime)
            if amplification is not None:
                registry = runtime.registry.clone()
                registry.rescale_radii(amplification, self._clock())
                runtime.registry = registry
                runtime.ledger.amplification = amplification
                self._reconsolidate(runtime)
            if fee_rate is not None:
                runtime.ledger.fee_rate = fee_rate

    def resume_pool(self, pool_id: str) -> None:
        """
        Возобновление остановленного пула.

        Raises:
            StateInconsistencyError: суммы пула не согласованы с резервами
        """
        runtime = self._runtime(pool_id)
        with runtime.lock:
            violations = runtime.ledger.verify_sums()
            if violations:
                raise StateInconsistencyError(pool_id, violations)
            self._reconsolidate(runtime)
            runtime.ledger.active = True

    # -------------------------------------------------------------------------
    # Read-only
    # -------------------------------------------------------------------------

    def list_pools(self) -> list[str]:
        with self._pools_lock:
            return list(self._pools)

    def get_pool_state(self, pool_id: str) -> PoolSnapshot:
        runtime = self._runtime(pool_id)
        with runtime.lock:
            ledger = runtime.ledger
            ticks = runtime.ticks
            return PoolSnapshot(
                pool_id=pool_id,
                assets=list(ledger.assets),
                reserves=dict(ledger.reserves),
                sum_reserves=max(0.0, ledger.sum_reserves),
                sum_squared_reserves=max(0.0, ledger.sum_squared_reserves),
                alpha=max(0.0, ledger.alpha),
                amplification=ledger.amplification,
                fee_rate=ledger.fee_rate,
                active=ledger.active,
                isolated_assets=sorted(ledger.isolated_assets),
                total_lp_supply=ledger.total_lp_supply,
                accrued_fees=dict(ledger.accrued_fees),
                invariant=compute_invariant(
                    ledger.sum_reserves, ledger.sum_squared_reserves, ledger.asset_count, ticks
                ),
                regime=ticks.regime.value,
                position_count=runtime.registry.active_count,
            )

    def get_position(self, pool_id: str, provider: str) -> Optional[LiquidityPosition]:
        runtime = self._runtime(pool_id)
        with runtime.lock:
            return runtime.registry.get(provider)

    def get_consolidation_stats(self, pool_id: str) -> ConsolidationStats:
        runtime = self._runtime(pool_id)
        with runtime.lock:
            ticks = runtime.ticks
            n = runtime.ledger.asset_count
            return ConsolidationStats(
                pool_id=pool_id,
                active_positions=ticks.position_count,
                interior_count=ticks.interior_count,
                boundary_count=ticks.boundary_count,
                interior_radius=ticks.interior_radius,
                boundary_radius=ticks.boundary_radius,
                boundary_constant=ticks.boundary_constant,
                effective_boundary_radius=effective_boundary_radius(
                    ticks.boundary_radius, ticks.boundary_constant, n
                ),
                alpha=max(0.0, runtime.ledger.alpha),
                min_interior_k=ticks.min_interior_k,
                max_boundary_k=ticks.max_boundary_k,
                regime=ticks.regime.value,
                aggregate_calculations=int(ticks.interior_count > 0) + int(ticks.boundary_count > 0),
                positions_scanned=runtime.consolidator.positions_scanned,
                consolidation_passes=runtime.consolidator.consolidation_passes,
            )

    # -------------------------------------------------------------------------
    # Persisted records
    # -------------------------------------------------------------------------

    def export_pool_record(self, pool_id: str) -> dict[str, Any]:
        """Pool record (pool_record.json)."""
        runtime = self._runtime(pool_id)
        with runtime.lock:
            ledger = runtime.ledger
            record = {
                "schema_version": RECORD_SCHEMA_VERSION,
                "pool_id": pool_id,
                "assets": list(ledger.assets),
                "reserves": dict(ledger.reserves),
                "accrued_fees": dict(ledger.accrued_fees),
                "sum_reserves": ledger.sum_reserves,
                "sum_squared_reserves": ledger.sum_squared_reserves,
                "amplification": ledger.amplification,
                "fee_rate": ledger.fee_rate,
                "active": ledger.active,
                "isolated_assets": sorted(ledger.isolated_assets),
                "total_lp_supply": ledger.total_lp_supply,
            }
        validate_pool_record(record)
        return record

    def export_position_records(self, pool_id: str) -> list[dict[str, Any]]:
        """Position records (position_record.json), по одному на поставщика."""
        runtime = self._runtime(pool_id)
        with runtime.lock:
            positions = list(runtime.registry.all_positions())
        records = []
        for position in positions:
            record = {"schema_version": RECORD_SCHEMA_VERSION, **position.model_dump()}
            validate_position_record(record)
            records.append(record)
        return records

    def import_pool_record(
        self,
        pool_record: Mapping[str, Any],
        position_records: Sequence[Mapping[str, Any]] = (),
    ) -> str:
        """
        Восстановление пула из persisted-записей.

        Raises:
            ValidationError: запись не проходит схему, пул уже существует,
                суммы или доли не согласованы
        """
        try:
            validate_pool_record(dict(pool_record))
            for record in position_records:
                validate_position_record(dict(record))
        except jsonschema.ValidationError as exc:
            raise ValidationError(f"invalid persisted record: {exc.message}") from exc

        pool_id = pool_record["pool_id"]
        assets = tuple(pool_record["assets"])
        if set(pool_record["reserves"]) != set(assets) or set(pool_record["accrued_fees"]) != set(assets):
            raise ValidationError(f"pool record {pool_id} reserve map does not match asset list")

        runtime = self._new_runtime(pool_id, assets, pool_record["amplification"], pool_record["fee_rate"])
        ledger = runtime.ledger
        ledger.reserves = {a: float(pool_record["reserves"][a]) for a in assets}
        ledger.accrued_fees = {a: float(pool_record["accrued_fees"][a]) for a in assets}
        ledger.sum_reserves = float(pool_record["sum_reserves"])
        ledger.sum_squared_reserves = float(pool_record["sum_squared_reserves"])
        ledger.total_lp_supply = float(pool_record["total_lp_supply"])
        ledger.active = bool(pool_record["active"])
        ledger.isolated_assets = set(pool_record["isolated_assets"])

        violations = ledger.verify_sums()
        if violations:
            raise ValidationError(f"pool record {pool_id} is inconsistent: {'; '.join(violations)}")

        for record in position_records:
            data = {k: v for k, v in record.items() if k != "schema_version"}
            try:
                position = LiquidityPosition.model_validate(data)
            except pydantic.ValidationError as exc:
                raise ValidationError(f"invalid position record: {exc}") from exc
            runtime.registry.restore_position(position)

        total_shares = runtime.registry.total_shares()
        if not is_close(total_shares, ledger.total_lp_supply, rel_tol=1e-9, abs_tol=1e-9):
            raise ValidationError(
                f"position shares {total_shares} do not sum to total_lp_supply {ledger.total_lp_supply}"
            )

        with self._pools_lock:
            if pool_id in self._pools:
                raise ValidationError(f"pool {pool_id} already exists")
            self._reconsolidate(runtime)
            self._pools[pool_id] = runtime

        logger.info("pool %s imported with %d positions", pool_id, len(runtime.registry))
        return pool_id

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _runtime(self, pool_id: str) -> PoolRuntime:
        with self._pools_lock:
            runtime = self._pools.get(pool_id)
        if runtime is None:
            raise UnknownPoolError(pool_id)
        return runtime

    def _ensure_active(self, runtime: PoolRuntime) -> None:
        if not runtime.ledger.active:
            raise PoolHaltedError(runtime.ledger.pool_id)

    def _reconsolidate(self, runtime: PoolRuntime) -> None:
        ledger = runtime.ledger
        runtime.ticks = runtime.consolidator.consolidate(
            runtime.registry.all_positions(), ledger.sum_reserves, ledger.asset_count
        )

    def _halt(self, runtime: PoolRuntime, violations: list[str]) -> None:
        """Fail closed: пул останавливается, ошибка пробрасывается."""
        runtime.ledger.active = False
        logger.error("pool %s halted: %s", runtime.ledger.pool_id, "; ".join(violations))
        raise StateInconsistencyError(runtime.ledger.pool_id, violations)
