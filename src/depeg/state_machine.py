"""Depeg State Machine — изоляция активов при отклонении от пега.

Переходы (по активу):
- NORMAL → DEVIATING: отклонение > deviation_threshold_bps; фиксируется deviation_start
- DEVIATING → NORMAL: отклонение вернулось ≤ порога до истечения time_threshold
- DEVIATING → ISOLATED: отклонение держится ≥ time_threshold при auto_isolation;
  violation_count += 1, фиксируется isolation_ts
- любое → ISOLATED: emergency_isolate (без таймингов)
- ISOLATED → NORMAL: только restore; требует отклонение ≤ recovery_threshold_bps
  И прошедший cooldown_sec с момента изоляции

Гистерезис (recovery < deviation, cooldown) предотвращает flapping.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from src.core.domain.depeg_state import AssetDepegState, DepegStatus, PriceReport
from src.core.domain.units import deviation_bps
from src.core.errors import ValidationError
from src.depeg.price_feed import PriceFeed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepegConfig:
    """Конфигурация машины депега.

    recovery_threshold_bps < deviation_threshold_bps образует гистерезис.
    """

    deviation_threshold_bps: float = 100.0
    recovery_threshold_bps: float = 50.0
    time_threshold_sec: float = 300.0
    cooldown_sec: float = 3600.0  # 1 hour
    auto_isolation: bool = True


@dataclass(frozen=True)
class DepegTransitionResult:
    """Результат оценки состояния актива."""

    asset_id: str
    new_status: DepegStatus
    previous_status: DepegStatus
    deviation_bps: float
    violation_count: int

    # Диагностика
    transition_occurred: bool
    transition_reason: str

    # Для отладки
    details: str

    @property
    def isolated(self) -> bool:
        return self.new_status == DepegStatus.ISOLATED


def _utc_now_ms() -> int:
    return int(time.time() * 1000)


class DepegMonitor:
    """Машина состояний депега для всех активов движка.

    Состояние актива глобально (не привязано к пулу); пулы зеркалируют
    изоляцию в своём наборе isolated_assets.
    """

    def __init__(
        self,
        price_feed: PriceFeed,
        config: Optional[DepegConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            price_feed: источник последних цен
            config: конфигурация порогов
            clock: источник текущего времени (UTC, мс)
        """
        if config is not None and config.recovery_threshold_bps > config.deviation_threshold_bps:
            raise ValidationError("recovery_threshold_bps must not exceed deviation_threshold_bps")

        self.price_feed = price_feed
        self.config = config or DepegConfig()
        self._clock = clock or _utc_now_ms
        self._states: dict[str, AssetDepegState] = {}
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Read-only
    # -------------------------------------------------------------------------

    def get_state(self, asset_id: str) -> AssetDepegState:
        with self._lock:
            return self._states.get(asset_id) or AssetDepegState(asset_id=asset_id)

    def is_isolated(self, asset_id: str) -> bool:
        return self.get_state(asset_id).isolated

    def isolated_assets(self) -> set[str]:
        with self._lock:
            return {a for a, s in self._states.items() if s.isolated}

    def set_peg(self, asset_id: str, peg: float) -> None:
        if not peg > 0:
            raise ValidationError(f"peg must be positive, got {peg}")
        with self._lock:
            self._states[asset_id] = self.get_state(asset_id).model_copy(update={"peg": peg})

    # -------------------------------------------------------------------------
    # Оценка по price feed
    # -------------------------------------------------------------------------

    def check_asset(self, asset_id: str) -> DepegTransitionResult:
        """Оценка актива по последнему репорту из price feed."""
        report = self.price_feed.latest(asset_id)
        with self._lock:
            state = self.get_state(asset_id)
            if report is None:
                return self._result(state, state, False, "no_price_report", "price feed has no report")
            return self._evaluate(state, report)

    def check_assets(self, asset_ids: Iterable[str]) -> list[DepegTransitionResult]:
        """Пакетная оценка: в порядке входа, независимо по активу."""
        with self._lock:
            return [self.check_asset(asset_id) for asset_id in asset_ids]

    def observe(self, report: PriceReport) -> DepegTransitionResult:
        """Оценка push-репорта напрямую."""
        return self.observe_many([report])[0]

    def observe_many(self, reports: Iterable[PriceReport]) -> list[DepegTransitionResult]:
        """
        Пакетная оценка push-репортов: все timestamp проверяются до первого
        перехода, затем репорты обрабатываются в порядке входа.

        Raises:
            ValidationError: репорт старше последнего по активу
        """
        reports = list(reports)
        with self._lock:
            last_seen = {a: s.last_report_ts_utc_ms for a, s in self._states.items()}
            for report in reports:
                previous = last_seen.get(report.asset_id)
                if previous is not None and report.ts_utc_ms < previous:
                    raise ValidationError(
                        f"stale price report for {report.asset_id}: "
                        f"ts={report.ts_utc_ms} < last={previous}"
                    )
                last_seen[report.asset_id] = report.ts_utc_ms
            return [self._evaluate(self.get_state(r.asset_id), r) for r in reports]

    def _evaluate(self, state: AssetDepegState, report: PriceReport) -> DepegTransitionResult:
        now_ms = report.ts_utc_ms
        if state.last_report_ts_utc_ms is not None and now_ms < state.last_report_ts_utc_ms:
            raise ValidationError(
                f"stale price report for {report.asset_id}: "
                f"ts={now_ms} < last={state.last_report_ts_utc_ms}"
            )
        deviation = deviation_bps(report.price, state.peg)
        observed = state.model_copy(
            update={
                "last_price": report.price,
                "deviation_bps": deviation,
                "last_report_ts_utc_ms": now_ms,
            }
        )
        exceeded = deviation > self.config.deviation_threshold_bps

        # 1. ISOLATED: только наблюдение, выход только через restore
        if state.status == DepegStatus.ISOLATED:
            return self._commit(state, observed, False, "isolated", f"deviation={deviation:.2f}bps")

        # 2. NORMAL
        if state.status == DepegStatus.NORMAL:
            if not exceeded:
                return self._commit(state, observed, False, "no_transition", f"deviation={deviation:.2f}bps")
            deviating = observed.model_copy(
                update={"status": DepegStatus.DEVIATING, "deviation_start_ts_utc_ms": now_ms}
            )
            return self._commit(
                state, deviating, True, "deviation_exceeded",
                f"deviation={deviation:.2f}bps > {self.config.deviation_threshold_bps}bps",
            )

        # 3. DEVIATING
        if not exceeded:
            normal = observed.model_copy(
                update={"status": DepegStatus.NORMAL, "deviation_start_ts_utc_ms": None}
            )
            return self._commit(
                state, normal, True, "deviation_recovered", f"deviation={deviation:.2f}bps"
            )

        start_ms = state.deviation_start_ts_utc_ms if state.deviation_start_ts_utc_ms is not None else now_ms
        persisted_sec = (now_ms - start_ms) / 1000.0
        if self.config.auto_isolation and persisted_sec >= self.config.time_threshold_sec:
            isolated = observed.model_copy(
                update={
                    "status": DepegStatus.ISOLATED,
                    "isolation_ts_utc_ms": now_ms,
                    "violation_count": state.violation_count + 1,
                }
            )
            return self._commit(
                state, isolated, True, "auto_isolation",
                f"deviation={deviation:.2f}bps persisted {persisted_sec:.1f}s",
            )

        return self._commit(
            state, observed, False, "deviation_persisting",
            f"deviation={deviation:.2f}bps persisted {persisted_sec:.1f}s",
        )

    # -------------------------------------------------------------------------
    # Административные переходы
    # -------------------------------------------------------------------------

    def emergency_isolate(self, asset_id: str, now_ms: Optional[int] = None) -> DepegTransitionResult:
        """Изоляция из любого состояния без таймингов; идемпотентна."""
        now_ms = self._clock() if now_ms is None else now_ms
        with self._lock:
            state = self.get_state(asset_id)
            if state.isolated:
                return self._result(state, state, False, "already_isolated", "no-op")
            isolated = state.model_copy(
                update={
                    "status": DepegStatus.ISOLATED,
                    "isolation_ts_utc_ms": now_ms,
                    "violation_count": state.violation_count + 1,
                }
            )
            return self._commit(state, isolated, True, "emergency_isolation", f"at {now_ms}")

    def restore(self, asset_id: str, now_ms: Optional[int] = None) -> DepegTransitionResult:
        """
        ISOLATED → NORMAL.

        Raises:
            ValidationError: актив не изолирован, отклонение выше recovery
                порога или cooldown не истёк
        """
        now_ms = self._clock() if now_ms is None else now_ms
        with self._lock:
            state = self.get_state(asset_id)
            if not state.isolated:
                raise ValidationError(f"asset {asset_id} is not isolated")

            if state.deviation_bps > self.config.recovery_threshold_bps:
                logger.warning(
                    "restore of %s rejected: deviation %.2fbps > %.2fbps",
                    asset_id, state.deviation_bps, self.config.recovery_threshold_bps,
                )
                raise ValidationError(
                    f"asset {asset_id} deviation {state.deviation_bps:.2f}bps exceeds "
                    f"recovery threshold {self.config.recovery_threshold_bps}bps"
                )

            elapsed_sec = (now_ms - (state.isolation_ts_utc_ms or 0)) / 1000.0
            if elapsed_sec < self.config.cooldown_sec:
                logger.warning(
                    "restore of %s rejected: cooldown %.1fs of %.1fs elapsed",
                    asset_id, elapsed_sec, self.config.cooldown_sec,
                )
                raise ValidationError(
                    f"asset {asset_id} cooldown not elapsed: {elapsed_sec:.1f}s < "
                    f"{self.config.cooldown_sec}s"
                )

            normal = state.model_copy(
                update={
                    "status": DepegStatus.NORMAL,
                    "deviation_start_ts_utc_ms": None,
                    "isolation_ts_utc_ms": None,
                }
            )
            return self._commit(state, normal, True, "restored", f"after {elapsed_sec:.1f}s")

    def load_state(self, state: AssetDepegState) -> None:
        """Загрузка persisted-состояния актива."""
        with self._lock:
            self._states[state.asset_id] = state

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _commit(
        self,
        previous: AssetDepegState,
        new: AssetDepegState,
        transition_occurred: bool,
        reason: str,
        details: str,
    ) -> DepegTransitionResult:
        self._states[new.asset_id] = new
        if transition_occurred:
            logger.info(
                "asset %s depeg %s -> %s (%s)",
                new.asset_id, previous.status.value, new.status.value, reason,
            )
        return self._result(previous, new, transition_occurred, reason, details)

    def _result(
        self,
        previous: AssetDepegState,
        new: AssetDepegState,
        transition_occurred: bool,
        reason: str,
        details: str,
    ) -> DepegTransitionResult:
        return DepegTransitionResult(
            asset_id=new.asset_id,
            new_status=new.status,
            previous_status=previous.status,
            deviation_bps=new.deviation_bps,
            violation_count=new.violation_count,
            transition_occurred=transition_occurred,
            transition_reason=reason,
            details=details,
        )
