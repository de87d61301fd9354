"""Тесты для Depeg State Machine.

Coverage:
- NORMAL → DEVIATING → ISOLATED по порогу и времени
- Гистерезис восстановления и cooldown
- emergency_isolate
- Push-репорты: устаревшие timestamp, пакеты
- Изоляция в PoolManager (сценарий C)
"""

import pytest

from src.core.domain.depeg_state import AssetDepegState, DepegStatus, PriceReport
from src.core.errors import AssetIsolatedError, ValidationError
from src.depeg.price_feed import InMemoryPriceFeed
from src.depeg.state_machine import DepegConfig, DepegMonitor
from src.pool.admin import PoolAdministrator
from src.pool.manager import PoolManager

ISOLATION_TS = 301_000
COOLDOWN_MS = 3_600_000


def report(asset_id, price, ts):
    return PriceReport(asset_id=asset_id, price=price, ts_utc_ms=ts)


@pytest.fixture
def monitor():
    return DepegMonitor(InMemoryPriceFeed(), clock=lambda: 0)


def isolate(monitor, asset_id="USDC"):
    monitor.observe(report(asset_id, 0.98, 0))
    return monitor.observe(report(asset_id, 0.98, ISOLATION_TS))


class TestDepegTransitions:
    """Тесты переходов машины депега."""

    def test_within_threshold_stays_normal(self, monitor):
        result = monitor.observe(report("USDC", 0.995, 0))

        assert result.new_status == DepegStatus.NORMAL
        assert not result.transition_occurred
        assert result.transition_reason == "no_transition"
        assert result.deviation_bps == pytest.approx(50.0)

    def test_normal_to_deviating(self, monitor):
        result = monitor.observe(report("USDC", 0.98, 0))

        assert result.new_status == DepegStatus.DEVIATING
        assert result.previous_status == DepegStatus.NORMAL
        assert result.transition_occurred
        assert result.transition_reason == "deviation_exceeded"
        assert monitor.get_state("USDC").deviation_start_ts_utc_ms == 0

    def test_deviation_persisting_before_time_threshold(self, monitor):
        monitor.observe(report("USDC", 0.98, 0))
        result = monitor.observe(report("USDC", 0.98, 299_000))

        assert result.new_status == DepegStatus.DEVIATING
        assert not result.transition_occurred
        assert result.transition_reason == "deviation_persisting"

    def test_deviating_to_isolated(self, monitor):
        result = isolate(monitor)

        assert result.new_status == DepegStatus.ISOLATED
        assert result.isolated
        assert result.transition_reason == "auto_isolation"
        assert result.violation_count == 1
        assert monitor.get_state("USDC").isolation_ts_utc_ms == ISOLATION_TS
        assert monitor.isolated_assets() == {"USDC"}

    def test_deviating_recovers_to_normal(self, monitor):
        monitor.observe(report("USDC", 0.98, 0))
        result = monitor.observe(report("USDC", 0.995, 100_000))

        assert result.new_status == DepegStatus.NORMAL
        assert result.transition_reason == "deviation_recovered"
        assert monitor.get_state("USDC").deviation_start_ts_utc_ms is None

    def test_premium_counts_as_deviation(self, monitor):
        result = monitor.observe(report("USDC", 1.02, 0))
        assert result.new_status == DepegStatus.DEVIATING

    def test_auto_isolation_disabled(self):
        monitor = DepegMonitor(InMemoryPriceFeed(), DepegConfig(auto_isolation=False))
        result = isolate(monitor)

        assert result.new_status == DepegStatus.DEVIATING
        assert result.transition_reason == "deviation_persisting"

    def test_isolated_only_observes(self, monitor):
        isolate(monitor)
        result = monitor.observe(report("USDC", 1.0, 400_000))

        assert result.new_status == DepegStatus.ISOLATED
        assert not result.transition_occurred
        assert result.transition_reason == "isolated"
        assert result.deviation_bps == 0.0

    def test_custom_peg(self, monitor):
        monitor.set_peg("EURC", 1.08)
        result = monitor.observe(report("EURC", 1.08, 0))
        assert result.new_status == DepegStatus.NORMAL

        with pytest.raises(ValidationError):
            monitor.set_peg("EURC", 0.0)

    def test_recovery_threshold_must_not_exceed_deviation(self):
        with pytest.raises(ValidationError):
            DepegMonitor(InMemoryPriceFeed(), DepegConfig(deviation_threshold_bps=50.0, recovery_threshold_bps=100.0))


class TestRestore:
    """Тесты восстановления (гистерезис + cooldown)."""

    def test_restore_requires_isolation(self, monitor):
        with pytest.raises(ValidationError, match="not isolated"):
            monitor.restore("USDC", now_ms=0)

    def test_restore_rejected_above_recovery_threshold(self, monitor):
        isolate(monitor)
        monitor.observe(report("USDC", 0.994, ISOLATION_TS + COOLDOWN_MS))

        with pytest.raises(ValidationError, match="recovery threshold"):
            monitor.restore("USDC", now_ms=ISOLATION_TS + COOLDOWN_MS)

    def test_restore_rejected_before_cooldown(self, monitor):
        isolate(monitor)
        monitor.observe(report("USDC", 1.0, 400_000))

        with pytest.raises(ValidationError, match="cooldown"):
            monitor.restore("USDC", now_ms=400_000)
        assert monitor.is_isolated("USDC")

    def test_restore_after_cooldown(self, monitor):
        isolate(monitor)
        monitor.observe(report("USDC", 1.0, 400_000))

        result = monitor.restore("USDC", now_ms=ISOLATION_TS + COOLDOWN_MS)

        assert result.new_status == DepegStatus.NORMAL
        assert result.transition_reason == "restored"
        state = monitor.get_state("USDC")
        assert state.isolation_ts_utc_ms is None
        assert state.violation_count == 1

    def test_restore_loaded_state(self, monitor):
        """Persisted-состояние продолжает cooldown с исходного timestamp"""
        monitor.load_state(
            AssetDepegState(
                asset_id="DAI",
                status=DepegStatus.ISOLATED,
                last_price=1.0,
                last_report_ts_utc_ms=1_000,
                isolation_ts_utc_ms=1_000,
                violation_count=2,
            )
        )
        assert monitor.is_isolated("DAI")

        with pytest.raises(ValidationError, match="cooldown"):
            monitor.restore("DAI", now_ms=2_000)
        result = monitor.restore("DAI", now_ms=1_000 + COOLDOWN_MS)

        assert result.new_status == DepegStatus.NORMAL
        assert result.violation_count == 2


class TestEmergencyIsolation:
    """Тесты emergency_isolate."""

    def test_from_normal(self, monitor):
        result = monitor.emergency_isolate("USDT", now_ms=5_000)

        assert result.new_status == DepegStatus.ISOLATED
        assert result.transition_reason == "emergency_isolation"
        assert monitor.get_state("USDT").isolation_ts_utc_ms == 5_000

    def test_idempotent(self, monitor):
        monitor.emergency_isolate("USDT", now_ms=5_000)
        result = monitor.emergency_isolate("USDT", now_ms=6_000)

        assert not result.transition_occurred
        assert result.transition_reason == "already_isolated"
        assert monitor.get_state("USDT").isolation_ts_utc_ms == 5_000


class TestPriceReports:
    """Тесты push-репортов и price feed."""

    def test_stale_report_rejected(self, monitor):
        monitor.observe(report("USDC", 1.0, 1_000))
        with pytest.raises(ValidationError, match="stale"):
            monitor.observe(report("USDC", 1.0, 500))

    def test_stale_within_batch_rejects_whole_batch(self, monitor):
        with pytest.raises(ValidationError):
            monitor.observe_many([report("USDC", 0.98, 1_000), report("USDC", 0.98, 500)])
        assert monitor.get_state("USDC").status == DepegStatus.NORMAL

    def test_feed_publish_many_is_atomic(self):
        feed = InMemoryPriceFeed()
        feed.publish(report("USDT", 1.0, 1_000))

        with pytest.raises(ValidationError):
            feed.publish_many([report("USDC", 0.98, 2_000), report("USDT", 1.0, 500)])

        assert feed.latest("USDC") is None
        assert feed.latest("USDT").ts_utc_ms == 1_000

    def test_check_asset_pulls_from_feed(self):
        feed = InMemoryPriceFeed()
        monitor = DepegMonitor(feed)

        assert monitor.check_asset("USDC").transition_reason == "no_price_report"
        feed.publish(report("USDC", 0.97, 10))
        results = monitor.check_assets(["USDC", "USDT"])

        assert results[0].new_status == DepegStatus.DEVIATING
        assert results[1].transition_reason == "no_price_report"


# =============================================================================
# СЦЕНАРИЙ C: ИЗОЛЯЦИЯ В ПУЛАХ
# =============================================================================


@pytest.fixture
def manager():
    return PoolManager(clock=lambda: 0)


@pytest.fixture
def pool_id(manager):
    pool_id = manager.create_pool(["USDC", "USDT", "DAI"], 1000.0, 0.003)
    manager.add_liquidity(pool_id, "lp1", {"USDC": 1000.0, "USDT": 1000.0, "DAI": 1000.0})
    return pool_id


class TestPoolIsolation:
    """Изоляция актива блокирует свапы во всех пулах."""

    def test_scenario(self, manager, pool_id):
        admin = PoolAdministrator(manager)

        assert manager.report_price("USDC", 0.98, ts_utc_ms=0).new_status == DepegStatus.DEVIATING
        result = manager.report_price("USDC", 0.98, ts_utc_ms=ISOLATION_TS)
        assert result.isolated
        assert manager.is_asset_isolated("USDC")
        assert manager.get_pool_state(pool_id).isolated_assets == ["USDC"]

        with pytest.raises(AssetIsolatedError):
            manager.swap(pool_id, "USDC", "USDT", 10.0)
        with pytest.raises(AssetIsolatedError):
            manager.swap(pool_id, "DAI", "USDC", 10.0)
        # остальные пары торгуются
        assert manager.swap(pool_id, "USDT", "DAI", 10.0) > 0.0

        with pytest.raises(ValidationError):
            admin.restore_asset(pool_id, "USDC", now_ms=ISOLATION_TS + 1_000)

        manager.report_price("USDC", 1.0, ts_utc_ms=400_000)
        with pytest.raises(ValidationError, match="cooldown"):
            admin.restore_asset(pool_id, "USDC", now_ms=400_000)

        restored = admin.restore_asset(pool_id, "USDC", now_ms=ISOLATION_TS + COOLDOWN_MS)
        assert restored.new_status == DepegStatus.NORMAL
        assert manager.get_pool_state(pool_id).isolated_assets == []
        assert manager.swap(pool_id, "USDC", "USDT", 10.0) > 0.0

    def test_isolated_asset_still_counted_in_sums(self, manager, pool_id):
        admin = PoolAdministrator(manager)
        before = manager.get_pool_state(pool_id)

        admin.emergency_isolate("DAI", now_ms=0)

        state = manager.get_pool_state(pool_id)
        assert state.isolated_assets == ["DAI"]
        assert state.sum_reserves == before.sum_reserves
        assert state.sum_squared_reserves == before.sum_squared_reserves

    def test_isolation_is_global(self, manager, pool_id):
        other = manager.create_pool(["USDC", "USDT"], 100.0, 0.001)
        manager.add_liquidity(other, "lp1", {"USDC": 100.0, "USDT": 100.0})

        PoolAdministrator(manager).emergency_isolate("USDC", now_ms=0)

        assert manager.get_pool_state(other).isolated_assets == ["USDC"]
        # пул, созданный после изоляции, наследует её
        late = manager.create_pool(["USDC", "DAI"], 100.0, 0.001)
        assert manager.get_pool_state(late).isolated_assets == ["USDC"]

    def test_batch_report_price(self, manager, pool_id):
        results = manager.batch_report_price(["USDC", "USDT"], [0.98, 1.0], ts_utc_ms=0)

        assert [r.new_status for r in results] == [DepegStatus.DEVIATING, DepegStatus.NORMAL]

    def test_batch_report_price_validation(self, manager):
        with pytest.raises(ValidationError):
            manager.batch_report_price(["USDC", "USDT"], [0.98], ts_utc_ms=0)
        with pytest.raises(ValidationError):
            manager.batch_report_price([], [], ts_utc_ms=0)
        with pytest.raises(ValidationError):
            manager.batch_report_price(["USDC"], [0.0], ts_utc_ms=0)

    def test_check_depeg_syncs_pools(self, manager, pool_id):
        manager.price_feed.publish(report("DAI", 0.9, 0))
        manager.check_depeg(["DAI"])
        manager.price_feed.publish(report("DAI", 0.9, ISOLATION_TS))

        results = manager.check_depeg(["DAI"])

        assert results[0].isolated
        assert manager.get_pool_state(pool_id).isolated_assets == ["DAI"]
