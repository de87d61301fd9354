"""
Тесты для доменных моделей: LiquidityPosition, Deposit, PriceReport, AssetDepegState

Проверяет:
1. Создание и валидацию моделей Pydantic
2. Производные величины (value, k_norm, interior)
3. Immutability (frozen=True)
4. Граничные случаи и невалидные данные
"""

import math

import pytest
from pydantic import ValidationError

from src.core.domain import (
    AssetDepegState,
    Deposit,
    DepegStatus,
    LiquidityPosition,
    PriceReport,
)


# =============================================================================
# POSITION TESTS
# =============================================================================


class TestLiquidityPosition:
    """Тесты для модели LiquidityPosition"""

    @pytest.fixture
    def position(self) -> LiquidityPosition:
        return LiquidityPosition(
            pool_id="0xpool",
            provider="lp1",
            lp_shares=2000.0,
            deposited={"USDC": 1000.0, "USDT": 1000.0},
            radius=22000.0,
            plane_constant=22000.0 * 1010.0,
            depeg_price=0.99,
            created_ts_utc_ms=1_700_000_000_000,
            updated_ts_utc_ms=1_700_000_000_000,
        )

    def test_derived_values(self, position: LiquidityPosition) -> None:
        assert position.value == 2000.0
        assert position.k_norm == pytest.approx(1010.0)
        assert position.active

    def test_interior_classification(self, position: LiquidityPosition) -> None:
        assert position.is_interior(1000.0)
        assert not position.is_interior(1010.0)
        assert not position.is_interior(1020.0)

    def test_immutability(self, position: LiquidityPosition) -> None:
        with pytest.raises(ValidationError):
            position.lp_shares = 0.0

    def test_model_copy_creates_new_instance(self, position: LiquidityPosition) -> None:
        updated = position.model_copy(update={"active": False})
        assert position.active
        assert not updated.active

    @pytest.mark.parametrize(
        "field,value",
        [
            ("lp_shares", -1.0),
            ("radius", -1.0),
            ("depeg_price", 0.0),
            ("depeg_price", 1.01),
            ("provider", ""),
            ("deposited", {"USDC": -1.0}),
            ("deposited", {"USDC": math.inf}),
        ],
    )
    def test_invalid_fields(self, position: LiquidityPosition, field: str, value) -> None:
        data = position.model_dump()
        data[field] = value
        with pytest.raises(ValidationError):
            LiquidityPosition(**data)


# =============================================================================
# DEPOSIT TESTS
# =============================================================================


class TestDeposit:
    """Тесты для модели Deposit"""

    def test_valid(self) -> None:
        deposit = Deposit(provider="lp1", amounts={"USDC": 100.0, "USDT": 50.0})
        assert deposit.value == 150.0
        assert deposit.min_lp_shares == 0.0
        assert deposit.depeg_price is None

    def test_from_mapping(self) -> None:
        deposit = Deposit.model_validate(
            {"provider": "lp1", "amounts": {"USDC": 1.0}, "min_lp_shares": 0.5, "depeg_price": 0.98}
        )
        assert deposit.depeg_price == 0.98

    @pytest.mark.parametrize(
        "amounts",
        [{}, {"USDC": 0.0}, {"USDC": -1.0}, {"USDC": math.nan}, {"USDC": math.inf}, {"": 1.0}],
    )
    def test_invalid_amounts(self, amounts: dict) -> None:
        with pytest.raises(ValidationError):
            Deposit(provider="lp1", amounts=amounts)

    @pytest.mark.parametrize("depeg_price", [0.0, -0.5, 1.5])
    def test_invalid_depeg_price(self, depeg_price: float) -> None:
        with pytest.raises(ValidationError):
            Deposit(provider="lp1", amounts={"USDC": 1.0}, depeg_price=depeg_price)

    def test_negative_min_lp_shares(self) -> None:
        with pytest.raises(ValidationError):
            Deposit(provider="lp1", amounts={"USDC": 1.0}, min_lp_shares=-1.0)


# =============================================================================
# DEPEG STATE TESTS
# =============================================================================


class TestDepegModels:
    """Тесты для PriceReport и AssetDepegState"""

    def test_price_report(self) -> None:
        report = PriceReport(asset_id="USDC", price=0.999, ts_utc_ms=0)
        assert report.price == 0.999

    @pytest.mark.parametrize("price", [0.0, -1.0, math.nan, math.inf])
    def test_invalid_price(self, price: float) -> None:
        with pytest.raises(ValidationError):
            PriceReport(asset_id="USDC", price=price, ts_utc_ms=0)

    def test_negative_timestamp(self) -> None:
        with pytest.raises(ValidationError):
            PriceReport(asset_id="USDC", price=1.0, ts_utc_ms=-1)

    def test_default_state(self) -> None:
        state = AssetDepegState(asset_id="USDC")
        assert state.status == DepegStatus.NORMAL
        assert state.peg == 1.0
        assert not state.isolated
        assert state.violation_count == 0

    def test_isolated_property(self) -> None:
        state = AssetDepegState(asset_id="USDC", status=DepegStatus.ISOLATED)
        assert state.isolated

    def test_status_serialization(self) -> None:
        state = AssetDepegState(asset_id="USDC", status=DepegStatus.DEVIATING)
        assert state.model_dump(mode="json")["status"] == "DEVIATING"
