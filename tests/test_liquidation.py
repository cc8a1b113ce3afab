from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from execution import ExecutionResult
from liquidation import (
    LiquidationOutcome,
    default_max_priority_fee_per_gas,
    have_undercollateralized_troves,
    report_success,
    try_to_liquidate,
)
from parsing import get_liquidation_details
from profitability import expected_compensation
from troves import Candidate, SystemState, Trove

from conftest import EXECUTOR, GWEI, TROVE_MANAGER, address, make_config, make_receipt

PRICE = Decimal(2000)


def system_state(total=Trove(Decimal(100), Decimal(100000)), pool=Decimal(100000)):
    return SystemState(total, PRICE, pool, block_number=100)


def underwater(n=1):
    return Candidate(Decimal(1), Decimal(2000), address(n))  # ratio 1.0


@pytest.fixture
def reader():
    reader = MagicMock()
    reader.get_system_state = AsyncMock(return_value=system_state())
    reader.get_troves = AsyncMock(return_value=[])
    reader.populate_liquidation = AsyncMock(
        side_effect=lambda addresses, overrides: {"to": TROVE_MANAGER, "data": "0x01", **overrides}
    )
    return reader


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.get_block = AsyncMock(return_value={"number": 100, "baseFeePerGas": 10 * GWEI})
    return w3


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.estimate_compensation.side_effect = lambda troves, price: expected_compensation(troves, price)
    executor.execute = AsyncMock()
    return executor


@pytest.fixture
def alerts():
    alerts = MagicMock()
    alerts.send = AsyncMock()
    return alerts


# =============================================================================
# Outcomes
# =============================================================================


async def test_nothing_to_liquidate(w3, reader, config, executor):
    reader.get_troves.return_value = [Candidate(Decimal(2), Decimal(1000), address(1))]

    outcome = await try_to_liquidate(w3, reader, config, executor)

    assert outcome == LiquidationOutcome.NOTHING_TO_LIQUIDATE
    reader.populate_liquidation.assert_not_awaited()
    executor.execute.assert_not_awaited()


async def test_candidates_are_read_at_snapshot_block(w3, reader, config, executor):
    await try_to_liquidate(w3, reader, config, executor)

    reader.get_troves.assert_awaited_once_with(1000, block_identifier=100)
    w3.eth.get_block.assert_awaited_once_with(100)


async def test_read_only_mode_never_sends(w3, reader):
    reader.get_troves.return_value = [underwater()]

    outcome = await try_to_liquidate(w3, reader, make_config(wallet_key=None), None)

    assert outcome == LiquidationOutcome.SKIPPED_IN_READ_ONLY_MODE
    reader.populate_liquidation.assert_not_awaited()


async def test_high_gas_price_skips_liquidation(w3, reader, config, executor):
    # 205 gwei max fee * 700k gas = $287 worst case against $210 compensation
    w3.eth.get_block.return_value = {"baseFeePerGas": 100 * GWEI}
    reader.get_troves.return_value = [underwater()]

    outcome = await try_to_liquidate(w3, reader, config, executor)

    assert outcome == LiquidationOutcome.SKIPPED_DUE_TO_HIGH_COST
    executor.execute.assert_not_awaited()


async def test_successful_liquidation(w3, reader, config, executor, alerts, successful_logs):
    reader.get_troves.return_value = [underwater(1), underwater(2)]
    receipt = make_receipt(logs=successful_logs)
    executor.execute.return_value = ExecutionResult.succeeded(
        receipt, get_liquidation_details(TROVE_MANAGER, successful_logs)
    )

    outcome = await try_to_liquidate(w3, reader, config, executor, alerts)

    assert outcome == LiquidationOutcome.SUCCESS
    reader.populate_liquidation.assert_awaited_once_with([address(1), address(2)], {
        "gas": 900_000,
        "maxFeePerGas": 25 * GWEI,
        "maxPriorityFeePerGas": 5 * GWEI,
    })
    request = executor.execute.call_args[0][0]
    assert request.addresses == [address(1), address(2)]
    assert request.block_number == 100
    alerts.send.assert_awaited_once()


async def test_relay_uses_zero_priority_fee(w3, reader, executor):
    reader.get_troves.return_value = [underwater()]
    executor.execute.return_value = ExecutionResult.failed()
    config = make_config(executor_address=EXECUTOR, bundle_key="0x" + "22" * 32)

    await try_to_liquidate(w3, reader, config, executor)

    overrides = reader.populate_liquidation.call_args[0][1]
    assert overrides["maxPriorityFeePerGas"] == 0
    assert overrides["maxFeePerGas"] == 20 * GWEI


async def test_reverted_transaction_alerts(w3, reader, config, executor, alerts):
    reader.get_troves.return_value = [underwater()]
    executor.execute.return_value = ExecutionResult.failed(make_receipt(status=0))

    outcome = await try_to_liquidate(w3, reader, config, executor, alerts)

    assert outcome == LiquidationOutcome.FAILURE
    assert alerts.send.call_args.kwargs["is_error"] is True


async def test_not_included_is_a_quiet_failure(w3, reader, config, executor, alerts):
    reader.get_troves.return_value = [underwater()]
    executor.execute.return_value = ExecutionResult.failed()

    outcome = await try_to_liquidate(w3, reader, config, executor, alerts)

    assert outcome == LiquidationOutcome.FAILURE
    alerts.send.assert_not_awaited()


async def test_missing_base_fee_is_a_failure(w3, reader, config, executor):
    w3.eth.get_block.return_value = {"number": 100}
    reader.get_troves.return_value = [underwater()]

    outcome = await try_to_liquidate(w3, reader, config, executor)

    assert outcome == LiquidationOutcome.FAILURE
    executor.execute.assert_not_awaited()


async def test_unexpected_error_is_contained(w3, reader, config, executor, alerts):
    reader.get_troves.return_value = [underwater()]
    executor.execute.side_effect = RuntimeError("connection reset")

    outcome = await try_to_liquidate(w3, reader, config, executor, alerts)

    assert outcome == LiquidationOutcome.FAILURE
    alerts.send.assert_awaited_once()


# =============================================================================
# Helpers
# =============================================================================


def test_priority_fee_defaults():
    assert default_max_priority_fee_per_gas(make_config()) == 5 * GWEI
    assert default_max_priority_fee_per_gas(make_config(executor_address=EXECUTOR)) == 0
    assert default_max_priority_fee_per_gas(make_config(max_priority_fee_per_gas=GWEI)) == GWEI


def test_undercollateralized_check_in_normal_mode():
    state = system_state()
    assert have_undercollateralized_troves(state, underwater())
    assert not have_undercollateralized_troves(state, Candidate(Decimal(1), Decimal(1600), address(1)))
    assert not have_undercollateralized_troves(state, None)


def test_undercollateralized_check_in_recovery_mode():
    state = system_state(total=Trove(Decimal(100), Decimal(150000)))  # ratio 1.333
    assert state.recovery_mode
    assert have_undercollateralized_troves(state, Candidate(Decimal(1), Decimal(1600), address(1)))
    assert not have_undercollateralized_troves(state, Candidate(Decimal(1), Decimal(1400), address(1)))


def test_report_profit(successful_logs):
    details = get_liquidation_details(TROVE_MANAGER, successful_logs)
    # $430 compensation against 0.008 ETH ($16) of gas
    message = report_success(ExecutionResult.succeeded(make_receipt(), details), PRICE)

    assert "$414.00 profit" in message
    assert "2 Trove(s)" in message


def test_report_deducts_miner_cut(successful_logs):
    details = replace(get_liquidation_details(TROVE_MANAGER, successful_logs), miner_cut=Decimal("0.0015"))
    message = report_success(ExecutionResult.succeeded(make_receipt(), details), PRICE)

    assert "$411.00 profit" in message


def test_report_loss(successful_logs):
    details = get_liquidation_details(TROVE_MANAGER, successful_logs)
    receipt = make_receipt(gas_used=1_000_000, effective_gas_price=500 * GWEI)  # 0.5 ETH

    message = report_success(ExecutionResult.succeeded(receipt, details), PRICE)

    assert "$570.00 loss" in message
