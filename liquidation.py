"""
One liquidation attempt: read, select, price, execute, report.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from web3 import Web3

from errors import ConsistencyError
from execution import Executor, LiquidationRequest
from profitability import (
    expected_compensation,
    liquidation_gas_limit,
    max_fee_per_gas,
    should_liquidate,
    worst_case_cost,
)
from strategy import select_for_liquidation
from troves import ZERO, Candidate, SystemState, decimalify

logger = logging.getLogger("LiqbotLiquidation")

# Riskiest Troves fetched per attempt
CANDIDATE_COUNT = 1000

# No priority fee by default with a relay: the miner is paid through the miner cut
DEFAULT_MAX_PRIORITY_FEE_PER_GAS = 5 * 10**9
DEFAULT_RELAY_MAX_PRIORITY_FEE_PER_GAS = 0


class LiquidationOutcome(Enum):
    NOTHING_TO_LIQUIDATE = "nothing_to_liquidate"
    SKIPPED_IN_READ_ONLY_MODE = "skipped_in_read_only_mode"
    SKIPPED_DUE_TO_HIGH_COST = "skipped_due_to_high_cost"
    FAILURE = "failure"
    SUCCESS = "success"


def have_undercollateralized_troves(state: SystemState, riskiest: Optional[Candidate]) -> bool:
    """Cheap per-block check deciding whether an attempt is worth starting."""
    if riskiest is None:
        return False
    if state.recovery_mode:
        return riskiest.nominal_collateral_ratio < state.total.nominal_collateral_ratio
    return riskiest.collateral_ratio_is_below_minimum(state.price)


def default_max_priority_fee_per_gas(config) -> int:
    if config.max_priority_fee_per_gas is not None:
        return config.max_priority_fee_per_gas
    return DEFAULT_RELAY_MAX_PRIORITY_FEE_PER_GAS if config.uses_relay else DEFAULT_MAX_PRIORITY_FEE_PER_GAS


async def _notify(alerts, msg, is_error=False):
    if alerts is not None:
        await alerts.send(msg, is_error=is_error)


def report_success(result, price) -> str:
    details = result.details
    receipt = result.raw_receipt

    gas_cost = decimalify(receipt["effectiveGasPrice"] * receipt["gasUsed"]) * price
    miner_cut = details.miner_cut if details.miner_cut is not None else ZERO
    total_compensation = (
        (details.collateral_gas_compensation - miner_cut) * price
        + details.lusd_gas_compensation
    )

    if total_compensation >= gas_cost:
        balance = f"${total_compensation - gas_cost:.2f} profit"
    else:
        balance = f"${gas_cost - total_compensation:.2f} loss"

    return (
        f"Received {details.collateral_gas_compensation:.4f} ETH + "
        f"{details.lusd_gas_compensation:.2f} LUSD compensation ({balance}) "
        f"for liquidating {len(details.liquidated_addresses)} Trove(s)."
    )


async def _attempt(w3, reader, config, executor: Optional[Executor], alerts) -> LiquidationOutcome:
    state = await reader.get_system_state()

    block, riskiest_troves = await asyncio.gather(
        w3.eth.get_block(state.block_number),
        reader.get_troves(CANDIDATE_COUNT, block_identifier=state.block_number),
    )

    base_fee_per_gas = block.get("baseFeePerGas")
    if base_fee_per_gas is None:
        raise ConsistencyError(f"block {state.block_number} has no baseFeePerGas")

    troves = select_for_liquidation(riskiest_troves, state, config.max_troves_to_liquidate)

    if not troves:
        logger.info(f"Block {state.block_number}: nothing to liquidate.")
        return LiquidationOutcome.NOTHING_TO_LIQUIDATE

    addresses = [trove.owner_address for trove in troves]

    if executor is None:
        compensation = expected_compensation(troves, state.price)
        logger.info(
            f"Skipping liquidation of {len(troves)} Trove(s) in read-only mode "
            f"(~${compensation:.2f} compensation): {', '.join(addresses)}"
        )
        return LiquidationOutcome.SKIPPED_IN_READ_ONLY_MODE

    max_priority_fee = default_max_priority_fee_per_gas(config)
    max_fee = max_fee_per_gas(base_fee_per_gas, max_priority_fee)

    transaction = await reader.populate_liquidation(addresses, {
        "gas": liquidation_gas_limit(len(troves)),
        "maxFeePerGas": max_fee,
        "maxPriorityFeePerGas": max_priority_fee,
    })

    worst_cost = worst_case_cost(max_fee, transaction["gas"], state.price)
    compensation = executor.estimate_compensation(troves, state.price)

    if not should_liquidate(worst_cost, compensation):
        logger.warning(
            f"Skipping liquidation of {len(troves)} Trove(s) due to high TX cost "
            f"(${worst_cost:.2f} > ${compensation:.2f})."
        )
        return LiquidationOutcome.SKIPPED_DUE_TO_HIGH_COST

    logger.info(
        f"⚔️ Attempting to liquidate {len(troves)} Trove(s) "
        f"(expecting ${compensation:.2f} compensation) ..."
    )

    result = await executor.execute(LiquidationRequest(addresses, transaction, state.block_number))

    if not result.is_success:
        if result.raw_receipt is not None:
            msg = f"❌ TX {Web3.to_hex(result.raw_receipt['transactionHash'])} failed."
            logger.error(msg)
            await _notify(alerts, msg, is_error=True)
        else:
            logger.warning("Liquidation TX wasn't included by miners.")
        return LiquidationOutcome.FAILURE

    msg = f"✅ {report_success(result, state.price)}"
    logger.info(msg)
    await _notify(alerts, msg)
    return LiquidationOutcome.SUCCESS


async def try_to_liquidate(w3, reader, config, executor: Optional[Executor] = None,
                           alerts=None) -> LiquidationOutcome:
    """
    Run one liquidation attempt against fresh chain state.

    Never raises: anything unexpected is logged and reported as FAILURE, so the
    caller's scheduling state cannot be corrupted by an attempt.
    """
    try:
        return await _attempt(w3, reader, config, executor, alerts)
    except Exception as e:
        logger.exception(f"Unexpected error during liquidation attempt: {e}")
        await _notify(alerts, f"⚠️ Liquidation attempt failed: {e}", is_error=True)
        return LiquidationOutcome.FAILURE
