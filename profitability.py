"""
Economic gate for a liquidation batch.

Costs and rewards are compared in LUSD. The cost side is an upper bound
(max fee per gas × gas limit): the real cost is lower thanks to storage refunds,
and it is better to skip a profitable batch than to execute at a loss.
"""

from decimal import Decimal
from typing import Sequence

from troves import (
    COLLATERAL_GAS_COMPENSATION_DIVISOR,
    LUSD_LIQUIDATION_RESERVE,
    ONE,
    ZERO,
    Trove,
    add_troves,
    decimalify,
)

# Rough gas requirements:
#  * normal mode, Stability Pool: 400K + n * 176K; redistribution: 377K + n * 174K
#  * recovery mode, Stability Pool: 415K + n * 178K; redistribution: 391K + n * 178K
# 500K + n * 200K covers all of them, including batches that cross from recovery
# back into normal mode.
BASE_GAS_LIMIT = 500_000
GAS_LIMIT_PER_TROVE = 200_000


def liquidation_gas_limit(trove_count: int) -> int:
    return BASE_GAS_LIMIT + GAS_LIMIT_PER_TROVE * trove_count


def max_fee_per_gas(base_fee_per_gas: int, max_priority_fee_per_gas: int) -> int:
    # Room for the base fee to double before the transaction becomes unminable
    return 2 * base_fee_per_gas + max_priority_fee_per_gas


def worst_case_cost(max_fee: int, gas_limit: int, price) -> Decimal:
    """Highest possible transaction cost in LUSD."""
    return decimalify(max_fee * gas_limit) * Decimal(price)


def expected_compensation(troves: Sequence[Trove], price, miner_cut_rate=ZERO) -> Decimal:
    """Gas compensation for liquidating `troves`, in LUSD, net of the miner's cut."""
    collateral = add_troves(troves).collateral
    return (
        collateral * Decimal(price) / COLLATERAL_GAS_COMPENSATION_DIVISOR * (ONE - Decimal(miner_cut_rate))
        + LUSD_LIQUIDATION_RESERVE * len(troves)
    )


def should_liquidate(cost: Decimal, compensation: Decimal) -> bool:
    return not cost > compensation
