"""
Batch selection for liquidation.

Simulates what TroveManager.batchLiquidateTroves would do to the system totals
so that the whole batch can be chosen from a single candidate listing, without
querying the chain for each Trove.
"""

from typing import Callable, List, Sequence

from troves import (
    COLLATERAL_GAS_COMPENSATION_DIVISOR,
    ONE,
    ZERO,
    Candidate,
    SystemState,
    Trove,
)


def liquidatable_in_normal_mode(state: SystemState) -> Callable[[Trove], bool]:
    return lambda trove: trove.collateral_ratio_is_below_minimum(state.price)


def liquidatable_in_recovery_mode(state: SystemState) -> Callable[[Trove], bool]:
    total_ratio = state.total_collateral_ratio

    def check(trove: Trove) -> bool:
        return trove.collateral_ratio_is_below_minimum(state.price) or (
            trove.collateral_ratio(state.price) < total_ratio
            and trove.debt <= state.lusd_in_stability_pool
        )

    return check


def liquidatable(state: SystemState) -> Callable[[Trove], bool]:
    if state.recovery_mode:
        return liquidatable_in_recovery_mode(state)
    return liquidatable_in_normal_mode(state)


def try_to_offset(state: SystemState, offset: Trove) -> SystemState:
    """Offset `offset` against the stability pool as far as the pool allows."""
    pool = state.lusd_in_stability_pool

    if offset.debt <= pool:
        # Completely offset
        return state.evolve(
            lusd_in_stability_pool=pool - offset.debt,
            total=state.total.subtract(offset),
        )

    if pool > ZERO:
        # Partially offset, emptying the pool
        return state.evolve(
            lusd_in_stability_pool=ZERO,
            total=state.total
            .subtract_debt(pool)
            .subtract_collateral(offset.collateral * pool / offset.debt),
        )

    # Empty pool: the Trove is redistributed, totals stay as they are
    return state


def simulate_liquidation(state: SystemState, trove: Trove) -> SystemState:
    """Return the state after liquidating `trove`. `state` is left untouched."""
    collateral_gas_compensation = trove.collateral / COLLATERAL_GAS_COMPENSATION_DIVISOR

    if not state.recovery_mode or trove.collateral_ratio(state.price) > ONE:
        state = try_to_offset(state, trove.subtract_collateral(collateral_gas_compensation))

    return state.evolve(total=state.total.subtract_collateral(collateral_gas_compensation))


def by_descending_collateral(candidates: Sequence[Candidate]) -> List[Candidate]:
    # sorted() is stable, so equal collateral keeps the incoming order
    return sorted(candidates, key=lambda candidate: candidate.collateral, reverse=True)


def select_for_liquidation(
    candidates: Sequence[Candidate],
    state: SystemState,
    limit: int,
) -> List[Candidate]:
    """
    Pick up to `limit` Troves to liquidate in one transaction.

    Bigger Troves go first, since they pay more compensation per slot. After each
    pick the liquidation is simulated, so later picks are judged against the
    system as it would look at that point of the batch (which matters around the
    recovery mode boundary).
    """
    if not candidates or limit <= 0:
        return []

    pool = by_descending_collateral(candidates)
    selected: List[Candidate] = []

    while len(selected) < limit:
        check = liquidatable(state)
        index = next((i for i, trove in enumerate(pool) if check(trove)), None)

        if index is None:
            break

        trove = pool.pop(index)
        selected.append(trove)
        state = simulate_liquidation(state, trove)

    return selected
